"""Import a kubeconfig fragment into the live kubeconfig and switch to it."""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Optional

from config_import.cluster import Kubectl
from config_import.errors import MalformedFragment, SelectionCancelled
from config_import.kubeconfig import (
    ConfigurationStore,
    MergeResult,
    NamingContext,
    context_names,
    embed_file_references,
    load_yaml,
    merge_kubeconfigs,
    normalize_fragment,
    remove_context,
    resolve_current_context,
    use_context,
    write_yaml,
)
from config_import.select import select_one
from config_import.settings import Settings

logger = logging.getLogger(__name__)

Selector = Callable[[list[str], str], Optional[str]]

NAMESPACE_PROMPT = "Select namespace to look for secrets> "
SECRET_PROMPT = "Select secret to merge in kubeconfig> "
CONTEXT_PROMPT = "Select context to delete> "


@dataclass
class ImportOutcome:
    context: str
    merge: MergeResult
    backup_path: Path | None = None
    written: bool = False


class Importer:
    def __init__(
        self,
        settings: Settings,
        kubectl: Kubectl | None = None,
        selector: Selector | None = None,
        store: ConfigurationStore | None = None,
    ):
        self.settings = settings
        self.kubectl = kubectl or Kubectl(settings.kubectl)
        self.selector = selector or select_one
        self.store = store or ConfigurationStore(settings.kubeconfig, settings.backup_path)

    @contextmanager
    def workdir(self) -> Iterator[Path]:
        """Per-invocation scratch directory, removed on every exit path."""
        self.settings.cache_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(dir=self.settings.cache_dir, prefix="import-") as tmp:
            yield Path(tmp)

    def resolve_namespace(self, namespace: str | None) -> str:
        if namespace:
            return namespace
        choice = self.selector(self.kubectl.list_namespaces(), NAMESPACE_PROMPT)
        if not choice:
            raise SelectionCancelled("No namespace selected, aborting.")
        return choice

    def resolve_secret(self, namespace: str, secret_name: str | None) -> str:
        if secret_name:
            return secret_name
        choice = self.selector(self.kubectl.list_secrets(namespace), SECRET_PROMPT)
        if not choice:
            raise SelectionCancelled("No secret selected, aborting.")
        return choice

    def import_secret(
        self,
        namespace: str | None = None,
        secret_name: str | None = None,
        server_url: str | None = None,
        jsonpath: str | None = None,
        dry_run: bool = False,
    ) -> ImportOutcome:
        namespace = self.resolve_namespace(namespace)
        secret_name = self.resolve_secret(namespace, secret_name)
        self.kubectl.validate_secret(namespace, secret_name)

        naming = NamingContext(
            current_context=resolve_current_context(
                [self.store.path, *self.settings.kubeconfig_paths[1:]]
            ),
            namespace=namespace,
            secret_name=secret_name,
        )
        with self.workdir() as workdir:
            raw = self.kubectl.read_secret(
                namespace, secret_name, jsonpath or self.settings.jsonpath
            )
            fragment_path = workdir / "secret.yaml"
            fragment_path.write_bytes(raw)
            return self._merge_fragment(
                fragment_path,
                workdir,
                naming,
                base_dir=Path.cwd(),
                server_url=server_url,
                dry_run=dry_run,
            )

    def import_file(self, path: Path, dry_run: bool = False) -> ImportOutcome:
        if not path.is_file():
            raise MalformedFragment(f"Missing kubeconfig file: {path}")
        with self.workdir() as workdir:
            return self._merge_fragment(
                path, workdir, NamingContext(), base_dir=path.resolve().parent, dry_run=dry_run
            )

    def import_stream(self, stream: IO[str], dry_run: bool = False) -> ImportOutcome:
        content = stream.read()
        if not content.strip():
            raise MalformedFragment("stdin is empty, nothing to import")
        with self.workdir() as workdir:
            fragment_path = workdir / "stdin.yaml"
            fragment_path.write_text(content, encoding="utf-8")
            return self._merge_fragment(
                fragment_path, workdir, NamingContext(), base_dir=Path.cwd(), dry_run=dry_run
            )

    def _merge_fragment(
        self,
        fragment_path: Path,
        workdir: Path,
        naming: NamingContext,
        base_dir: Path,
        server_url: str | None = None,
        dry_run: bool = False,
    ) -> ImportOutcome:
        # relative credential paths resolve against base_dir, not the scratch copy
        fragment = embed_file_references(load_yaml(fragment_path), base_dir)
        normalized = normalize_fragment(fragment, naming, server_url=server_url)
        normalized_path = workdir / "normalized.yaml"
        write_yaml(normalized_path, normalized)
        return self.merge_and_switch(normalized, normalized["current-context"], dry_run=dry_run)

    def merge_and_switch(
        self, fragment: dict[str, Any], context: str, dry_run: bool = False
    ) -> ImportOutcome:
        """Union ``fragment`` into the live config and make ``context`` current.

        The live file is only touched after ``context`` resolves in the merged
        view; ContextActivationFailed leaves it unchanged.
        """
        live = self.store.load()
        merge = merge_kubeconfigs([live, fragment])
        merged = use_context(merge.config, context)
        merge.config = merged

        outcome = ImportOutcome(context=context, merge=merge)
        if dry_run:
            logger.info("dry-run enabled, not writing kubeconfig")
            return outcome

        outcome.backup_path = self.store.save(merged, backup=True)
        outcome.written = True
        logger.info(f"Switched to context '{context}'")
        return outcome

    def delete_context(self, name: str | None = None) -> str:
        """Remove one context from the live config, leaving its cluster and user."""
        config = self.store.load()
        if not name:
            name = self.selector(context_names(config), CONTEXT_PROMPT)
        if not name:
            raise SelectionCancelled("No context selected, aborting.")
        self.store.save(remove_context(config, name), backup=True)
        return name

