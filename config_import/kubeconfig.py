from __future__ import annotations

import base64
import copy
import logging
import os
import shutil
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from config_import.errors import (
    ConfigImportError,
    ContextActivationFailed,
    MalformedFragment,
    MergeConflict,
)

logger = logging.getLogger(__name__)

NAMED_SECTIONS = ("clusters", "users", "contexts")
MERGED_SECTIONS = (*NAMED_SECTIONS, "extensions")
KUBECONFIG_MODE = 0o600

# path field -> inline field written by `kubectl config view --flatten`
CLUSTER_FILE_FIELDS = {"certificate-authority": "certificate-authority-data"}
USER_FILE_FIELDS = {
    "client-certificate": "client-certificate-data",
    "client-key": "client-key-data",
}


@dataclass
class MergeResult:
    config: dict[str, Any]
    duplicate_clusters: list[str]
    duplicate_users: list[str]
    duplicate_contexts: list[str]


@dataclass
class NamingContext:
    """Inputs used to derive the name an imported fragment is stored under."""

    current_context: str | None = None
    namespace: str | None = None
    secret_name: str | None = None

    @property
    def from_secret(self) -> bool:
        return bool(self.namespace and self.secret_name)


def parse_kubeconfig(text: str | bytes, source: str = "<fragment>") -> dict[str, Any]:
    """Parse kubeconfig text into a mapping, raising MalformedFragment if it isn't one."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise MalformedFragment(f"{source} is not valid YAML: {exc}") from exc
    if data is None:
        raise MalformedFragment(f"{source} is empty")
    if not isinstance(data, dict):
        raise MalformedFragment(f"kubeconfig root must be a mapping (dict): {source}")
    for section in NAMED_SECTIONS:
        items = data.get(section)
        if items is None:
            continue
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise MalformedFragment(f"'{section}' must be a list of mappings: {source}")
    return data


def dump_kubeconfig(data: dict[str, Any]) -> str:
    return yaml.safe_dump(
        data,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


def load_yaml(path: Path) -> dict[str, Any]:
    return parse_kubeconfig(path.read_bytes(), source=str(path))


def write_yaml(path: Path, data: dict[str, Any]) -> None:
    with path.open("w", encoding="utf-8") as handle:
        handle.write(dump_kubeconfig(data))


def named_items(config: dict[str, Any], section: str) -> list[dict[str, Any]]:
    items = config.get(section)
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def context_names(config: dict[str, Any]) -> list[str]:
    names: list[str] = []
    for item in named_items(config, "contexts"):
        name = item.get("name")
        if isinstance(name, str) and name.strip():
            names.append(name)
    return names


def dedupe_names(names: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for name in names:
        if name in seen:
            continue
        seen.add(name)
        result.append(name)
    return result


def _pick(items: list[dict[str, Any]], preferred: Any) -> dict[str, Any] | None:
    for item in items:
        if preferred is not None and item.get("name") == preferred:
            return item
    return items[0] if items else None


def target_name(fragment: dict[str, Any], naming: NamingContext) -> str:
    """Name every entry of ``fragment`` is rewritten to.

    Secrets are stored as ``<current-context>-<namespace>-<secret>``; files and
    stdin keep whatever ``current-context`` they declare.
    """
    if naming.from_secret:
        parts = [naming.current_context, naming.namespace, naming.secret_name]
        return "-".join(part for part in parts if part)

    name = fragment.get("current-context")
    if not isinstance(name, str) or not name.strip():
        raise MalformedFragment("kubeconfig has no current-context to import")
    return name


def normalize_fragment(
    fragment: dict[str, Any],
    naming: NamingContext,
    server_url: str | None = None,
) -> dict[str, Any]:
    """Collapse a fragment to one cluster, user and context sharing a single name.

    The context kept is the fragment's current-context (or its first context);
    the cluster and user kept are the ones that context references, falling back
    to the first entry of each list. ``server_url`` replaces every cluster's
    server before renaming.
    """
    name = target_name(fragment, naming)
    normalized = copy.deepcopy(fragment)

    clusters = named_items(normalized, "clusters")
    users = named_items(normalized, "users")
    contexts = named_items(normalized, "contexts")

    if server_url:
        for entry in clusters:
            cluster = entry.get("cluster")
            if not isinstance(cluster, dict):
                cluster = entry["cluster"] = {}
            cluster["server"] = server_url

    context = _pick(contexts, fragment.get("current-context"))
    refs: dict[str, Any] = {}
    if context is not None:
        body = context.get("context")
        if isinstance(body, dict):
            refs = body
    cluster = _pick(clusters, refs.get("cluster"))
    user = _pick(users, refs.get("user"))

    if cluster is not None:
        cluster["name"] = name
        normalized["clusters"] = [cluster]
    if user is not None:
        user["name"] = name
        normalized["users"] = [user]
    if context is not None:
        context["name"] = name
        body = context.get("context")
        if not isinstance(body, dict):
            body = context["context"] = {}
        body["cluster"] = name
        body["user"] = name
        normalized["contexts"] = [context]

    normalized["current-context"] = name
    logger.info(f"Normalized fragment entries to '{name}'")
    return normalized


def _embed_fields(entry: Any, fields: dict[str, str], base_dir: Path) -> None:
    if not isinstance(entry, dict):
        return
    for path_field, data_field in fields.items():
        ref = entry.get(path_field)
        if not isinstance(ref, str) or not ref:
            continue
        path = Path(ref).expanduser()
        if not path.is_absolute():
            path = base_dir / path
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise MalformedFragment(f"cannot read {path_field} file {path}: {exc}") from exc
        entry[data_field] = base64.b64encode(content).decode("ascii")
        del entry[path_field]


def embed_file_references(config: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    """Return a copy of ``config`` with credential file references inlined.

    ``certificate-authority``, ``client-certificate`` and ``client-key`` paths
    are resolved against ``base_dir`` and replaced by their ``*-data`` fields,
    so the result stays valid wherever it is written.
    """
    flattened = copy.deepcopy(config)
    for item in named_items(flattened, "clusters"):
        _embed_fields(item.get("cluster"), CLUSTER_FILE_FIELDS, base_dir)
    for item in named_items(flattened, "users"):
        _embed_fields(item.get("user"), USER_FILE_FIELDS, base_dir)
    return flattened


def merge_named_list(
    items: Any,
    merged: dict[str, dict[str, Any]],
    unnamed: list[dict[str, Any]],
    duplicates: list[str],
) -> None:
    if items is None:
        return
    if not isinstance(items, list):
        raise MergeConflict(f"expected a list, got {type(items).__name__}")
    for item in items:
        if not isinstance(item, dict):
            raise MergeConflict(f"expected a mapping entry, got {type(item).__name__}")
        name = item.get("name")
        if isinstance(name, str) and name.strip():
            if name in merged:
                duplicates.append(name)
            # Replacing in place keeps the position of the earlier entry.
            merged[name] = item
        else:
            unnamed.append(item)


def merge_kubeconfigs(configs: Iterable[dict[str, Any]]) -> MergeResult:
    """Flatten configs into one view.

    Named entries (clusters, users, contexts, extensions) from later configs
    replace same-named earlier ones. Any other top-level key keeps the value of
    the first config that sets it. ``current-context`` is never carried over,
    the caller sets it.
    """
    merged_config: dict[str, Any] = {}
    maps: dict[str, dict[str, dict[str, Any]]] = {section: {} for section in MERGED_SECTIONS}
    unnamed: dict[str, list[dict[str, Any]]] = {section: [] for section in MERGED_SECTIONS}
    duplicates: dict[str, list[str]] = {section: [] for section in MERGED_SECTIONS}
    seen_extensions = False

    for cfg in configs:
        if not isinstance(cfg, dict):
            raise MergeConflict("kubeconfig root must be a mapping (dict).")

        for key, value in cfg.items():
            if key in MERGED_SECTIONS or key == "current-context":
                continue
            if key not in merged_config:
                merged_config[key] = copy.deepcopy(value)

        seen_extensions = seen_extensions or "extensions" in cfg
        for section in MERGED_SECTIONS:
            merge_named_list(
                copy.deepcopy(cfg.get(section)),
                maps[section],
                unnamed[section],
                duplicates[section],
            )

    merged_config.setdefault("apiVersion", "v1")
    merged_config.setdefault("kind", "Config")
    for section in NAMED_SECTIONS:
        merged_config[section] = list(maps[section].values()) + unnamed[section]
    if seen_extensions:
        merged_config["extensions"] = (
            list(maps["extensions"].values()) + unnamed["extensions"]
        )

    return MergeResult(
        config=merged_config,
        duplicate_clusters=dedupe_names(duplicates["clusters"]),
        duplicate_users=dedupe_names(duplicates["users"]),
        duplicate_contexts=dedupe_names(duplicates["contexts"]),
    )


def use_context(config: dict[str, Any], name: str) -> dict[str, Any]:
    """Return a copy of ``config`` with ``name`` as current-context.

    Raises ContextActivationFailed if no context of that name exists.
    """
    if name not in context_names(config):
        raise ContextActivationFailed(f"no context exists with the name: '{name}'")
    updated = dict(config)
    updated["current-context"] = name
    return updated


def remove_context(config: dict[str, Any], name: str) -> dict[str, Any]:
    """Return a copy of ``config`` without context ``name``.

    Referenced clusters and users are left alone. If the removed context was
    current, current-context is cleared.
    """
    if name not in context_names(config):
        raise ContextActivationFailed(f"no context exists with the name: '{name}'")
    updated = dict(config)
    updated["contexts"] = [
        item for item in named_items(config, "contexts") if item.get("name") != name
    ]
    if config.get("current-context") == name:
        logger.warning(f"Deleted context '{name}' was the current context")
        updated["current-context"] = ""
    return updated


class ConfigurationStore:
    """The live kubeconfig file on disk, with a single ``.bak`` backup beside it."""

    def __init__(self, path: Path, backup_path: Path | None = None):
        self.path = path
        self.backup_path = backup_path or path.with_name(path.name + ".bak")

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> dict[str, Any]:
        """Read the live config; a missing file reads as an empty config."""
        if not self.exists():
            logger.info(f"{self.path} does not exist, starting from an empty kubeconfig")
            return {}
        try:
            return load_yaml(self.path)
        except MalformedFragment as exc:
            raise MergeConflict(f"cannot read live kubeconfig: {exc}") from exc

    def current_context(self) -> str | None:
        name = self.load().get("current-context")
        if isinstance(name, str) and name.strip():
            return name
        return None

    def backup(self) -> Path | None:
        if not self.exists():
            return None
        shutil.copy2(self.path, self.backup_path)
        logger.info(f"Copied {self.path} to {self.backup_path}")
        return self.backup_path

    def save(self, data: dict[str, Any], backup: bool = True) -> Path | None:
        """Replace the live config with ``data``.

        The new content is fully written to a sibling file first, then the old
        file is backed up, then the sibling is renamed over the live path.
        Returns the backup path, if one was taken.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, staged_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        staged = Path(staged_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(dump_kubeconfig(data))
            staged.chmod(KUBECONFIG_MODE)
            backup_path = self.backup() if backup else None
            os.replace(staged, self.path)
        except BaseException:
            staged.unlink(missing_ok=True)
            raise
        logger.info(f"Wrote {self.path}")
        return backup_path


def resolve_current_context(paths: Iterable[Path]) -> str | None:
    """current-context as kubectl resolves it across KUBECONFIG paths: first one set wins."""
    for path in paths:
        name = ConfigurationStore(path).current_context()
        if name:
            return name
    return None
