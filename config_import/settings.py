"""Runtime settings resolved from the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_KUBE_DIR = Path.home() / ".kube"
DEFAULT_KUBECONFIG = DEFAULT_KUBE_DIR / "config"
DEFAULT_CACHE_DIR = DEFAULT_KUBE_DIR / "cache" / "import"
DEFAULT_JSONPATH = r"{.data.kubeconfig\.conf}"
DEFAULT_EDITOR = "vi"
BACKUP_SUFFIX = ".bak"


def split_kubeconfig_env(value: str | None) -> list[Path]:
    """Split a KUBECONFIG-style value into paths, dropping empty entries."""
    if not value:
        return []
    paths: list[Path] = []
    for part in value.split(os.pathsep):
        part = part.strip()
        if part:
            paths.append(Path(part).expanduser())
    return paths


@dataclass
class Settings:
    """Where the live kubeconfig lives and which external tools to call."""

    kubeconfig_paths: list[Path] = field(default_factory=lambda: [DEFAULT_KUBECONFIG])
    cache_dir: Path = DEFAULT_CACHE_DIR
    editor: str = DEFAULT_EDITOR
    kubectl: str = "kubectl"
    jsonpath: str = DEFAULT_JSONPATH

    def __post_init__(self):
        if not self.kubeconfig_paths:
            raise ValueError("at least one kubeconfig path is required")

    @property
    def kubeconfig(self) -> Path:
        """The live kubeconfig; merges are written here."""
        return self.kubeconfig_paths[0]

    @property
    def backup_path(self) -> Path:
        return self.kubeconfig.with_name(self.kubeconfig.name + BACKUP_SUFFIX)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        paths = split_kubeconfig_env(env.get("KUBECONFIG")) or [DEFAULT_KUBECONFIG]
        cache_dir = env.get("KUBECTL_IMPORT_CACHE_DIR")
        return cls(
            kubeconfig_paths=paths,
            cache_dir=Path(cache_dir).expanduser() if cache_dir else DEFAULT_CACHE_DIR,
            editor=env.get("EDITOR") or DEFAULT_EDITOR,
            kubectl=env.get("KUBECTL") or "kubectl",
        )

    def with_kubeconfig(self, path: Path) -> Settings:
        """Return a copy whose live kubeconfig is ``path``."""
        return Settings(
            kubeconfig_paths=[path, *self.kubeconfig_paths[1:]],
            cache_dir=self.cache_dir,
            editor=self.editor,
            kubectl=self.kubectl,
            jsonpath=self.jsonpath,
        )
