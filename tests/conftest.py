from __future__ import annotations

import base64
from pathlib import Path
from subprocess import CompletedProcess

import pytest
import yaml

from config_import.settings import Settings


def _ok(stdout: str = "", stderr: str = "") -> CompletedProcess[str]:
    return CompletedProcess(args=["kubectl"], returncode=0, stdout=stdout, stderr=stderr)


def _fail(stderr: str = "Error from server (NotFound)") -> CompletedProcess[str]:
    return CompletedProcess(args=["kubectl"], returncode=1, stdout="", stderr=stderr)


def _make_config(
    context: str,
    cluster: str,
    user: str,
    server: str = "https://a",
    token: str = "a",
    current: str | None = None,
) -> dict:
    config = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"name": cluster, "cluster": {"server": server}}],
        "users": [{"name": user, "user": {"token": token}}],
        "contexts": [{"name": context, "context": {"cluster": cluster, "user": user}}],
    }
    if current is not None:
        config["current-context"] = current
    return config


class FakeKubectl:
    """Stands in for the kubectl binary: namespaces -> {secret: kubeconfig text}."""

    def __init__(self, secrets: dict[str, dict[str, str]]):
        self.secrets = secrets
        self.calls: list[list[str]] = []

    def __call__(self, args: list[str]) -> CompletedProcess[str]:
        self.calls.append(args)
        if args[:2] == ["get", "namespaces"]:
            return _ok("".join(f"namespace/{ns}\n" for ns in self.secrets))
        if args[:2] == ["get", "secrets"]:
            namespace = args[args.index("-n") + 1]
            names = self.secrets.get(namespace, {})
            return _ok("".join(f"secret/{name}\n" for name in names))
        if args[:2] == ["get", "secret"]:
            namespace = args[args.index("-n") + 1]
            name = next(
                arg for arg in args[2:] if not arg.startswith("-") and arg != namespace
            )
            data = self.secrets.get(namespace, {}).get(name)
            if data is None:
                return _fail(f'secrets "{name}" not found')
            if any(arg.startswith("jsonpath=") for arg in args):
                return _ok(base64.b64encode(data.encode()).decode())
            return _ok(f"secret/{name}\n")
        return _fail(f"unexpected kubectl call: {args}")


@pytest.fixture
def make_config():
    """Factory for a one-context kubeconfig dict."""
    return _make_config


@pytest.fixture
def fake_kubectl():
    """Factory for a FakeKubectl serving the given secrets."""
    return FakeKubectl


@pytest.fixture
def secret_kubeconfig() -> str:
    return yaml.safe_dump(
        _make_config(
            "kubernetes-admin@kubernetes",
            "kubernetes",
            "kubernetes-admin",
            server="https://10.0.0.10:6443",
            token="remote",
            current="kubernetes-admin@kubernetes",
        )
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        kubeconfig_paths=[tmp_path / "kube" / "config"],
        cache_dir=tmp_path / "kube" / "cache" / "import",
    )


@pytest.fixture
def live_config(settings: Settings) -> Path:
    path = settings.kubeconfig
    path.parent.mkdir(parents=True, exist_ok=True)
    config = _make_config("ctxA", "cA", "uA", server="https://old", current="ctxA")
    path.write_text(yaml.safe_dump(config, sort_keys=False))
    return path
