"""Read namespaces and secrets from the cluster through kubectl."""

from __future__ import annotations

import base64
import binascii
import logging
import subprocess

from config_import.errors import ClusterCommandError, MalformedFragment, SecretNotFound
from config_import.settings import DEFAULT_JSONPATH

logger = logging.getLogger(__name__)


class Kubectl:
    """Thin wrapper around the kubectl binary."""

    def __init__(self, binary: str = "kubectl", kubeconfig: str | None = None):
        self.binary = binary
        self.kubeconfig = kubeconfig

    def run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        """Run a kubectl command and return the result."""
        cmd = [self.binary]
        if self.kubeconfig:
            cmd.append(f"--kubeconfig={self.kubeconfig}")
        cmd.extend(args)
        logger.info(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as exc:
            raise ClusterCommandError(f"{self.binary} not found in PATH") from exc

    def check(self, args: list[str]) -> str:
        result = self.run(args)
        if result.returncode != 0:
            raise ClusterCommandError(
                f"kubectl {' '.join(args)} failed: {result.stderr.strip()}"
            )
        return result.stdout

    def list_namespaces(self) -> list[str]:
        output = self.check(["get", "namespaces", "-o", "name"])
        return _strip_kind(output)

    def list_secrets(self, namespace: str) -> list[str]:
        """Opaque secrets in ``namespace``; kubeconfigs are stored in these."""
        output = self.check(
            [
                "get",
                "secrets",
                "-n",
                namespace,
                "--field-selector",
                "type=Opaque",
                "-o",
                "name",
            ]
        )
        return _strip_kind(output)

    def secret_exists(self, namespace: str, secret_name: str) -> bool:
        result = self.run(["get", "secret", "-n", namespace, secret_name, "-o", "name"])
        return result.returncode == 0

    def validate_secret(self, namespace: str, secret_name: str) -> None:
        if not self.secret_exists(namespace, secret_name):
            raise SecretNotFound(namespace, secret_name)

    def read_secret(
        self, namespace: str, secret_name: str, jsonpath: str = DEFAULT_JSONPATH
    ) -> bytes:
        """Extract the field at ``jsonpath`` from a secret and base64-decode it."""
        encoded = self.check(
            ["get", "secret", secret_name, "-n", namespace, "-o", f"jsonpath={jsonpath}"]
        ).strip()
        if not encoded:
            raise MalformedFragment(
                f"secret '{secret_name}' has no data at {jsonpath}"
            )
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MalformedFragment(
                f"secret '{secret_name}' data at {jsonpath} is not valid base64"
            ) from exc


def _strip_kind(output: str) -> list[str]:
    # `-o name` prints "namespace/default", "secret/foo"
    names: list[str] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        names.append(line.split("/", 1)[-1])
    return names
