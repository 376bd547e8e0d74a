"""Error types raised by config-import, each mapped to a process exit code."""

from __future__ import annotations


class ConfigImportError(Exception):
    exit_code = 1


class InvalidInvocation(ConfigImportError):
    exit_code = 1


class SelectionCancelled(ConfigImportError):
    exit_code = 2


class SecretNotFound(ConfigImportError):
    exit_code = 3

    def __init__(self, namespace: str, secret_name: str):
        super().__init__(
            f"Secret '{secret_name}' doesn't exist in namespace '{namespace}', aborting."
        )
        self.namespace = namespace
        self.secret_name = secret_name


class MalformedFragment(ConfigImportError):
    exit_code = 1


class MergeConflict(ConfigImportError):
    exit_code = 1


class ContextActivationFailed(ConfigImportError):
    exit_code = 4


class ClusterCommandError(ConfigImportError):
    exit_code = 1
