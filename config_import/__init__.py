"""Merge kubeconfigs from secrets, files or stdin into the active kubeconfig."""

__version__ = "1.0.0"
