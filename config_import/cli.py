"""Command-line interface for kubectl-config-import."""

from __future__ import annotations

import argparse
import logging
import os
import shlex
import subprocess
import sys
from pathlib import Path
from typing import IO, NoReturn, Optional

import argcomplete
from rich.console import Console
from rich.markup import escape

from config_import import __version__
from config_import.cluster import Kubectl
from config_import.errors import (
    ConfigImportError,
    ContextActivationFailed,
    InvalidInvocation,
)
from config_import.importer import ImportOutcome, Importer
from config_import.settings import Settings

logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

console = Console(stderr=True)

VI_EDITORS = ("vi", "vim", "nvim")


class ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        raise InvalidInvocation(f"Warning, {message}")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = ArgumentParser(
        prog="kubectl-config_import",
        description="Merge kubeconfigs from a file, stdin, or kubernetes secret.",
        epilog=(
            "examples:\n"
            "  kubectl config-import default remote-cluster-secret\n"
            "  kubectl config-import -f ~/Downloads/foo\n"
            "  cat foo | kubectl config-import\n"
            "  kubectl config-import --delete"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("namespace", nargs="?", help="Namespace holding the secret")
    parser.add_argument("secret", nargs="?", help="Secret holding a kubeconfig")
    parser.add_argument(
        "--url",
        help="Set server url when importing secret, e.g. https://localhost:6443",
    )
    parser.add_argument(
        "--jsonpath",
        help=r"jsonpath for kubectl get secret (default: {.data.kubeconfig\.conf})",
    )
    parser.add_argument("-f", "--file", help="Import specified kubeconfig file")
    parser.add_argument(
        "-d", "--delete", action="store_true", help="Delete context interactively"
    )
    parser.add_argument("-e", "--edit", action="store_true", help="Edit kubeconfig")
    parser.add_argument(
        "--kubeconfig",
        help="Path to the kubeconfig to merge into (default: first entry of $KUBECONFIG)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show changes without writing the file",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    argcomplete.autocomplete(parser)
    return parser.parse_args(argv)


def format_names(names: list[str]) -> str:
    return ", ".join(names) if names else "none"


def count_items(value: object) -> int:
    if isinstance(value, list):
        return len(value)
    return 0


def edit_kubeconfig(settings: Settings) -> int:
    """Open every configured kubeconfig in $EDITOR."""
    cmd = shlex.split(settings.editor)
    if os.path.basename(cmd[0]) in VI_EDITORS:
        cmd.append("-O")
    cmd.extend(str(path) for path in settings.kubeconfig_paths)
    logger.info(f"Running: {' '.join(cmd)}")
    return subprocess.run(cmd).returncode


def print_outcome(outcome: ImportOutcome, settings: Settings) -> None:
    merged = outcome.merge.config
    console.print(f"Output kubeconfig: {settings.kubeconfig}")
    console.print(
        "Contexts: {contexts} | Clusters: {clusters} | Users: {users}".format(
            contexts=count_items(merged.get("contexts")),
            clusters=count_items(merged.get("clusters")),
            users=count_items(merged.get("users")),
        )
    )
    merge = outcome.merge
    if merge.duplicate_clusters:
        console.print(f"Duplicate clusters (last wins): {format_names(merge.duplicate_clusters)}")
    if merge.duplicate_users:
        console.print(f"Duplicate users (last wins): {format_names(merge.duplicate_users)}")
    if merge.duplicate_contexts:
        console.print(f"Duplicate contexts (last wins): {format_names(merge.duplicate_contexts)}")

    if not outcome.written:
        console.print("dry-run enabled: no changes made.")
        return
    if outcome.backup_path:
        console.print(f"[dim]Backup saved: {escape(str(outcome.backup_path))}[/dim]")
    console.print(f'[green]Switched to context "{escape(outcome.context)}".[/green]')


def stdin_is_piped(stdin: IO[str]) -> bool:
    try:
        return not stdin.isatty()
    except (AttributeError, ValueError):
        return False


def run(args: argparse.Namespace, settings: Settings, stdin: IO[str]) -> int:
    if args.edit:
        return edit_kubeconfig(settings)

    kubectl = Kubectl(settings.kubectl, kubeconfig=args.kubeconfig)
    importer = Importer(settings, kubectl=kubectl)

    if args.delete:
        name = importer.delete_context()
        console.print(f'[green]Deleted context "{escape(name)}".[/green]')
        return 0

    if args.file and (args.namespace or args.secret):
        raise InvalidInvocation("Warning, --file cannot be combined with namespace/secret")
    if args.url and (args.file or (not args.namespace and stdin_is_piped(stdin))):
        logger.warning("--url only applies when importing a secret, ignoring")

    if args.file:
        outcome = importer.import_file(Path(args.file).expanduser(), dry_run=args.dry_run)
    elif not args.namespace and stdin_is_piped(stdin):
        outcome = importer.import_stream(stdin, dry_run=args.dry_run)
    else:
        outcome = importer.import_secret(
            args.namespace,
            args.secret,
            server_url=args.url,
            jsonpath=args.jsonpath,
            dry_run=args.dry_run,
        )

    print_outcome(outcome, settings)
    return 0


def main(argv: Optional[list[str]] = None, stdin: Optional[IO[str]] = None) -> int:
    """Main entry point for the CLI."""
    try:
        args = parse_args(argv)

        if args.verbose:
            logging.getLogger().setLevel(logging.INFO)

        settings = Settings.from_env()
        if args.kubeconfig:
            settings = settings.with_kubeconfig(Path(args.kubeconfig).expanduser())

        return run(args, settings, stdin if stdin is not None else sys.stdin)

    except ContextActivationFailed as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        console.print("[red]Failed to merge kubeconfig, aborting.[/red]")
        return exc.exit_code
    except ConfigImportError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        return exc.exit_code
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled.[/yellow]")
        return 130
    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        logger.debug("Unexpected error", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
