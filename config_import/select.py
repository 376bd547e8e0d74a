"""Interactive single-choice selection with fzf or a numbered prompt."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys

from rich.console import Console
from rich.table import Table

logger = logging.getLogger(__name__)
console = Console(stderr=True)

FZF_OPTIONS = [
    "--exit-0",
    "--ansi",
    "--info=right",
    "--height=50%",
    "--no-preview",
    "--margin=1,3,0,3",
    "--scrollbar=▏▕",
]


def fzf_available() -> bool:
    return shutil.which("fzf") is not None


def select_with_fzf(items: list[str], prompt: str) -> str | None:
    result = subprocess.run(
        ["fzf", *FZF_OPTIONS, "--prompt", prompt],
        input="\n".join(items),
        stdout=subprocess.PIPE,
        text=True,
    )
    # fzf exits 1 on no match and 130 on interrupt
    if result.returncode != 0:
        logger.info(f"fzf exited with {result.returncode}")
        return None
    choice = result.stdout.strip()
    return choice or None


def resolve_choice(raw: str, items: list[str]) -> str | None:
    """Match input against ``items`` by number, exact name or unique substring."""
    raw = raw.strip()
    if not raw:
        return None

    if raw.isdigit():
        idx = int(raw)
        if 1 <= idx <= len(items):
            return items[idx - 1]

    for item in items:
        if raw == item or raw.lower() == item.lower():
            return item

    matches = [item for item in items if raw.lower() in item.lower()]
    if len(matches) == 1:
        return matches[0]

    return None


def select_with_prompt(items: list[str], prompt: str) -> str | None:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Name", style="green")
    for idx, item in enumerate(items, 1):
        table.add_row(str(idx), item)
    console.print(table)

    while True:
        try:
            print(prompt, end="", file=sys.stderr, flush=True)
            raw = input().strip()
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled.[/yellow]")
            return None
        except EOFError:
            return None

        if not raw or raw.lower() in ("q", "quit", "exit"):
            return None

        choice = resolve_choice(raw, items)
        if choice:
            return choice
        console.print(f"[red]Invalid selection: {raw}[/red]")


def select_one(items: list[str], prompt: str) -> str | None:
    """Let the user pick one of ``items``. None means the user cancelled."""
    if not items:
        logger.info("Nothing to select from")
        return None
    if fzf_available():
        return select_with_fzf(items, prompt)
    return select_with_prompt(items, prompt)
