"""Helpers shared by the CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from ocitrust.bridge.crypto_bridge import Ed25519SigningMechanism, Keyring
from ocitrust.errors import ImageTrustError

console = Console()


@contextmanager
def exit_on_trust_error(action: str) -> Iterator[None]:
    """Report an ``ImageTrustError`` and exit with status 1."""
    try:
        yield
    except ImageTrustError as exc:
        console.print(f"[bold red]{action} failed:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc


def load_mechanism(keyring_dir: Path) -> Ed25519SigningMechanism:
    return Ed25519SigningMechanism(Keyring.load(keyring_dir))
