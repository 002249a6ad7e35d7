"""``ocitrust keygen DIR NAME``: generate an Ed25519 key pair into a keyring."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.panel import Panel

from ocitrust.bridge.crypto_bridge import Keyring, generate_keypair
from ocitrust.cli.commands._common import console
from ocitrust.config import config


def keygen_cmd(
    name: str = typer.Argument(..., help="Key name; files are NAME.key and NAME.pub."),
    keyring_dir: Path = typer.Option(
        config.keyring_path, "--keyring", "-k", help="Keyring directory."
    ),
) -> None:
    """Generate a signing key and print its key identity."""
    if (keyring_dir / f"{name}.key").exists():
        console.print(f"[bold red]Key {name!r} already exists in {keyring_dir}.[/bold red]")
        raise typer.Exit(code=1)

    private_key, public_key = generate_keypair()
    fingerprint = Keyring.save_keypair(keyring_dir, name, private_key, public_key)

    console.print(
        Panel(
            "\n".join([
                "[bold green]Key pair generated.[/bold green]",
                "",
                f"[bold]Key ID:[/bold]  {fingerprint}",
                f"[bold]Keyring:[/bold] {keyring_dir}",
            ]),
            title="[bold]ocitrust keygen[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
    # Plain line for scripting
    console.print(fingerprint)
