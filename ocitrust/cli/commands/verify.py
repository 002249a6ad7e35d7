"""``ocitrust verify SIGNATURE MANIFEST``: check a detached signature."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from ocitrust.cli.commands._common import console, exit_on_trust_error, load_mechanism
from ocitrust.config import config
from ocitrust.core.signature import verify_docker_manifest_signature


def verify_cmd(
    signature_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="Detached signature."
    ),
    manifest_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="Manifest the signature should cover."
    ),
    reference: str = typer.Option(
        ..., "--reference", "-r", help="Expected docker reference."
    ),
    key_id: str = typer.Option(..., "--key-id", help="Expected signer key identity."),
    keyring_dir: Path = typer.Option(
        config.keyring_path, "--keyring", "-k", help="Keyring directory."
    ),
) -> None:
    """Verify a signature; exits 1 unless every check passes."""
    with exit_on_trust_error("Verification"):
        mechanism = load_mechanism(keyring_dir)
        verified = verify_docker_manifest_signature(
            signature_file.read_bytes(),
            manifest_file.read_bytes(),
            reference,
            mechanism,
            key_id,
        )

    table = Table(title="Verified Signature")
    table.add_column("Claim", style="cyan")
    table.add_column("Value")
    table.add_row("Reference", verified.docker_reference)
    table.add_row("Manifest digest", verified.docker_manifest_digest)
    table.add_row("Signer", verified.signer_key_identity)
    console.print(table)
