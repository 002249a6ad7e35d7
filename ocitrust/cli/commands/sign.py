"""``ocitrust sign MANIFEST``: produce a detached signature."""

from __future__ import annotations

from pathlib import Path

import typer

from ocitrust.cli.commands._common import console, exit_on_trust_error, load_mechanism
from ocitrust.config import config
from ocitrust.core.blob_writer import write_bytes_atomic
from ocitrust.core.signature import sign_docker_manifest


def sign_cmd(
    manifest_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="Manifest to sign."
    ),
    reference: str = typer.Option(
        ..., "--reference", "-r", help="Docker reference the signature vouches for."
    ),
    key_id: str = typer.Option(..., "--key-id", help="Signing key identity."),
    keyring_dir: Path = typer.Option(
        config.keyring_path, "--keyring", "-k", help="Keyring directory."
    ),
    output: Path = typer.Option(
        None, "--output", "-o", help="Signature file (default: MANIFEST.sig)."
    ),
) -> None:
    """Sign a manifest as the image *reference*."""
    output = output or manifest_file.with_name(manifest_file.name + ".sig")
    with exit_on_trust_error("Signing"):
        mechanism = load_mechanism(keyring_dir)
        signature = sign_docker_manifest(
            manifest_file.read_bytes(), reference, mechanism, key_id
        )
    write_bytes_atomic(output, signature)
    console.print(f"[bold green]Signed[/bold green] {reference} -> {output}")
