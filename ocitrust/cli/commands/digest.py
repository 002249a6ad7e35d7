"""``ocitrust digest FILE``: print a manifest's digest and media type."""

from __future__ import annotations

from pathlib import Path

import typer

from ocitrust.cli.commands._common import console, exit_on_trust_error
from ocitrust.config import config
from ocitrust.core.manifest import guess_mime_type, manifest_digest


def digest_cmd(
    manifest_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="Manifest to digest."
    ),
    algorithm: str = typer.Option(
        config.digest_algorithm, "--algorithm", help="Digest algorithm."
    ),
) -> None:
    """Digest a manifest the way a registry identifies it.

    Signed schema 1 manifests digest their JWS payload, not the file bytes.
    """
    manifest = manifest_file.read_bytes()
    with exit_on_trust_error("Digest"):
        digest = manifest_digest(manifest, algorithm)
    media_type = guess_mime_type(manifest) or "unknown"
    console.print(f"[bold]{digest}[/bold]  [dim]{media_type}[/dim]")
