"""``ocitrust put-manifest OCI_REF MANIFEST``: store and tag a manifest."""

from __future__ import annotations

from pathlib import Path

import typer

from ocitrust.cli.commands._common import console, exit_on_trust_error
from ocitrust.config import config
from ocitrust.transports.oci import parse_reference


def put_manifest_cmd(
    oci_reference: str = typer.Argument(..., help="OCI layout reference, DIR[:TAG]."),
    manifest_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="Manifest to store."
    ),
) -> None:
    """Translate a manifest to OCI if needed, then store and tag it."""
    with exit_on_trust_error("Storing manifest"):
        ref = parse_reference(oci_reference)
        destination = ref.new_image_destination(chunk_size=config.blob_chunk_size)
        descriptor = destination.put_manifest(manifest_file.read_bytes())
    console.print(
        f"[bold green]Stored[/bold green] {descriptor.digest} "
        f"({descriptor.size} bytes) as {ref.string_within_transport()}"
    )
