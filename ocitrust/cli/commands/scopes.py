"""``ocitrust scopes TRANSPORT:REF``: list policy lookup keys for an image."""

from __future__ import annotations

import typer
from rich.markup import escape
from rich.table import Table

from ocitrust.cli.commands._common import console, exit_on_trust_error
from ocitrust.config import config
from ocitrust.core.image_store import StoreLocator
from ocitrust.transports import parse_image_name


def _default_locator() -> StoreLocator:
    return StoreLocator(
        driver=config.graph_driver,
        graph_root=str(config.graph_root.resolve()),
        run_root=str(config.run_root.resolve()),
        options=tuple(config.graph_options),
    )


def scopes_cmd(
    image_name: str = typer.Argument(
        ..., help="Image as TRANSPORT:REFERENCE, e.g. oci:/srv/layout:v1."
    ),
) -> None:
    """Print the policy identity, then each namespace from most to least specific."""
    with exit_on_trust_error("Parsing reference"):
        ref = parse_image_name(image_name, _default_locator())

    table = Table(title=f"Policy scopes ({ref.transport().name})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Scope", style="cyan")
    table.add_row("identity", escape(ref.policy_configuration_identity()))
    for index, namespace in enumerate(ref.policy_configuration_namespaces(), start=1):
        table.add_row(str(index), escape(namespace))
    console.print(table)
