"""Main Typer application: imports and registers all CLI commands.

Entry point: ``ocitrust`` (configured via pyproject.toml console_scripts).

Commands: digest, keygen, sign, verify, put-manifest, scopes.
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from ocitrust.cli.commands.digest import digest_cmd
from ocitrust.cli.commands.keygen import keygen_cmd
from ocitrust.cli.commands.put_manifest import put_manifest_cmd
from ocitrust.cli.commands.scopes import scopes_cmd
from ocitrust.cli.commands.sign import sign_cmd
from ocitrust.cli.commands.verify import verify_cmd
from ocitrust.config import config

app = typer.Typer(
    name="ocitrust",
    help="ocitrust: content-addressed image storage and signature verification.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="digest", help="Print the digest and media type of a manifest.")(digest_cmd)
app.command(name="keygen", help="Generate an Ed25519 signing key pair.")(keygen_cmd)
app.command(name="sign", help="Sign a manifest for an image reference.")(sign_cmd)
app.command(name="verify", help="Verify a detached manifest signature.")(verify_cmd)
app.command(name="put-manifest", help="Store a manifest in an OCI layout.")(put_manifest_cmd)
app.command(name="scopes", help="Show policy identity and namespaces for an image.")(scopes_cmd)


@app.callback()
def configure_logging(
    log_level: str = typer.Option(
        config.log_level, "--log-level", help="Logging level for ocitrust."
    ),
) -> None:
    """Install a Rich log handler once per invocation."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=False, show_path=False)],
        force=True,
    )


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
