"""ocitrust CLI, Typer-based command-line interface.

Provides the ``ocitrust`` command with subcommands for digesting manifests,
managing signing keys, signing and verifying manifests, writing manifests
into an OCI layout, and listing policy scopes for a reference.

All output uses Rich for formatted terminal display.
"""
