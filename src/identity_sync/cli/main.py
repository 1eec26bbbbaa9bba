"""identity-sync CLI - Main entrypoint.

Usage:
    identity-sync apply identity.yaml
    identity-sync status
    identity-sync destroy player-api
"""

from __future__ import annotations

import typer

from identity_sync.cli.commands import apply, destroy, status

app = typer.Typer(
    name="identity-sync",
    help="Declarative sync of identity clients and accounts",
    add_completion=True,
)

app.command("apply")(apply)
app.command("status")(status)
app.command("destroy")(destroy)


def create_app() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    create_app()
