"""Entry point for the ``zen`` command."""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from zen_assets import __version__
from zen_assets.cli.commands import assets as assets_cmd
from zen_assets.cli.commands import draft as draft_cmd

app = typer.Typer(
    name="zen",
    help="Workspace assets and document templates",
    add_completion=False,
    no_args_is_help=True,
)
app.add_typer(assets_cmd.app, name="assets")
app.command("draft")(draft_cmd.draft_command)


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"zen {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"
    ),
) -> None:
    """Manage zen workspace assets."""
    _configure_logging(verbose)


def main() -> None:
    app()


__all__ = ["app", "main"]
