"""``zen draft``: generate a task document from a catalog template."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from zen_assets.assets.client import build_asset_client
from zen_assets.cli.output import console, run_or_exit
from zen_assets.config import load_config
from zen_assets.draft import DraftResult, DraftService
from zen_assets.template.engine import build_template_engine


def _draft(activity: str, force: bool, preview: bool, output: Optional[str]) -> DraftResult:
    start = Path.cwd()
    config = load_config(start)
    with build_asset_client(config.assets, start) as client:
        engine = build_template_engine(client, config.templates)
        return DraftService(client, engine, start=start).draft(activity, force=force, preview=preview, output=output)


def draft_command(
    activity: str = typer.Argument(..., help="Activity command, e.g. feature-spec"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
    preview: bool = typer.Option(False, "--preview", help="Print the document instead of writing it"),
    output: Optional[str] = typer.Option(None, "--output", help="Custom output path (relative to the task)"),
) -> None:
    """Generate a document populated with the current task's manifest data."""
    result = run_or_exit(lambda: _draft(activity, force, preview, output))

    if result.preview:
        typer.echo(f"--- Preview of {result.path.name} ---")
        typer.echo(result.content, nl=False)
        typer.echo("\n--- End Preview ---")
        return

    console.print(
        f"[green]✓[/green] Generated {result.path.name} with task {result.task_id} data in {result.path.parent}"
    )
