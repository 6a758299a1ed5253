"""``zen assets`` commands: browse the catalog, sync it and manage the cache."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from zen_assets.assets.catalog import DEFAULT_LIST_LIMIT
from zen_assets.assets.client import AssetClient, SyncError, build_asset_client
from zen_assets.assets.models import AssetFilter, GetAssetOptions, SyncRequest, SyncResult, SyncStatus
from zen_assets.cli.output import console, print_json, run_or_exit
from zen_assets.config import load_config
from zen_assets.errors import AssetNotFoundError

app = typer.Typer(help="Asset catalog commands")


def _client() -> AssetClient:
    workspace_root = Path.cwd()
    config = load_config(workspace_root)
    return build_asset_client(config.assets, workspace_root)


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def _print_sync_result(result: SyncResult) -> None:
    colour = {
        SyncStatus.SUCCESS: "green",
        SyncStatus.PARTIAL: "yellow",
        SyncStatus.ERROR: "red",
    }[result.status]
    console.print(f"[{colour}]Sync {result.status.value}[/{colour}] in {result.duration_ms} ms")
    console.print(
        f"- added: {result.assets_added}  updated: {result.assets_updated}  removed: {result.assets_removed}"
    )
    console.print(f"- cache size: {result.cache_size_mb:.2f} MB")
    if result.error:
        console.print(f"[{colour}]- {result.error}[/{colour}]")


@app.command("list")
def list_command(
    asset_type: str = typer.Option("", "--type", help="template | prompt | mcp | schema"),
    category: str = typer.Option("", "--category", help="Exact category"),
    tags: list[str] = typer.Option([], "--tag", help="Require this tag (repeatable)"),
    limit: int = typer.Option(DEFAULT_LIST_LIMIT, "--limit", min=1, help="Maximum rows"),
    offset: int = typer.Option(0, "--offset", min=0, help="Rows to skip"),
    as_json: bool = typer.Option(False, "--json", help="Render the listing as JSON"),
) -> None:
    """List catalog assets."""

    def _run() -> None:
        asset_filter = AssetFilter(type=asset_type, category=category, tags=tuple(tags), limit=limit, offset=offset)
        with _client() as client:
            listing = client.list_assets(asset_filter)

        if as_json:
            print_json(listing.model_dump(mode="json"))
            return

        if not listing.assets:
            console.print("[yellow]No assets match the filter.[/yellow]")
            return

        table = Table(title=f"Assets ({len(listing.assets)} of {listing.total})")
        table.add_column("Name", style="bold")
        table.add_column("Type", style="cyan")
        table.add_column("Format")
        table.add_column("Category", style="magenta")
        table.add_column("Tags")
        table.add_column("Description")
        for record in listing.assets:
            table.add_row(
                record.name,
                record.type.value,
                record.format,
                record.category,
                ", ".join(record.tags),
                record.description,
            )
        console.print(table)
        if listing.has_more:
            console.print("[dim]More assets available; use --offset to page.[/dim]")

    run_or_exit(_run)


@app.command("info")
def info_command(
    name: str = typer.Argument(..., help="Asset name"),
    content: bool = typer.Option(False, "--content", help="Fetch and print the asset content"),
    as_json: bool = typer.Option(False, "--json", help="Render the asset as JSON"),
) -> None:
    """Show one asset's catalog entry."""

    def _run() -> None:
        with _client() as client:
            record = client.describe_asset(name)
            if record is None:
                raise AssetNotFoundError(f"asset '{name}' not found")
            fetched = client.get_asset(name, GetAssetOptions()) if content else None

        if as_json:
            payload = record.model_dump(mode="json")
            if fetched is not None:
                payload["content"] = fetched.text
                payload["cached"] = fetched.cached
            print_json(payload)
            return

        console.print(f"[bold]{record.name}[/bold] ({record.type.value})")
        for label, value in (
            ("format", record.format),
            ("category", record.category),
            ("tags", ", ".join(record.tags)),
            ("stages", ", ".join(record.workflow_stages)),
            ("path", record.path),
            ("checksum", record.checksum),
            ("updated", record.updated_at),
            ("description", record.description),
        ):
            if value:
                console.print(f"- {label}: {value}")

        if record.variables:
            table = Table(title="Variables")
            table.add_column("Name", style="bold")
            table.add_column("Type", style="cyan")
            table.add_column("Required")
            table.add_column("Default")
            table.add_column("Description")
            for spec in record.variables:
                table.add_row(
                    spec.name,
                    spec.type,
                    "yes" if spec.required else "no",
                    "" if spec.default is None else str(spec.default),
                    spec.description,
                )
            console.print(table)

        if fetched is not None:
            typer.echo("")
            typer.echo(fetched.text)

    run_or_exit(_run)


@app.command("sync")
def sync_command(
    force: bool = typer.Option(False, "--force", help="Clear the asset cache before syncing"),
    branch: Optional[str] = typer.Option(None, "--branch", help="Sync this branch instead of the configured one"),
    as_json: bool = typer.Option(False, "--json", help="Render the sync result as JSON"),
) -> None:
    """Fetch the catalog manifest and refresh the local copy."""

    def _run() -> SyncResult:
        with _client() as client:
            try:
                return client.sync_repository(SyncRequest(force=force, branch=branch or ""))
            except SyncError as exc:
                if as_json:
                    print_json(exc.result.model_dump(mode="json"))
                    raise typer.Exit(1) from exc
                raise

    result = run_or_exit(_run)
    if as_json:
        print_json(result.model_dump(mode="json"))
    else:
        _print_sync_result(result)
    if result.status == SyncStatus.ERROR:
        raise typer.Exit(1)


@app.command("status")
def status_command(as_json: bool = typer.Option(False, "--json", help="Render status as JSON")) -> None:
    """Show cache usage and client metrics."""

    def _run() -> None:
        with _client() as client:
            info = client.get_cache_info()
            metrics = client.get_metrics()
            repository = client.config.repository_url
            branch = client.config.branch

        if as_json:
            print_json(
                {
                    "repository_url": repository,
                    "branch": branch,
                    "cache": info.model_dump(mode="json"),
                    "metrics": metrics,
                }
            )
            return

        table = Table(title="Asset status", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Repository", f"{repository} ({branch})")
        table.add_row("Cache entries", str(info.entry_count))
        table.add_row("Cache size", _format_size(info.total_size))
        table.add_row("Cache hit ratio", f"{info.cache_hit_ratio:.0%}")
        table.add_row("Last sync", str(info.last_sync or "never"))
        table.add_row("Syncs", str(metrics["sync_count"]))
        table.add_row("Errors", str(metrics["error_count"]))
        console.print(table)

    run_or_exit(_run)


@app.command("clear-cache")
def clear_cache_command(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Delete every cached asset."""
    if not yes and not typer.confirm("Delete all cached assets?"):
        typer.echo("Aborted.")
        raise typer.Exit(0)

    def _run() -> None:
        with _client() as client:
            client.clear_cache()
        console.print("[green]Asset cache cleared[/green]")

    run_or_exit(_run)
