"""Shared output helpers for command modules."""

from __future__ import annotations

import json
from typing import Any, Callable, TypeVar

import typer
from rich.console import Console

T = TypeVar("T")

console = Console()


def print_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))


def run_or_exit(fn: Callable[[], T]) -> T:
    """Run ``fn``; domain errors become a red message and exit code 1."""
    try:
        return fn()
    except typer.Exit:
        raise
    except (RuntimeError, ValueError) as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from exc
