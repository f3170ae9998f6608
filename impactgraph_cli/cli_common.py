"""Helpers shared by the ``ig`` command modules."""

from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

import typer
from rich.console import Console
from rich.table import Table

from .aggregator import severity_band
from .engine import ImpactEngine
from .exceptions import ImpactGraphError, NotFound
from .models import ImpactItem, ImpactRun

console = Console()

BAND_STYLES = {"low": "green", "moderate": "yellow", "critical": "bold red"}
STATUS_STYLES = {
    "pending": "dim",
    "running": "cyan",
    "completed": "green",
    "failed": "red",
    "review_required": "yellow",
    "reviewed": "green",
    "ignored": "dim",
}


@contextmanager
def open_engine() -> Iterator[ImpactEngine]:
    """Engine over the configured database.

    Unknown run, item, edge or suggestion ids exit with code 1; rejected
    input (including an unknown artefact) and other engine errors exit with 2.
    """
    engine = ImpactEngine()
    try:
        yield engine
    except NotFound as exc:
        console.print(f"[red]❌ {exc.message}[/red]")
        raise typer.Exit(code=1)
    except ImpactGraphError as exc:
        console.print(f"[red]❌ {exc.message}[/red]")
        raise typer.Exit(code=2)
    finally:
        engine.close()


def read_content_file(path: Path) -> Any:
    """JSON files load as a tree, everything else as text."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"{path} is not valid JSON: {exc}")
    return text


def styled(value: str) -> str:
    style = STATUS_STYLES.get(value)
    return f"[{style}]{value}[/{style}]" if style else value


def score_text(score: float) -> str:
    style = BAND_STYLES[severity_band(score)]
    return f"[{style}]{score:g}[/{style}]"


def items_table(items: Sequence[ImpactItem], title: str = "Impacted items") -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Type")
    table.add_column("Item")
    table.add_column("Score", justify="right")
    table.add_column("Status")
    table.add_column("Reason")
    for item in items:
        table.add_row(
            item.id,
            item.item_type,
            item.item_name,
            score_text(item.impact_score),
            styled(item.review_status),
            item.impact_reason,
        )
    return table


def print_run(run: ImpactRun) -> None:
    summary = run.summary
    typer.echo(f"Run {run.id} {run.status}")
    if run.status == "failed":
        console.print(f"[red]Reason: {run.error}[/red]")
        return
    console.print(
        f"Score: {score_text(run.impact_score)} ({severity_band(run.impact_score)}) | "
        f"Changes: {summary.total_changes} | High severity: {summary.high_severity_count} | "
        f"Linked artefacts: {summary.linked_artefacts} | Manual links: {summary.manual_links}"
    )
    if summary.type_breakdown:
        breakdown = ", ".join(f"{k}={v}" for k, v in sorted(summary.type_breakdown.items()))
        typer.echo(f"Change types: {breakdown}")
    if summary.degraded:
        console.print("[yellow]⚠️  Partially degraded:[/yellow]")
        for warning in summary.warnings:
            console.print(f"   [yellow]- {warning}[/yellow]")
