"""Typer-based CLI for ImpactGraph impact analysis."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.panel import Panel
from rich.table import Table

from . import __version__, config_manager
from .cli_common import console, items_table, open_engine, print_run, read_content_file, score_text, styled
from .cli_links import link_app, suggest_app
from .models import REVIEW_STATUSES, Artefact
from .report import REPORTS, render

app = typer.Typer(
    help="📈 ImpactGraph CLI: what else breaks when a product artefact changes.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

artefact_app = typer.Typer(help="📄 Register and update tracked artefacts.", no_args_is_help=True)

app.add_typer(artefact_app, name="artefact")
app.add_typer(link_app, name="link")
app.add_typer(suggest_app, name="suggest")

PROVIDERS = ("heuristic", "ollama", "groq", "openai", "anthropic", "gemini", "openrouter")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"ImpactGraph CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging."),
):
    """ImpactGraph CLI: change detection, impact scoring and review for product artefacts."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ===================================================================
# Artefacts
# ===================================================================

@artefact_app.command("add")
def artefact_add(
    artefact_id: str = typer.Argument(..., help="Artefact identifier."),
    title: str = typer.Option(..., "--title", "-t", help="Artefact title."),
    artifact_type: str = typer.Option("prd", "--type", help="prd, canvas, roadmap, story, epic, tech_spec..."),
    content_file: Path = typer.Option(..., "--content-file", "-f", exists=True, dir_okay=False,
                                      help="Markdown, text or JSON content."),
    context: Optional[str] = typer.Option(None, "--context", "-c", help="Product context id."),
):
    """Register an artefact so it can be analysed."""
    content = read_content_file(content_file)
    with open_engine() as engine:
        engine.save_artefact(Artefact(
            id=artefact_id,
            title=title,
            content=content,
            artifact_type=artifact_type,
            product_context_id=context,
        ))
    typer.echo(f"Registered artefact '{artefact_id}' ({artifact_type}).")


@artefact_app.command("update")
def artefact_update(
    artefact_id: str = typer.Argument(..., help="Artefact identifier."),
    content_file: Path = typer.Option(..., "--content-file", "-f", exists=True, dir_okay=False,
                                      help="New content."),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="New title."),
):
    """Replace an artefact's content (the next analysis diffs against the last analysed version)."""
    content = read_content_file(content_file)
    with open_engine() as engine:
        artefact = engine.get_artefact(artefact_id)
        artefact.content = content
        artefact.updated_at = ""
        if title:
            artefact.title = title
        engine.save_artefact(artefact)
    typer.echo(f"Updated artefact '{artefact_id}'.")


# ===================================================================
# Runs
# ===================================================================

@app.command("analyze")
def analyze(
    artefact_id: str = typer.Argument(..., help="Artefact to analyse."),
    against: Optional[Path] = typer.Option(
        None, "--against", "-a", exists=True, dir_okay=False,
        help="Compare against an uploaded document instead of the last analysed version.",
    ),
):
    """Run an impact analysis and print the result."""
    with open_engine() as engine:
        if against is not None:
            text = against.read_text(encoding="utf-8", errors="replace")
            run = asyncio.run(engine.analyze_document(artefact_id, text, document_name=against.name))
        else:
            run = asyncio.run(engine.analyze(artefact_id))
        print_run(run)
        items = engine.get_items(run.id)
        if items:
            console.print(items_table(items))
        elif run.status == "completed":
            typer.echo("No impacted items.")
    if run.status == "failed":
        raise typer.Exit(code=1)


@app.command("runs")
def runs(artefact_id: str = typer.Argument(..., help="Artefact whose runs to list.")):
    """List runs of an artefact, newest first."""
    with open_engine() as engine:
        engine.get_artefact(artefact_id)
        history = engine.list_runs(artefact_id)
    if not history:
        typer.echo(f"No runs yet for '{artefact_id}'.")
        raise typer.Exit(code=0)

    table = Table(title=f"Impact runs for {artefact_id}")
    table.add_column("Run", no_wrap=True)
    table.add_column("Created")
    table.add_column("Status")
    table.add_column("Score", justify="right")
    table.add_column("Changes", justify="right")
    for run in history:
        table.add_row(
            run.id,
            run.created_at[:19],
            styled(run.status),
            score_text(run.impact_score) if run.status == "completed" else "-",
            str(run.summary.total_changes),
        )
    console.print(table)


@app.command("show")
def show(run_id: str = typer.Argument(..., help="Run id.")):
    """Show a run with its items and review progress."""
    with open_engine() as engine:
        run = engine.get_run(run_id)
        print_run(run)
        items = engine.get_items(run_id)
        if items:
            console.print(items_table(items))
            progress = engine.review_progress(run_id)
            counts = ", ".join(f"{k}={v}" for k, v in progress["counts"].items())
            typer.echo(f"Review progress: {progress['percent_reviewed']}% ({counts})")


@app.command("review")
def review(
    item_id: str = typer.Argument(..., help="Impact item id."),
    status: str = typer.Argument(..., help=f"One of: {', '.join(REVIEW_STATUSES)}."),
):
    """Set the review status of one impact item."""
    with open_engine() as engine:
        item = engine.set_item_status(item_id, status.lower().strip())
    typer.echo(f"{item.item_type}:{item.item_name} is now {item.review_status}.")


@app.command("diff")
def diff(
    older: Optional[str] = typer.Argument(None, help="Older run id."),
    newer: Optional[str] = typer.Argument(None, help="Newer run id."),
    latest: Optional[str] = typer.Option(
        None, "--latest", "-l", help="Diff the two newest completed runs of this artefact.",
    ),
):
    """Compare two runs of the same artefact."""
    if latest is None and (older is None or newer is None):
        raise typer.BadParameter("Give OLDER and NEWER run ids, or --latest ARTEFACT_ID.")

    with open_engine() as engine:
        result = engine.diff_latest(latest) if latest else engine.diff_runs(older, newer)

    if not result.available:
        console.print(f"[yellow]Comparison unavailable: {result.reason} "
                      f"({result.completed_runs} completed).[/yellow]")
        raise typer.Exit(code=0)

    typer.echo(f"Score delta: {result.score_delta:+g} ({result.trend})")
    for label, group, style in (
        ("New", result.new, "red"),
        ("Resolved", result.resolved, "green"),
        ("Persisted", result.persisted, "yellow"),
    ):
        console.print(f"[{style}]{label} ({len(group)})[/{style}]")
        for item in group:
            typer.echo(f"  {item.key}  score={item.impact_score:g}")


@app.command("report")
def report(
    run_id: str = typer.Argument(..., help="Run id."),
    kind: str = typer.Option("full", "--kind", "-k", help=f"One of: {', '.join(REPORTS)}."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write markdown to this file."),
):
    """Export a run as a markdown checklist, test plan or full report."""
    if kind not in REPORTS:
        raise typer.BadParameter(f"Kind must be one of: {', '.join(REPORTS)}")
    with open_engine() as engine:
        run = engine.get_run(run_id)
        text = render(kind, run, engine.get_items(run_id))
    if output is None:
        typer.echo(text)
        return
    output.write_text(text, encoding="utf-8")
    typer.echo(f"Wrote {kind} report to {output}")


# ===================================================================
# LLM configuration
# ===================================================================

@app.command("set-llm")
def set_llm(
    provider: str = typer.Argument(..., help=f"LLM provider: {', '.join(PROVIDERS)}."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name (uses provider default if not set)."),
    api_key: Optional[str] = typer.Option(None, "--api-key", "-k", help="API key for cloud providers."),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", "-e", help="Custom endpoint URL."),
):
    """Switch the LLM provider used by the classifier and link-suggestion oracles."""
    provider = provider.lower().strip()
    if provider not in PROVIDERS:
        raise typer.BadParameter(f"Unknown provider '{provider}'. Choose from: {', '.join(PROVIDERS)}")

    defaults = config_manager.get_provider_config(provider)
    resolved_model = model or defaults.get("model", "")
    resolved_endpoint = endpoint or defaults.get("endpoint", "")
    if provider not in ("heuristic", "ollama") and not api_key:
        current = config_manager.load_config()
        if current.get("provider") == provider and current.get("api_key"):
            api_key = current["api_key"]
        else:
            api_key = typer.prompt(f"Enter your {provider} API key", hide_input=True)

    if not config_manager.save_config(provider, resolved_model, api_key or "", resolved_endpoint):
        console.print("[red]❌ Could not write configuration.[/red]")
        raise typer.Exit(code=1)
    typer.echo(f"LLM provider set to {provider}" + (f" ({resolved_model})" if resolved_model else ""))


@app.command("show-llm")
def show_llm():
    """Show current LLM provider and analysis settings."""
    cfg = config_manager.load_config()
    analysis = config_manager.load_analysis_config()
    api_key = cfg.get("api_key", "")
    masked = api_key[:4] + "•" * min(max(len(api_key) - 4, 0), 16) if api_key else "(not set)"
    lines = [
        f"Provider  {cfg.get('provider', 'heuristic')}",
        f"Model     {cfg.get('model') or '-'}",
        f"Endpoint  {cfg.get('endpoint') or '-'}",
        f"API key   {masked}",
        "",
        f"Oracle timeout   {analysis['oracle_timeout']}s",
        f"Max concurrency  {analysis['max_concurrency']}",
        f"Max document     {analysis['max_document_chars']} chars",
    ]
    console.print(Panel("\n".join(lines), title="LLM configuration", border_style="cyan"))


if __name__ == "__main__":
    app()
