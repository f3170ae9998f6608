"""Linkage graph and link-suggestion commands (``ig link`` / ``ig suggest``)."""

from __future__ import annotations

import asyncio
from typing import List, Optional

import typer
from rich.table import Table

from .cli_common import console, open_engine, styled
from .linkage import build_edge
from .models import TARGET_TYPES

link_app = typer.Typer(help="🔗 Manage links from artefacts to code, tests, data and artefacts.", no_args_is_help=True)
suggest_app = typer.Typer(help="💡 AI link suggestions: generate, accept, reject.", no_args_is_help=True)


# ===================================================================
# ig link
# ===================================================================

@link_app.command("add")
def link_add(
    artefact_id: str = typer.Argument(..., help="Source artefact."),
    target_type: str = typer.Argument(..., help=f"One of: {', '.join(TARGET_TYPES)}."),
    target_id: str = typer.Argument(..., help="File path, test file, table/KPI name or artefact id."),
    link_type: str = typer.Option("relates_to", "--link-type", help="Link type for artefact links."),
    confidence: float = typer.Option(1.0, "--confidence", min=0.0, max=1.0, help="Coupling confidence."),
    kpi: bool = typer.Option(False, "--kpi", help="Data target is a KPI."),
    test_name: Optional[str] = typer.Option(None, "--test-name", help="Test name within the test file."),
    user: str = typer.Option("", "--user", help="Author of the link."),
):
    """Add (or update the confidence of) a manual link."""
    if target_type not in TARGET_TYPES:
        raise typer.BadParameter(f"Target type must be one of: {', '.join(TARGET_TYPES)}")
    with open_engine() as engine:
        engine.get_artefact(artefact_id)
        edge = engine.add_link(artefact_id, build_edge(
            artefact_id, target_type, target_id,
            link_type=link_type, confidence=confidence, kpi=kpi, user_id=user, test_name=test_name,
        ))
    typer.echo(f"Linked {artefact_id} -> {target_type}:{edge.target_identifier} (edge {edge.id})")


@link_app.command("remove")
def link_remove(edge_id: str = typer.Argument(..., help="Edge id (see 'ig link list').")):
    """Remove a link. Past runs keep their own snapshot."""
    with open_engine() as engine:
        engine.remove_link(edge_id)
    typer.echo(f"Removed edge {edge_id}.")


@link_app.command("list")
def link_list(artefact_id: str = typer.Argument(..., help="Artefact whose links to list.")):
    """List every outgoing link of an artefact."""
    with open_engine() as engine:
        graph = engine.edges_for(artefact_id)
    if not len(graph):
        typer.echo(f"No links for '{artefact_id}'.")
        raise typer.Exit(code=0)

    table = Table(title=f"Links of {artefact_id}")
    table.add_column("Edge", no_wrap=True)
    table.add_column("Type")
    table.add_column("Target")
    table.add_column("Confidence", justify="right")
    table.add_column("Source")
    for edge in graph.all_edges():
        table.add_row(
            edge.id, edge.target_type, edge.target_identifier,
            f"{edge.confidence:.2f}", edge.link_source,
        )
    console.print(table)


# ===================================================================
# ig suggest
# ===================================================================

@suggest_app.command("generate")
def suggest_generate(
    artefact_id: str = typer.Argument(..., help="Artefact to propose links for."),
    code: Optional[List[str]] = typer.Option(None, "--code", help="Known code file (repeatable)."),
    data: Optional[List[str]] = typer.Option(None, "--data", help="Known data table/KPI (repeatable)."),
):
    """Ask the oracle for new links; they are stored as pending suggestions."""
    with open_engine() as engine:
        suggestions = asyncio.run(engine.generate_suggestions(artefact_id, code or None, data or None))
    if not suggestions:
        typer.echo("No new link suggestions.")
        return
    typer.echo(f"Stored {len(suggestions)} suggestion(s):")
    for s in suggestions:
        typer.echo(f"  {s.id}  {s.suggested_target_type}:{s.suggested_target_id}  "
                   f"confidence={s.confidence:.2f}  {s.reasoning}")


@suggest_app.command("list")
def suggest_list(
    artefact_id: str = typer.Argument(..., help="Artefact id."),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="pending, accepted or rejected."),
):
    """List link suggestions of an artefact."""
    with open_engine() as engine:
        suggestions = engine.list_suggestions(artefact_id, status=status)
    if not suggestions:
        typer.echo("No suggestions.")
        raise typer.Exit(code=0)

    table = Table(title=f"Suggestions for {artefact_id}")
    table.add_column("ID", no_wrap=True)
    table.add_column("Target")
    table.add_column("Link")
    table.add_column("Confidence", justify="right")
    table.add_column("Status")
    table.add_column("Reasoning")
    for s in suggestions:
        table.add_row(
            s.id, f"{s.suggested_target_type}:{s.suggested_target_id}", s.suggested_link_type,
            f"{s.confidence:.2f}", styled(s.status), s.reasoning,
        )
    console.print(table)


@suggest_app.command("accept")
def suggest_accept(suggestion_id: str = typer.Argument(..., help="Suggestion id.")):
    """Accept a suggestion: the link is added to the graph."""
    with open_engine() as engine:
        edge = engine.accept_suggestion(suggestion_id)
    typer.echo(f"Accepted: {edge.target_type}:{edge.target_identifier} linked (edge {edge.id}).")


@suggest_app.command("reject")
def suggest_reject(suggestion_id: str = typer.Argument(..., help="Suggestion id.")):
    """Reject a suggestion for good."""
    with open_engine() as engine:
        engine.reject_suggestion(suggestion_id)
    typer.echo(f"Rejected suggestion {suggestion_id}.")
