"""Typer-based CLI for scopegraph."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__, config_manager
from .config import ScopeSettings, load_settings
from .errors import AnchorNotFoundError, PartialIndexError, QueryError, StartupError
from .models import ScopeDocument
from .orchestrator import ScopeOrchestrator

console = Console()

app = typer.Typer(
    help="scopegraph: bounded, explainable dependency scopes for a source tree.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

ROLE_STYLES = {"anchor": "bold cyan", "downstream": "green", "upstream": "magenta", "lateral": "blue"}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"scopegraph v{__version__}")
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
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level: DEBUG, INFO, WARNING, ERROR."),
):
    """Turn a query and a source tree into a scope document."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def _settings(
    roots: List[Path],
    skip: Optional[List[str]],
    workers: Optional[int],
    safety_cap: Optional[int],
    no_cache: bool,
) -> ScopeSettings:
    return load_settings(
        roots[0] if len(roots) == 1 else None,
        extra_skip_dirs=skip or None,
        workers=workers,
        safety_cap=safety_cap,
        cache=False if no_cache else None,
    )


def _fail(message: str, code: int) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(code=code)


def _build(orchestrator: ScopeOrchestrator) -> None:
    try:
        orchestrator.build()
    except StartupError as exc:
        _fail(str(exc), 1)
    except PartialIndexError as exc:
        _fail(str(exc), 1)


# ===================================================================
# Rendering
# ===================================================================

def render_document(document: ScopeDocument) -> None:
    intent = document.intent

    def _depth(value: Optional[int]) -> str:
        return "unbounded" if value is None else str(value)

    console.print(Panel(
        f"[bold]{escape(document.query)}[/bold]\n"
        f"anchor: {escape(intent.anchor_hint)} ({intent.anchor_kind})  "
        f"direction: {intent.direction}  "
        f"depth down/up: {_depth(intent.depth_down)}/{_depth(intent.depth_up)}",
        title="Scope",
        style="cyan",
    ))

    anchors = Table(title="Anchors", show_lines=False)
    anchors.add_column("Path", style="bold")
    anchors.add_column("Matched")
    anchors.add_column("Method")
    anchors.add_column("Confidence", justify="right")
    for anchor in document.anchors:
        anchors.add_row(escape(anchor.path), escape(anchor.matched), anchor.match_method, f"{anchor.match_confidence:.2f}")
    console.print(anchors)

    included = Table(title="Included", show_lines=False)
    included.add_column("Role")
    included.add_column("Depth", justify="right")
    included.add_column("Path", style="bold")
    included.add_column("Reason")
    for entry in document.included:
        style = ROLE_STYLES.get(entry.role, "")
        included.add_row(f"[{style}]{entry.role}[/{style}]", str(entry.depth), escape(entry.path), escape(entry.reason))
    console.print(included)

    if document.excluded:
        excluded = Table(title="Excluded", show_lines=False)
        excluded.add_column("Path")
        excluded.add_column("Reason", style="dim")
        for item in document.excluded:
            excluded.add_row(escape(item.path), escape(item.reason))
        console.print(excluded)

    for label, values in (
        ("Config sections", document.config_sections),
        ("Infrastructure", document.infrastructure),
        ("External", document.external_refs),
    ):
        if values:
            console.print(f"[bold]{label}:[/bold] {escape(', '.join(values))}")

    for warning in document.warnings:
        where = f" ({warning.path})" if warning.path else ""
        console.print(f"[yellow]{warning.kind}[/yellow]{escape(where)}: {escape(warning.message)}")

    summary = ", ".join(f"{k}={v}" for k, v in sorted(document.summary.items()))
    console.print(f"[dim]{summary} | tree {document.tree_hash}[/dim]")


# ===================================================================
# Commands
# ===================================================================

@app.command("scope")
def scope_command(
    root: Path = typer.Argument(..., help="Source root to scan."),
    query: str = typer.Argument(..., help='Free-form query, e.g. "OrderService and its dependencies".'),
    extra_roots: Optional[List[Path]] = typer.Option(None, "--root", "-r", help="Additional source root."),
    as_json: bool = typer.Option(False, "--json", help="Print the scope document as JSON."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the JSON document to a file."),
    skip: Optional[List[str]] = typer.Option(None, "--skip", help="Extra directory pattern to skip."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Worker threads."),
    safety_cap: Optional[int] = typer.Option(None, "--safety-cap", min=1, help="Maximum files in one scope."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Ignore and do not update the result cache."),
    from_scope: Optional[Path] = typer.Option(
        None, "--from-scope", exists=True, dir_okay=False, help="Restrict the walk to a prior scope's files.",
    ),
):
    """Compute the scope of QUERY over ROOT."""
    roots = [root] + list(extra_roots or [])
    settings = _settings(roots, skip, workers, safety_cap, no_cache)
    if from_scope is not None:
        prior = ScopeDocument.from_json(from_scope.read_text(encoding="utf-8"))
        orchestrator = ScopeOrchestrator.from_document(roots, prior, settings=settings)
    else:
        orchestrator = ScopeOrchestrator(roots, settings=settings)

    with orchestrator:
        _build(orchestrator)
        try:
            document = orchestrator.scope(query)
        except QueryError as exc:
            _fail(str(exc), 2)
        except AnchorNotFoundError as exc:
            console.print(f"[red]Error:[/red] {escape(str(exc))}")
            if exc.candidates:
                console.print("Closest candidates:")
                for path, score in exc.candidates[:5]:
                    console.print(f"  {escape(path)} ({score:.2f})")
            raise typer.Exit(code=2)

    payload = document.to_json()
    if output is not None:
        output.write_text(payload + "\n", encoding="utf-8")
    if as_json:
        typer.echo(payload)
    else:
        render_document(document)
        if output is not None:
            console.print(f"Wrote {escape(str(output))}")


@app.command("index")
def index_command(
    root: Path = typer.Argument(..., help="Source root to scan."),
    skip: Optional[List[str]] = typer.Option(None, "--skip", help="Extra directory pattern to skip."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Worker threads."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Ignore and do not update the result cache."),
):
    """Index ROOT and print graph statistics."""
    settings = _settings([root], skip, workers, None, no_cache)
    with ScopeOrchestrator(root, settings=settings) as orchestrator:
        _build(orchestrator)
        stats = orchestrator.stats()
        warnings = orchestrator.warnings
        tree_hash = orchestrator.graph.tree_hash

    table = Table(title=f"Index of {root}", show_lines=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key in sorted(stats):
        table.add_row(key, str(stats[key]))
    table.add_row("warnings", str(len(warnings)))
    console.print(table)
    for warning in warnings:
        console.print(f"[yellow]{warning.kind}[/yellow] ({escape(warning.path or '')}): {escape(warning.message)}")
    console.print(f"[dim]tree {tree_hash}[/dim]")


@app.command("edges")
def edges_command(
    root: Path = typer.Argument(..., help="Source root to scan."),
    file: str = typer.Argument(..., help="File id, relative to ROOT."),
    incoming: bool = typer.Option(False, "--incoming", help="Show edges pointing at FILE."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Ignore and do not update the result cache."),
):
    """List the typed edges of one file."""
    settings = _settings([root], None, None, None, no_cache)
    with ScopeOrchestrator(root, settings=settings) as orchestrator:
        _build(orchestrator)
        graph = orchestrator.graph
        file_id = file.replace("\\", "/")
        if file_id not in graph:
            _fail(f"File not indexed: {file}", 2)
        edges = graph.incoming(file_id) if incoming else graph.outgoing(file_id)

    table = Table(title=f"{'Incoming' if incoming else 'Outgoing'} edges of {file_id}", show_lines=False)
    table.add_column("Kind")
    table.add_column("Conf", justify="right")
    table.add_column("Source" if incoming else "Target", style="bold")
    table.add_column("Evidence", style="dim")
    for edge in edges:
        other = edge.source if incoming else str(edge.target)
        table.add_row(edge.kind, f"{edge.confidence:.2f}", escape(other), escape(edge.evidence))
    console.print(table)
    if not edges:
        console.print("No edges.")


# ===================================================================
# Configuration
# ===================================================================

@app.command("config-show")
def config_show():
    """Show the effective settings."""
    settings = load_settings()
    table = Table(title="Settings", show_lines=False)
    table.add_column("Key")
    table.add_column("Value")
    for key, value in sorted(vars(settings).items()):
        table.add_row(key, escape(str(value)))
    console.print(table)
    console.print(f"[dim]{config_manager.config_file()}[/dim]")


@app.command("config-set")
def config_set(
    workers: Optional[int] = typer.Option(None, "--workers", min=1),
    safety_cap: Optional[int] = typer.Option(None, "--safety-cap", min=1),
    depth_down: Optional[int] = typer.Option(None, "--depth-down", min=0),
    depth_up: Optional[int] = typer.Option(None, "--depth-up", min=0),
    skip: Optional[List[str]] = typer.Option(None, "--skip", help="Replace the skip-list."),
    cache: Optional[bool] = typer.Option(None, "--cache/--no-cache"),
):
    """Persist settings to the user config file."""
    values = {
        "workers": workers,
        "safety_cap": safety_cap,
        "default_depth_down": depth_down,
        "default_depth_up": depth_up,
        "skip_dirs": list(skip) if skip else None,
        "cache": cache,
    }
    if all(v is None for v in values.values()):
        _fail("Nothing to set.", 2)
    if not config_manager.save_scope_config(values):
        _fail(f"Could not write {config_manager.config_file()}", 1)
    console.print(f"Saved settings to {escape(str(config_manager.config_file()))}")


@app.command("config-reset")
def config_reset():
    """Remove saved settings, restoring defaults."""
    if not config_manager.clear_scope_config():
        _fail(f"Could not write {config_manager.config_file()}", 1)
    console.print("Settings reset to defaults.")


if __name__ == "__main__":
    app()
