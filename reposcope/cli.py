"""Typer-based CLI for reposcope repository analysis."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from . import __version__
from .config_manager import load_analysis_config, set_analysis_value
from .endpoint_extractor import EndpointExtractor
from .event_extractor import EventExtractor, build_flow_graph, event_stats
from .graph_export import to_dot, to_json
from .infra_extractor import InfraExtractor
from .models import AnalysisProgress, AnalysisResult, ParsedFile
from .orchestrator import AnalysisOrchestrator
from .parser import ParseError, SourceParser
from .scanner import iter_source_files
from .schema_extractor import SchemaExtractor

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="🔭 reposcope: static analysis of endpoints, schemas, events and dependencies.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="⚙️  Show or change analysis settings.", no_args_is_help=True)
app.add_typer(config_app, name="config")

T = TypeVar("T")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"reposcope v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log analysis detail to stderr."),
):
    """reposcope: recover structural facts from a repository without running it."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
            force=True,
        )


# ===================================================================
# Helpers
# ===================================================================

def _target_files(path: Path, accepts: Callable[[str], bool]) -> List[Path]:
    if path.is_file():
        return [path] if accepts(str(path)) else []
    return [p for p in iter_source_files(path) if accepts(str(p))]


def _try_parse(parser: SourceParser, file_path: Path) -> Optional[ParsedFile]:
    if not parser.supports(file_path):
        return None
    try:
        return parser.parse(file_path)
    except ParseError as exc:
        err_console.print(f"[yellow]⚠ {exc}[/yellow]")
        return None


def _collect(
    path: Path,
    supports: Callable[[str], bool],
    extract: Callable[[str, str, Optional[ParsedFile]], List[T]],
) -> List[T]:
    parser = SourceParser()
    facts: List[T] = []
    for file_path in _target_files(path, supports):
        content = file_path.read_text(encoding="utf-8", errors="ignore")
        facts.extend(extract(str(file_path), content, _try_parse(parser, file_path)))
    return facts


def _echo_json(payload) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _print_result(result: AnalysisResult) -> None:
    console.print(f"\n[bold cyan]📦 {result.repo_name}[/bold cyan]  "
                  f"[dim]{result.total_files} files • {result.total_lines} lines • "
                  f"{result.duration_ms / 1000:.2f}s[/dim]")
    if result.cancelled:
        console.print("[yellow]Analysis was cancelled; results are partial.[/yellow]")

    if result.languages:
        langs = ", ".join(f"{s.language} {s.percentage:.0f}%" for s in result.languages)
        console.print(f"  [dim]Languages[/dim]  {langs}")

    table = Table(title="Features", title_style="bold", show_lines=False)
    table.add_column("Feature", style="cyan")
    table.add_column("Path", style="dim")
    table.add_column("Lang")
    table.add_column("Files", justify="right")
    table.add_column("Endpoints", justify="right")
    table.add_column("Schemas", justify="right")
    table.add_column("Events", justify="right")
    table.add_column("Deps", justify="right")
    for feature in result.features:
        table.add_row(
            feature.name,
            feature.base_path,
            feature.language or "-",
            str(feature.file_count),
            str(len(feature.endpoints)),
            str(len(feature.schemas)),
            str(len(feature.events)),
            str(len(feature.dependencies)),
        )
    console.print(table)

    graph = result.dependency_graph
    if graph is not None:
        console.print(f"  [dim]Graph[/dim]      {len(graph.nodes)} nodes • {len(graph.edges)} edges • "
                      f"{len(graph.circular_dependencies)} cycles")
        for cycle in graph.circular_dependencies[:5]:
            console.print(f"    [red]↻[/red] {' → '.join(cycle + [cycle[0]])}")
        top = graph.external_dependencies[:5]
        if top:
            console.print("  [dim]Top packages[/dim] " + ", ".join(
                f"{d.package_name} ({d.import_count})" for d in top
            ))

    if result.infrastructure is not None and result.infrastructure.resources:
        summary = result.infrastructure.summary()
        console.print(
            f"  [dim]Infra[/dim]      terraform {summary['terraform']['resource_count']} • "
            f"k8s {summary['kubernetes']['resource_count']} • "
            f"compose services {summary['docker']['service_count']}"
        )

    if result.errors:
        console.print(f"\n[yellow]⚠ {len(result.errors)} problem(s):[/yellow]")
        for error in result.errors[:10]:
            console.print(f"  [dim]{error.severity}[/dim] {error.file}: {error.message}", highlight=False)


# ===================================================================
# Commands
# ===================================================================

@app.command("analyze")
def analyze(
    repo_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Repository to analyze."),
    feature: Optional[List[str]] = typer.Option(None, "--feature", "-f", help="Only analyze these features."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Re-parse every file."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the JSON result to a file."),
):
    """Run the full scan → parse → extract → graph pipeline."""
    orchestrator = AnalysisOrchestrator.from_config()

    if as_json:
        result = orchestrator.analyze(repo_path, features=feature, use_cache=not no_cache)
    else:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Scanning", total=None)

            def on_progress(snapshot: AnalysisProgress) -> None:
                label = snapshot.phase
                if snapshot.current_feature:
                    label = f"{snapshot.phase} [cyan]{snapshot.current_feature}[/cyan]"
                progress.update(
                    task,
                    description=label,
                    total=snapshot.total_files or None,
                    completed=snapshot.processed_files,
                )

            orchestrator.add_progress_listener(on_progress)
            result = orchestrator.analyze(repo_path, features=feature, use_cache=not no_cache)

    if output is not None:
        output.write_text(json.dumps(result.to_dict(), indent=2, default=str), encoding="utf-8")

    if as_json:
        _echo_json(result.to_dict())
    else:
        if result.success:
            _print_result(result)
        else:
            for error in result.errors:
                err_console.print(f"[red]❌ {error.message}[/red]")
        if output is not None:
            console.print(f"Wrote analysis to {output}")

    if not result.success:
        raise typer.Exit(code=1)


@app.command("parse")
def parse(
    file_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source file to parse."),
    as_json: bool = typer.Option(False, "--json", help="Print the parsed summary as JSON."),
):
    """Show exports, imports, functions, classes and types of one file."""
    try:
        parsed = SourceParser().parse(file_path, use_cache=False)
    except ParseError as exc:
        err_console.print(f"[red]❌ {exc}[/red]")
        raise typer.Exit(code=1)

    if as_json:
        _echo_json(parsed.to_dict())
        return

    console.print(f"[bold]{file_path}[/bold] [dim]({parsed.language}, {parsed.parse_duration_ms:.1f}ms)[/dim]")
    for label, items in (
        ("Exports", [f"{e.name} [dim]{e.kind}{' default' if e.is_default else ''} L{e.line}[/dim]" for e in parsed.exports]),
        ("Imports", [f"{i.name} [dim]from[/dim] {i.source} [dim]L{i.line}[/dim]" for i in parsed.imports]),
        ("Functions", [f"{f.name} [dim]L{f.line}[/dim]" for f in parsed.functions]),
        ("Classes", [f"{c.name} [dim]L{c.line}, {len(c.methods)} methods[/dim]" for c in parsed.classes]),
        ("Types", [f"{t.name} [dim]{t.kind} L{t.line}[/dim]" for t in parsed.types]),
    ):
        if items:
            console.print(f"\n[cyan]{label}[/cyan]")
            for item in items:
                console.print(f"  {item}")


@app.command("endpoints")
def endpoints(
    path: Path = typer.Argument(..., exists=True, help="File or directory to scan."),
    as_json: bool = typer.Option(False, "--json", help="Print endpoints as JSON."),
):
    """List HTTP endpoints."""
    extractor = EndpointExtractor()
    found = _collect(path, extractor.supports, extractor.extract)
    if as_json:
        _echo_json([e.to_dict() for e in found])
        return
    if not found:
        typer.echo("No endpoints found.")
        return

    table = Table(title=f"{len(found)} endpoints")
    table.add_column("Method", style="bold")
    table.add_column("Path", style="cyan")
    table.add_column("Handler")
    table.add_column("Framework", style="dim")
    table.add_column("Location", style="dim")
    for endpoint in found:
        table.add_row(endpoint.method, endpoint.path, endpoint.handler or "-",
                      endpoint.framework, f"{endpoint.file}:{endpoint.line}")
    console.print(table)


@app.command("schemas")
def schemas(
    path: Path = typer.Argument(..., exists=True, help="File or directory to scan."),
    as_json: bool = typer.Option(False, "--json", help="Print schemas as JSON."),
):
    """List database and validation schemas."""
    extractor = SchemaExtractor()
    found = _collect(path, extractor.supports, extractor.extract)
    if as_json:
        _echo_json([s.to_dict() for s in found])
        return
    if not found:
        typer.echo("No schemas found.")
        return

    for schema in found:
        console.print(f"\n[bold cyan]{schema.name}[/bold cyan] [dim]{schema.source_kind} • {schema.file}:{schema.line}[/dim]")
        for column in schema.columns:
            flags = []
            if column.primary_key:
                flags.append("pk")
            if column.unique:
                flags.append("unique")
            if not column.nullable:
                flags.append("not null")
            if column.default_value is not None:
                flags.append(f"default {column.default_value}")
            console.print(f"  {column.name}: [green]{column.type}[/green] [dim]{', '.join(flags)}[/dim]", highlight=False)
        for relation in schema.relations:
            console.print(f"  [magenta]→ {relation.kind} {relation.target}[/magenta]")


@app.command("events")
def events(
    path: Path = typer.Argument(..., exists=True, help="File or directory to scan."),
    flow: bool = typer.Option(False, "--flow", help="Print the producer → consumer flow graph."),
    as_json: bool = typer.Option(False, "--json", help="Print events as JSON."),
):
    """List event producers and consumers."""
    extractor = EventExtractor()
    found = _collect(path, extractor.supports, extractor.extract)
    if as_json:
        payload = build_flow_graph(found).to_dict() if flow else [e.to_dict() for e in found]
        _echo_json(payload)
        return
    if not found:
        typer.echo("No events found.")
        return

    if flow:
        graph = build_flow_graph(found)
        for edge in graph.edges:
            console.print(f"  {edge.source} [cyan]─{edge.event_name}→[/cyan] {edge.target}", highlight=False)
        return

    table = Table(title=f"{len(found)} events")
    table.add_column("Event", style="cyan")
    table.add_column("Role")
    table.add_column("Pattern", style="dim")
    table.add_column("Handler")
    table.add_column("Location", style="dim")
    for event in found:
        role = "producer" if event.is_producer else "consumer"
        table.add_row(event.name, role, event.pattern_kind, event.handler or "-", f"{event.file}:{event.line}")
    console.print(table)

    stats = event_stats(found)
    console.print(f"[dim]{stats['unique_event_names']} unique events • "
                  f"{len(stats['orphaned_producers'])} without consumers • "
                  f"{len(stats['orphaned_consumers'])} without producers[/dim]")


@app.command("infra")
def infra(
    repo_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Repository to scan."),
    as_json: bool = typer.Option(False, "--json", help="Print the infrastructure analysis as JSON."),
):
    """Summarize Terraform, Kubernetes and docker-compose declarations."""
    analysis = InfraExtractor().analyze_repository(repo_path)
    if as_json:
        _echo_json(analysis.to_dict())
        return
    for path, reason in analysis.failed_files.items():
        err_console.print(f"[yellow]⚠ Skipped {path}: {reason}[/yellow]")
    if not analysis.resources:
        typer.echo("No infrastructure files found.")
        return

    table = Table(title=f"{len(analysis.resources)} resources")
    table.add_column("Format", style="dim")
    table.add_column("Kind")
    table.add_column("Type", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Depends on")
    for resource in analysis.resources:
        table.add_row(resource.fmt, resource.kind, resource.resource_type, resource.name,
                      ", ".join(resource.dependencies) or "-")
    console.print(table)


@app.command("graph")
def graph(
    repo_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Repository to analyze."),
    fmt: str = typer.Option("dot", "--format", "-f", help="Export format: dot or json."),
    level: str = typer.Option("file", "--level", "-l", help="Graph level: file or feature."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
    highlight: bool = typer.Option(True, "--highlight-cycles/--no-highlight-cycles", help="Draw cycles in red (DOT)."),
):
    """Export the dependency graph as Graphviz DOT or node-link JSON."""
    fmt = fmt.lower()
    if fmt not in {"dot", "json"}:
        raise typer.BadParameter("Format must be one of: dot, json")
    level = level.lower()
    if level not in {"file", "feature"}:
        raise typer.BadParameter("Level must be one of: file, feature")

    result = AnalysisOrchestrator.from_config().analyze(repo_path)
    if not result.success:
        for error in result.errors:
            err_console.print(f"[red]❌ {error.message}[/red]")
        raise typer.Exit(code=1)

    dep_graph = result.dependency_graph if level == "file" else result.feature_graph
    title = f"{result.repo_name} {level} dependencies"
    text = to_json(dep_graph) if fmt == "json" else to_dot(dep_graph, title, highlight)

    if output is None:
        typer.echo(text)
        return
    output.write_text(text, encoding="utf-8")
    typer.echo(f"Exported graph to {output}")


# ===================================================================
# Config
# ===================================================================

@config_app.command("show")
def config_show():
    """Print the effective ``[analysis]`` settings."""
    cfg = load_analysis_config()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="yellow")
    table.add_column()
    for key, value in cfg.items():
        shown = ", ".join(value) if isinstance(value, list) else str(value)
        table.add_row(key, shown)
    console.print(table)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting name."),
    value: str = typer.Argument(..., help="New value (comma-separated for lists)."),
):
    """Persist one ``[analysis]`` setting."""
    try:
        saved = set_analysis_value(key, value)
    except KeyError:
        raise typer.BadParameter(f"Unknown setting '{key}'.")
    except ValueError:
        raise typer.BadParameter(f"Invalid value '{value}' for '{key}'.")
    if not saved:
        err_console.print("[red]❌ Could not write config file.[/red]")
        raise typer.Exit(code=1)
    typer.echo(f"Set {key} = {value}")


if __name__ == "__main__":
    app()
