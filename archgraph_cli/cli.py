"""Typer-based CLI for ArchGraph architecture analysis."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from . import __version__, config_manager
from .analysis import ScanOptions
from .config import SUPPORTED_EXTENSIONS
from .errors import ArchgraphError
from .llm import LocalLLM
from .orchestrator import ArchitecturePipeline
from .storage import ArchitectureStore
from .tracing import validate_trace

console = Console()

app = typer.Typer(
    help="ArchGraph CLI: C4 component diagrams and execution traces from source code.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
diagrams_app = typer.Typer(help="Stored cluster graphs.", no_args_is_help=True)
traces_app = typer.Typer(help="Stored execution traces.", no_args_is_help=True)
inventory_app = typer.Typer(help="Cached inventory.", no_args_is_help=True)
app.add_typer(diagrams_app, name="diagrams")
app.add_typer(traces_app, name="traces")
app.add_typer(inventory_app, name="inventory")

ALL_PROVIDERS = ["ollama", "groq", "openai", "anthropic", "gemini", "openrouter"]

WorkspaceArg = typer.Argument(Path("."), exists=True, file_okay=False, help="Workspace root.")


def version_callback(value: bool):
    if value:
        typer.echo(f"ArchGraph CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", help="Show progress logging."),
    version: Optional[bool] = typer.Option(
        None, "--version", "-v", help="Show version and exit.", callback=version_callback, is_eager=True,
    ),
):
    """ArchGraph CLI: local-first architecture mapping with an LLM collaborator."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _fail(exc: object) -> NoReturn:
    typer.echo(typer.style(f"Error: {exc}", fg=typer.colors.RED), err=True)
    raise typer.Exit(code=1)


def _print_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2))


# ===================================================================
# Analysis
# ===================================================================

@app.command("analyze")
def analyze(
    workspace: Path = WorkspaceArg,
    ext: Optional[List[str]] = typer.Option(None, "--ext", help="File extension to include (repeatable)."),
    max_files: Optional[int] = typer.Option(None, "--max-files", min=1, help="Cap on scanned files."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Ignore the cached inventory."),
    as_json: bool = typer.Option(False, "--json", help="Print the inventory as JSON."),
):
    """Scan a workspace and cache its inventory."""
    unsupported = [e for e in ext or () if e not in SUPPORTED_EXTENSIONS]
    if unsupported:
        _fail(
            f"Unsupported extension(s): {', '.join(unsupported)}. "
            f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )
    pipeline = ArchitecturePipeline(workspace)
    options = None
    if ext or max_files:
        options = ScanOptions.from_settings(pipeline.settings, extensions=ext or None, max_files=max_files)
    try:
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
            disable=as_json,
        ) as progress:
            task = progress.add_task("Analyzing files", total=None)
            inventory = pipeline.analyze(
                use_cache=not no_cache,
                options=options,
                progress_callback=lambda done, total: progress.update(task, completed=done, total=total),
            )
    except ArchgraphError as exc:
        _fail(exc)

    if as_json:
        _print_json(inventory.to_dict())
        return
    meta = inventory.metadata
    console.print(
        f"[bold green]Inventory:[/bold green] {meta.file_count} files, "
        f"{len(inventory.dependencies)} dependencies, {meta.total_loc} LOC "
        f"({meta.duration_ms} ms)"
    )


@app.command("generate")
def generate(
    workspace: Path = WorkspaceArg,
    hint: Optional[str] = typer.Option(None, "--hint", help="Guidance passed to the LLM."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Re-scan instead of using the cached inventory."),
):
    """Cluster the workspace into C4 components and save the diagram."""
    pipeline = ArchitecturePipeline(workspace)
    try:
        with console.status("Clustering architecture..."):
            graph = pipeline.generate(hint=hint, use_cache=not no_cache)
    except ArchgraphError as exc:
        _fail(exc)

    table = Table(title=f"Diagram {graph.id}")
    table.add_column("Cluster", style="cyan")
    table.add_column("Type")
    table.add_column("Layer")
    table.add_column("Files", justify="right")
    for cluster in graph.clusters:
        table.add_row(cluster.label, cluster.component_type or "-", cluster.layer or "-", str(len(cluster.files)))
    console.print(table)
    console.print(f"Saved diagram [bold]{graph.id}[/bold] ({len(graph.cluster_edges)} edges)")


@app.command("trace")
def trace(
    workspace: Path = WorkspaceArg,
    diagram: str = typer.Option(..., "--diagram", "-d", help="Base diagram id."),
    entry: str = typer.Option(..., "--entry", "-e", help="Entry point description."),
    steps_file: Path = typer.Option(..., "--steps", exists=True, dir_okay=False, help="JSON array of steps."),
    name: bool = typer.Option(False, "--name", help="Ask the LLM to name the trace."),
):
    """Build and save an execution trace from a JSON step file."""
    try:
        steps = json.loads(steps_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        _fail(exc)
    pipeline = ArchitecturePipeline(workspace)
    try:
        result = pipeline.trace(diagram, entry, steps, name_with_collaborator=name)
    except ArchgraphError as exc:
        _fail(exc)
    console.print(
        f"Saved trace [bold]{result.id}[/bold]: {result.metadata.total_steps} steps, "
        f"{len(result.animated_edges)} animated edges"
    )


# ===================================================================
# Diagrams / traces / inventory
# ===================================================================

def _listing_table(title: str, rows: List[Dict[str, Any]], columns: List[str]) -> Table:
    table = Table(title=title)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*(str(row.get(c, "")) for c in columns))
    return table


@diagrams_app.command("list")
def diagrams_list(workspace: Path = WorkspaceArg):
    """List saved diagrams, newest first."""
    rows = ArchitectureStore(workspace).list_cluster_graphs()
    if not rows:
        typer.echo("No diagrams saved yet.")
        return
    console.print(_listing_table("Diagrams", rows, ["id", "createdAt", "clusterCount", "fileCount", "name"]))


@diagrams_app.command("show")
def diagrams_show(diagram_id: str = typer.Argument(...), workspace: Path = WorkspaceArg):
    """Print a saved diagram as JSON."""
    try:
        _print_json(ArchitectureStore(workspace).load_cluster_graph(diagram_id).to_dict())
    except ArchgraphError as exc:
        _fail(exc)


@diagrams_app.command("delete")
def diagrams_delete(diagram_id: str = typer.Argument(...), workspace: Path = WorkspaceArg):
    """Delete a saved diagram."""
    try:
        deleted = ArchitectureStore(workspace).delete_cluster_graph(diagram_id)
    except ArchgraphError as exc:
        _fail(exc)
    if not deleted:
        _fail(f"Diagram not found: {diagram_id}")
    typer.echo(f"Deleted diagram '{diagram_id}'.")


@traces_app.command("list")
def traces_list(
    workspace: Path = WorkspaceArg,
    diagram: Optional[str] = typer.Option(None, "--diagram", "-d", help="Only traces on this diagram."),
):
    """List saved traces, newest first."""
    rows = ArchitectureStore(workspace).list_traces(diagram)
    if not rows:
        typer.echo("No traces saved yet.")
        return
    console.print(_listing_table("Traces", rows, ["id", "baseDiagramId", "entryPoint", "createdAt", "stepCount"]))


@traces_app.command("show")
def traces_show(
    trace_id: str = typer.Argument(...),
    workspace: Path = WorkspaceArg,
    check: bool = typer.Option(False, "--check", help="Validate against the base diagram."),
):
    """Print a saved trace as JSON."""
    store = ArchitectureStore(workspace)
    try:
        stored = store.load_trace(trace_id)
        payload: Dict[str, Any] = stored.to_dict()
        if check:
            payload = {"trace": payload, "validation": validate_trace(stored, store.load_cluster_graph(stored.base_diagram_id))}
    except ArchgraphError as exc:
        _fail(exc)
    _print_json(payload)


@traces_app.command("delete")
def traces_delete(trace_id: str = typer.Argument(...), workspace: Path = WorkspaceArg):
    """Delete a saved trace."""
    try:
        deleted = ArchitectureStore(workspace).delete_trace(trace_id)
    except ArchgraphError as exc:
        _fail(exc)
    if not deleted:
        _fail(f"Trace not found: {trace_id}")
    typer.echo(f"Deleted trace '{trace_id}'.")


@inventory_app.command("info")
def inventory_info(workspace: Path = WorkspaceArg):
    """Show the cached inventory summary."""
    info = ArchitectureStore(workspace).get_cached_inventory_info()
    if info is None:
        typer.echo("No cached inventory.")
        return
    _print_json(info)


@inventory_app.command("invalidate")
def inventory_invalidate(workspace: Path = WorkspaceArg):
    """Delete the cached inventory so the next run re-scans."""
    if ArchitectureStore(workspace).invalidate_inventory_cache():
        typer.echo("Inventory cache invalidated.")
    else:
        typer.echo("No cached inventory.")


# ===================================================================
# LLM configuration
# ===================================================================

@app.command("set-llm")
def set_llm(
    provider: str = typer.Argument(..., help="LLM provider: ollama, groq, openai, anthropic, gemini, openrouter"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name (uses provider default if not set)."),
    api_key: Optional[str] = typer.Option(None, "--api-key", "-k", help="API key for cloud providers."),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", "-e", help="Custom endpoint URL."),
):
    """Persist the LLM provider used for clustering and narration."""
    provider = provider.lower().strip()
    if provider not in ALL_PROVIDERS:
        _fail(f"Unknown provider '{provider}'. Choose from: {', '.join(ALL_PROVIDERS)}")
    defaults = config_manager.get_provider_config(provider)
    resolved_model = model or defaults.get("model", "")
    resolved_endpoint = endpoint or defaults.get("endpoint", "")
    if not config_manager.save_config(provider, resolved_model, api_key or "", resolved_endpoint):
        _fail(f"Could not write {config_manager.CONFIG_FILE}")
    typer.echo(f"LLM set to {provider} ({resolved_model}).")


def _mask_key(key: str) -> str:
    """Keep a short prefix of long keys; hide short keys entirely."""
    if len(key) <= 8:
        return "*" * 8
    return key[:4] + "*" * 12


@app.command("show-llm")
def show_llm():
    """Show the configured LLM provider."""
    llm = LocalLLM()
    typer.echo(f"Provider  {llm.provider_name}")
    typer.echo(f"Model     {llm.model}")
    if llm.endpoint:
        typer.echo(f"Endpoint  {llm.endpoint}")
    if llm.api_key:
        typer.echo(f"API Key   {_mask_key(llm.api_key)}")
    else:
        typer.echo("API Key   (not set)")
    typer.echo(f"Config    {config_manager.CONFIG_FILE}")


if __name__ == "__main__":
    app()
