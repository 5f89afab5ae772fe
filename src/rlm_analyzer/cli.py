"""CLI interface for rlm-analyzer."""

import json
import logging
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.table import Table

from rlm_analyzer.analysis.events import AnalysisEvent, ErrorEvent, GraphEvent, LogEvent, ResultEvent, event_to_wire
from rlm_analyzer.analysis.models import AnalyzeMode, AnalyzeOptions, DocumentInput
from rlm_analyzer.config import AnalyzerConfig
from rlm_analyzer.errors import AnalyzerError

app = typer.Typer(
    name="rlm",
    help="Recursive long-document analysis with citations",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()

_LOG_STYLES = {
    "info": "cyan",
    "success": "green",
    "error": "red",
    "dim": "dim",
}


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging level."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )
    # Suppress noisy libraries
    logging.getLogger("litellm").setLevel(logging.WARNING)
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load_or_exit(paths: list[Path]) -> list[DocumentInput]:
    from rlm_analyzer.ingest.reader import load_documents

    try:
        documents = load_documents(paths)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None
    if not documents:
        console.print("[yellow]No supported documents found (.txt, .md)[/yellow]")
        raise typer.Exit(1)
    return documents


def _render_event(event: AnalysisEvent) -> None:
    if isinstance(event, LogEvent):
        style = _LOG_STYLES.get(event.log_type, "")
        console.print(f"[{style}]{escape(event.message)}[/{style}]", highlight=False)
    elif isinstance(event, GraphEvent):
        console.print(
            f"[magenta]Knowledge graph:[/magenta] {len(event.data.nodes)} nodes, "
            f"{len(event.data.edges)} edges"
        )


# ============================================================================
# Commands
# ============================================================================


@app.command()
def analyze(
    paths: list[Path] = typer.Argument(..., help="Documents or directories (.txt, .md)"),
    question: str = typer.Option(..., "--question", "-q", help="Question to answer"),
    mode: AnalyzeMode = typer.Option(AnalyzeMode.RLM, "--mode", "-m", help="Analysis strategy"),
    chunk_size: int | None = typer.Option(None, "--chunk-size", help="Max characters per chunk"),
    top_k: int | None = typer.Option(None, "--top-k", help="Chunks kept in retrieval mode"),
    max_subcalls: int | None = typer.Option(None, "--max-subcalls", help="Max per-chunk oracle calls"),
    base_max_chars: int | None = typer.Option(None, "--base-max-chars", help="Prompt size cap in base mode"),
    concurrency: int | None = typer.Option(None, "-c", "--concurrency", help="Concurrent sub-calls"),
    comprehensive: bool = typer.Option(False, "--comprehensive", help="Analyze every chunk and keep every finding"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON instead of rendering it"),
    graph_out: Path | None = typer.Option(None, "--graph-out", help="Write the knowledge graph here (rlm-graph mode)"),
    graph_format: str = typer.Option("json", "--graph-format", help="json, graphml, gexf, or csv"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logging"),
) -> None:
    """Answer a question about long documents."""
    _setup_logging(verbose)
    documents = _load_or_exit(paths)

    overrides = {
        "chunk_size": chunk_size,
        "top_k": top_k,
        "max_subcalls": max_subcalls,
        "base_max_chars": base_max_chars,
        "concurrency": concurrency,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if comprehensive:
        overrides["comprehensive_mode"] = True

    try:
        config = AnalyzerConfig()
        options = AnalyzeOptions(**overrides)
    except ValidationError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    from rlm_analyzer.pipeline import run_analyze_stream

    if not as_json:
        console.print(f"[cyan]Mode:[/cyan] {mode.value}")
        console.print(f"[cyan]Documents:[/cyan] {len(documents)}")
        console.print()

    try:
        terminal = run_analyze_stream(
            documents,
            question,
            on_event=(lambda _event: None) if as_json else _render_event,
            mode=mode,
            options=options,
            config=config,
        )
    except AnalyzerError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    if isinstance(terminal, ErrorEvent):
        if as_json:
            console.print_json(json.dumps(event_to_wire(terminal)))
        else:
            console.print(f"[red]Error:[/red] {escape(terminal.error)}")
        raise typer.Exit(1)

    response = terminal.data
    if as_json:
        console.print_json(json.dumps(response.to_wire()))
    else:
        _print_response(terminal)

    if graph_out is not None:
        if response.graph is None:
            console.print("[yellow]No knowledge graph (use --mode rlm-graph)[/yellow]")
        else:
            from rlm_analyzer.graph.export import export_graph

            try:
                written = export_graph(response.graph, graph_out, graph_format)
            except ValueError as e:
                console.print(f"[red]Error:[/red] {escape(str(e))}")
                raise typer.Exit(1) from None
            if not as_json:
                console.print(f"  Graph: {written}")


def _print_response(event: ResultEvent) -> None:
    response = event.data
    console.print()
    console.print(Markdown(response.answer or "_(empty answer)_"))
    console.print()

    table = Table(title="Run details", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    for key, value in response.debug.model_dump(by_alias=True, exclude_none=True, mode="json").items():
        table.add_row(key, str(value))
    tokens = response.usage.total_tokens if response.usage else None
    table.add_row("totalTokens", str(tokens) if tokens is not None else "n/a")
    console.print(table)


@app.command()
def chunks(
    paths: list[Path] = typer.Argument(..., help="Documents or directories (.txt, .md)"),
    chunk_size: int = typer.Option(1800, "--chunk-size", help="Max characters per chunk"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logging"),
) -> None:
    """Show how documents split into citable chunks (no oracle calls)."""
    _setup_logging(verbose)
    documents = _load_or_exit(paths)

    from rlm_analyzer.analysis.orchestrator import normalize_documents
    from rlm_analyzer.ingest.chunker import build_chunks

    built = build_chunks(normalize_documents(documents), chunk_size=chunk_size)

    table = Table(title=f"Chunks ({len(built)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Document")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Chars", justify="right")
    for chunk in built:
        style = "yellow" if len(chunk.text) > chunk_size else ""
        table.add_row(chunk.id, chunk.doc_id, str(chunk.start), str(chunk.end), str(len(chunk.text)), style=style)
    console.print(table)


@app.command()
def rank(
    paths: list[Path] = typer.Argument(..., help="Documents or directories (.txt, .md)"),
    query: str = typer.Option(..., "--query", "-q", help="Query to score chunks against"),
    chunk_size: int = typer.Option(1800, "--chunk-size", help="Max characters per chunk"),
    top_k: int = typer.Option(8, "--top-k", help="Number of chunks to show"),
) -> None:
    """Rank chunks against a query the way retrieval mode does (no oracle calls)."""
    documents = _load_or_exit(paths)

    from rlm_analyzer.analysis.orchestrator import normalize_documents
    from rlm_analyzer.ingest.chunker import build_chunks
    from rlm_analyzer.retrieval.ranker import rank_chunks, score_chunk, tokenize

    built = build_chunks(normalize_documents(documents), chunk_size=chunk_size)
    ranked = rank_chunks(built, query, top_k)
    if not ranked:
        console.print(f"[yellow]No chunk matches the query (retrieval mode would use the first {top_k})[/yellow]")
        return

    query_tokens = tokenize(query)
    table = Table(title=f"Top {len(ranked)} of {len(built)} chunks")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Score", justify="right")
    table.add_column("Preview")
    for chunk in ranked:
        preview = chunk.text[:80].replace("\n", " ")
        table.add_row(chunk.id, str(score_chunk(chunk, query_tokens)), preview)
    console.print(table)
