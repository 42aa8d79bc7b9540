"""
Command-line interface for ragcore.

Commands:
    index       - Ingest a directory of documents into a workspace store
    query       - Retrieve context and citations for a query
    models      - List supported embedding models
    cache-stats - Show embedding cache statistics of a running server
    serve       - Start the FastAPI server
    version     - Show version information
"""

import asyncio
from pathlib import Path
from typing import Optional, get_args

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="ragcore",
    help="Document retrieval pipeline for retrieval-augmented generation",
    add_completion=False,
)
console = Console()

DEFAULT_PATTERNS = "*.md,*.txt"


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
) -> None:
    """Start the FastAPI server."""
    import uvicorn

    console.print(f"[green]Starting ragcore server on {host}:{port}[/green]")

    uvicorn.run(
        "ragcore.api.main:app",
        host=host,
        port=port,
        reload=reload,
        workers=1,  # Workspaces live in process memory
    )


@app.command()
def index(
    data_dir: Path = typer.Argument(..., help="Directory with documents to index"),
    workspace: str = typer.Option("default", "--workspace", "-w", help="Target workspace"),
    patterns: str = typer.Option(DEFAULT_PATTERNS, help="Comma-separated glob patterns"),
    strategy: Optional[str] = typer.Option(None, help="Chunking strategy (fixed, paragraph, sentence, hybrid)"),
    chunk_size: Optional[int] = typer.Option(None, help="Soft maximum chunk size in characters"),
    chunk_overlap: Optional[int] = typer.Option(None, help="Overlap between consecutive chunks"),
    force: bool = typer.Option(False, "--force", "-f", help="Rebuild the workspace from scratch"),
) -> None:
    """Chunk, embed and store a directory of documents."""
    from ragcore.config import ChunkingStrategyName
    from ragcore.exceptions import RagCoreError
    from ragcore.logging_config import setup_logging
    from ragcore.retrieval.chunker import ChunkingOptions
    from ragcore.retrieval.models import Document
    from ragcore.service import create_service

    setup_logging()

    strategies = get_args(ChunkingStrategyName)
    if strategy is not None and strategy not in strategies:
        console.print(f"[red]Unknown chunking strategy: {strategy} (choose from {', '.join(strategies)})[/red]")
        raise typer.Exit(1)

    if not data_dir.is_dir():
        console.print(f"[red]Data directory not found: {data_dir}[/red]")
        raise typer.Exit(1)

    files = sorted(
        {path for pattern in patterns.split(",") if pattern.strip() for path in data_dir.rglob(pattern.strip())}
    )
    if not files:
        console.print(f"[red]No files matching {patterns} in {data_dir}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Found {len(files)} files[/green]\n")

    try:
        service = create_service()
        current = service.orchestrator.settings
        options = ChunkingOptions(
            strategy=strategy or current.chunking_strategy,
            chunk_size=chunk_size or current.chunk_size,
            chunk_overlap=chunk_overlap if chunk_overlap is not None else current.chunk_overlap,
        )
        if force:
            service.drop_workspace(workspace)
        else:
            service.load_workspace(workspace)
    except (RagCoreError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    documents = [
        Document(
            title=path.stem,
            content=path.read_text(encoding="utf-8", errors="replace"),
            type=path.suffix.lstrip(".") or "txt",
            metadata={"source": str(path.relative_to(data_dir)), "file_name": path.name},
        )
        for path in files
    ]

    console.print(
        f"[cyan]Indexing into workspace '{workspace}' "
        f"({options.strategy}, size={options.chunk_size}, overlap={options.chunk_overlap})[/cyan]"
    )
    try:
        with console.status("[bold green]Embedding chunks..."):
            job = asyncio.run(service.indexer.process_documents(documents, workspace, options))
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    titles = {document.id: document.title for document in documents}
    table = Table(title=f"Workspace {workspace}")
    table.add_column("Document", style="cyan")
    table.add_column("Chunks", justify="right")
    table.add_column("Status")
    for result in job.succeeded:
        table.add_row(titles[result.document_id], str(result.chunk_count), "[green]indexed[/green]")
    for result in job.errors:
        table.add_row(titles[result.document_id], str(result.chunk_count), f"[red]{result.error}[/red]")
    console.print(table)

    path = service.save_workspace(workspace)
    store = service.registry.get(workspace)
    console.print(f"\n[bold green]✓ Indexed {len(job.succeeded)}/{job.total} documents[/bold green]")
    console.print(f"  Store size: {store.size if store else 0} vectors")
    if path:
        console.print(f"  Output: {path}.{{npy,json}}")

    if job.errors:
        raise typer.Exit(1)


@app.command()
def query(
    question: str = typer.Argument(..., help="Query text"),
    workspace: Optional[list[str]] = typer.Option(None, "--workspace", "-w", help="Workspace(s) to search"),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", help="Number of results"),
    threshold: Optional[float] = typer.Option(None, help="Minimum similarity score (0-100)"),
    strategy: Optional[str] = typer.Option(None, help="Retriever strategy (semantic, hybrid, mmr, reranking)"),
    no_expansion: bool = typer.Option(False, "--no-expansion", help="Disable query expansion"),
    rerank: bool = typer.Option(False, "--rerank", help="Rerank results"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show the assembled context"),
) -> None:
    """Retrieve context and citations for a query."""
    from ragcore.exceptions import RagCoreError
    from ragcore.logging_config import setup_logging
    from ragcore.retrieval.context import format_citations
    from ragcore.retrieval.models import RetrievalRequest
    from ragcore.service import create_service

    setup_logging()

    workspace_ids = workspace or None
    try:
        service = create_service()
        for workspace_id in workspace_ids or [service.settings.default_workspace]:
            if service.load_workspace(workspace_id) is None:
                console.print(f"[yellow]Workspace '{workspace_id}' has not been indexed[/yellow]")

        request = RetrievalRequest(
            query=question,
            top_k=top_k,
            similarity_threshold=threshold,
            retriever_strategy=strategy,
            use_query_expansion=False if no_expansion else None,
            use_reranking=True if rerank else None,
            workspace_ids=workspace_ids,
        )
        with console.status("[bold green]Retrieving..."):
            response = asyncio.run(service.orchestrator.retrieve_documents(request))
    except (RagCoreError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(f"[blue]Query:[/blue] {response.query}")
    if response.expanded_query:
        console.print(f"[dim]Expanded: {response.expanded_query}[/dim]")
    console.print()

    if not response.results:
        console.print("[yellow]No results above the similarity threshold.[/yellow]")
        return

    table = Table(title=f"{len(response.results)} results ({response.execution_time_ms:.0f}ms)")
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right", style="green")
    table.add_column("Title", style="cyan")
    table.add_column("Preview")
    for position, result in enumerate(response.results, start=1):
        preview = result.text[:80].replace("\n", " ")
        table.add_row(str(position), f"{result.score:.1f}", result.title, preview)
    console.print(table)

    if verbose:
        console.print("\n[green]Context:[/green]")
        console.print(response.context, markup=False)

    citations = format_citations(response.citations)
    if citations:
        console.print()
        console.print(citations, markup=False)


@app.command()
def models() -> None:
    """List supported embedding models."""
    from ragcore.retrieval.embedding_models import EMBEDDING_MODELS

    table = Table(title="Embedding models")
    table.add_column("Model", style="cyan")
    table.add_column("Dimensions", justify="right", style="green")
    table.add_column("Description")
    for model in EMBEDDING_MODELS.values():
        table.add_row(model.id, str(model.dimensions), model.description)
    console.print(table)


@app.command("cache-stats")
def cache_stats(
    url: str = typer.Option("http://localhost:8000", help="Base URL of a running ragcore server"),
) -> None:
    """Show embedding cache statistics of a running server."""
    import httpx

    try:
        response = httpx.get(f"{url.rstrip('/')}/cache/stats", timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]Could not reach {url}: {e}[/red]")
        raise typer.Exit(1)

    stats = response.json()
    table = Table(title="Embedding cache")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Entries", str(stats["size"]))
    table.add_row("Hits", str(stats["hits"]))
    table.add_row("Misses", str(stats["misses"]))
    table.add_row("Hit rate", f"{stats['hit_rate']:.1%}")
    for model_id, count in stats["model_distribution"].items():
        table.add_row(f"  {model_id}", str(count))
    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    from ragcore import __version__

    console.print(f"ragcore v{__version__}")


if __name__ == "__main__":
    app()
