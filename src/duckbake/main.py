import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Callable, Iterator

from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table
from typer import Argument, Context, Exit, Option, Typer

from .errors import DuckBakeError
from .indexing import VectorizationJob, VectorizationProgress
from .search import SearchHit
from .service import DuckBakeService

app = Typer(help="Vectorize and semantically search DuckDB project data.")
console = Console()


def setup_logging(verbose: bool = False) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def build_service(data_dir: str | None) -> DuckBakeService:
    return DuckBakeService(data_dir=data_dir)


@contextmanager
def open_service(ctx: Context) -> Iterator[DuckBakeService]:
    data_dir = ctx.obj.get("data_dir") if isinstance(ctx.obj, dict) else None
    service = build_service(data_dir)
    try:
        yield service
    except (DuckBakeError, ValueError) as exc:
        console.print(
            Panel(str(exc), title="Error", title_align="left", border_style="bold red")
        )
        raise Exit(code=1)
    finally:
        service.close()


def _print_hits(hits: list[SearchHit], title: str) -> None:
    if not hits:
        console.print("[yellow]No results.[/]")
        return
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Source")
    table.add_column("Id")
    table.add_column("Content", overflow="fold")
    for rank, hit in enumerate(hits, start=1):
        table.add_row(
            str(rank),
            f"{hit.score:.4f}",
            hit.source_name,
            str(hit.row_id),
            hit.content[:200],
        )
    console.print(table)


def _run_with_progress(
    service: DuckBakeService, description: str, run: Callable[[], VectorizationJob]
) -> VectorizationJob:
    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TextColumn("[dim]{task.fields[status]}"),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task(description, total=None, status="pending")

        def _on_progress(event: VectorizationProgress) -> None:
            progress.update(
                task_id,
                total=event.total_units or None,
                completed=event.processed_units,
                status=event.status,
            )

        unsubscribe = service.broadcaster.subscribe(_on_progress)
        try:
            return run()
        finally:
            unsubscribe()


def _print_job(job: VectorizationJob) -> None:
    style = "bold green" if job.status == "completed" else "bold yellow"
    console.print(
        Panel(
            f"Status: {job.status}\nProcessed: {job.processed}/{job.total_units}",
            title=f"Vectorization: {job.source_name}",
            title_align="left",
            border_style=style,
        )
    )


@app.callback()
def main(
    ctx: Context,
    data_dir: Annotated[
        str | None,
        Option("--data-dir", help="Directory holding project databases."),
    ] = None,
    verbose: Annotated[
        bool, Option("--verbose", "-v", help="Enable debug logging.")
    ] = False,
) -> None:
    setup_logging(verbose)
    ctx.obj = {"data_dir": data_dir}


@app.command()
def status(ctx: Context) -> None:
    """Check whether the embedding service is reachable."""
    with open_service(ctx) as service:
        info = service.embedding_service_status()
    if info.get("connected"):
        console.print(
            f"[bold green]Connected[/] (version {info.get('version') or 'unknown'}, "
            f"model {info['model']})"
        )
    else:
        console.print("[bold red]Embedding service not available.[/] Start Ollama and try again.")
        raise Exit(code=1)


@app.command()
def tables(
    ctx: Context,
    project: Annotated[str, Argument(help="Project id.")],
) -> None:
    """List user tables and their vectorization state."""
    with open_service(ctx) as service:
        rows = service.list_tables(project)
    table = Table(title=f"Tables in {project}")
    table.add_column("Table")
    table.add_column("Rows", justify="right")
    table.add_column("Columns", justify="right")
    table.add_column("Vectorized")
    for row in rows:
        table.add_row(
            row["name"],
            str(row["row_count"]),
            str(row["column_count"]),
            ", ".join(row["vectorized_columns"]) or "-",
        )
    console.print(table)


@app.command("vectorize-table")
def vectorize_table(
    ctx: Context,
    project: Annotated[str, Argument(help="Project id.")],
    table_name: Annotated[str, Argument(help="Table to vectorize.")],
    columns: Annotated[
        list[str] | None,
        Option("--column", "-c", help="Column to embed; repeat for several."),
    ] = None,
) -> None:
    """Embed table rows for semantic search."""
    with open_service(ctx) as service:
        selected = list(columns or []) or service.get_text_columns(project, table_name)
        job = _run_with_progress(
            service,
            f"Vectorizing {table_name}",
            lambda: service.vectorize_table(project, table_name, selected),
        )
    _print_job(job)


@app.command("add-document")
def add_document(
    ctx: Context,
    project: Annotated[str, Argument(help="Project id.")],
    path: Annotated[Path, Argument(help="UTF-8 text or markdown file.")],
    title: Annotated[str | None, Option("--title", help="Document title.")] = None,
) -> None:
    """Store a text document and split it into chunks."""
    with open_service(ctx) as service:
        if not path.is_file():
            raise ValueError(f"No such file: {path}")
        content = path.read_text(encoding="utf-8")
        document = service.add_document(
            project,
            filename=path.name,
            content=content,
            file_size=path.stat().st_size,
            title=title,
        )
        chunk_count = len(service.get_document_chunks(project, document.id))
    console.print(
        Panel(
            f"Id: {document.id}\nWords: {document.word_count}\nChunks: {chunk_count}",
            title=f"Added {document.filename}",
            title_align="left",
            border_style="bold green",
        )
    )


@app.command()
def documents(
    ctx: Context,
    project: Annotated[str, Argument(help="Project id.")],
) -> None:
    """List stored documents."""
    with open_service(ctx) as service:
        rows = service.list_documents(project)
    table = Table(title=f"Documents in {project}")
    table.add_column("Id")
    table.add_column("Filename")
    table.add_column("Type")
    table.add_column("Chunks", justify="right")
    table.add_column("Vectorized")
    for row in rows:
        table.add_row(
            row["id"],
            row["filename"],
            row["file_type"],
            str(row["chunk_count"]),
            "yes" if row["is_vectorized"] else "no",
        )
    console.print(table)


@app.command("vectorize-document")
def vectorize_document(
    ctx: Context,
    project: Annotated[str, Argument(help="Project id.")],
    document_id: Annotated[str, Argument(help="Document id.")],
) -> None:
    """Embed a document's chunks for semantic search."""
    with open_service(ctx) as service:
        job = _run_with_progress(
            service,
            f"Vectorizing {document_id}",
            lambda: service.vectorize_document(project, document_id),
        )
    _print_job(job)


@app.command()
def search(
    ctx: Context,
    project: Annotated[str, Argument(help="Project id.")],
    table_name: Annotated[str, Argument(help="Vectorized table.")],
    query: Annotated[str, Argument(help="Free-text query.")],
    limit: Annotated[int, Option("--limit", "-n", help="Maximum results.")] = 10,
) -> None:
    """Semantic search over a vectorized table."""
    with open_service(ctx) as service:
        hits = service.search_table(project, table_name, query, limit)
    _print_hits(hits, f"Results for {query!r} in {table_name}")


@app.command("search-documents")
def search_documents(
    ctx: Context,
    project: Annotated[str, Argument(help="Project id.")],
    query: Annotated[str, Argument(help="Free-text query.")],
    limit: Annotated[int, Option("--limit", "-n", help="Maximum results.")] = 10,
    document_id: Annotated[
        str | None, Option("--document", "-d", help="Restrict to one document.")
    ] = None,
) -> None:
    """Semantic search over vectorized documents."""
    with open_service(ctx) as service:
        hits = service.search_documents(project, query, limit, document_id)
    _print_hits(hits, f"Results for {query!r}")


@app.command()
def remove(
    ctx: Context,
    project: Annotated[str, Argument(help="Project id.")],
    source: Annotated[str, Argument(help="Table name, or document id with --document.")],
    document: Annotated[
        bool, Option("--document", help="Treat SOURCE as a document id.")
    ] = False,
    delete: Annotated[
        bool, Option("--delete", help="Delete the document itself, not just embeddings.")
    ] = False,
) -> None:
    """Remove embeddings for a table or document."""
    with open_service(ctx) as service:
        if delete and not document:
            raise ValueError("--delete only applies to documents; add --document.")
        if document and delete:
            service.delete_document(project, source)
            console.print(f"[bold green]Deleted document {source}.[/]")
            return
        if document:
            service.remove_document_embeddings(project, source)
        else:
            service.remove_table_embeddings(project, source)
    console.print(f"[bold green]Removed embeddings for {source}.[/]")


@app.command()
def serve(
    ctx: Context,
    host: Annotated[str, Option("--host", help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, Option("--port", help="Bind port.")] = 8000,
) -> None:
    """Run the HTTP API server."""
    from .server import run_server, set_service

    data_dir = ctx.obj.get("data_dir") if isinstance(ctx.obj, dict) else None
    set_service(build_service(data_dir))
    run_server(host=host, port=port)
