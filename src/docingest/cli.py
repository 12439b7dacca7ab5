"""CLI interface for docingest."""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from docingest import __version__
from docingest.config import settings
from docingest.errors import IngestionError
from docingest.models import Document
from docingest.pipeline import IngestionPipeline
from docingest.retrieval import clean_snippet, search_chunks
from docingest.tasks import enqueue_document

# Configure logging with Rich
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True)],
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="docingest",
    help="Chunk, embed and store text documents in a pgvector table",
)

console = Console()

TEXT_SUFFIXES = {".txt": "text/plain", ".md": "text/markdown"}


def _set_verbose_logging(verbose: bool) -> Optional[int]:
    if not verbose:
        return None
    root_logger = logging.getLogger()
    previous_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)
    return previous_level


def _collect_text_files(path: Path, recursive: bool) -> List[Path]:
    if path.is_file():
        if path.suffix.lower() not in TEXT_SUFFIXES:
            console.print(f"[red]Error: {path} is not a .txt or .md file[/red]")
            raise typer.Exit(1)
        return [path]

    if path.is_dir():
        pattern = "**/*" if recursive else "*"
        files = sorted(
            candidate
            for candidate in path.glob(pattern)
            if candidate.is_file() and candidate.suffix.lower() in TEXT_SUFFIXES
        )
        if not files:
            console.print(f"[yellow]No text files found in {path}[/yellow]")
            raise typer.Exit(0)
        return files

    console.print(f"[red]Unsupported path type: {path}[/red]")
    raise typer.Exit(1)


def load_document(path: Path, source_type: Optional[str] = None) -> Document:
    """Read a text file into a Document; the text is used as-is."""
    metadata = {"path": str(path), "source_type": source_type or path.suffix.lstrip(".").lower()}
    return Document(
        filename=path.name,
        content=path.read_text(encoding="utf-8"),
        content_type=TEXT_SUFFIXES.get(path.suffix.lower(), "text/plain"),
        metadata=metadata,
    )


def _ingest_locally(
    documents: List[Document],
    chunk_size: Optional[int],
    overlap: Optional[int],
) -> List[Tuple[Document, str, str, str]]:
    rows = []
    with IngestionPipeline.from_settings(chunk_size=chunk_size, overlap_size=overlap) as pipeline:
        futures = pipeline.process_documents(documents)
        for document, future in zip(documents, futures):
            try:
                ids = future.result()
            except IngestionError as exc:
                rows.append((document, "failed", "-", f"{exc.stage}: {exc}"))
            except RuntimeError as exc:
                rows.append((document, "failed", "-", str(exc)))
            else:
                rows.append((document, "stored", str(len(ids)), ""))
    return rows


def _enqueue(documents: List[Document]) -> List[Tuple[Document, str, str, str]]:
    rows = []
    for document in documents:
        job_id = enqueue_document(document)
        rows.append((document, "queued", "-", f"job {job_id}"))
    return rows


def _print_ingest_summary(rows: List[Tuple[Document, str, str, str]]) -> None:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("File", style="cyan", no_wrap=False)
    table.add_column("Document ID", style="dim", width=36)
    table.add_column("Chunks", justify="right", width=7)
    table.add_column("Status", justify="center", width=8)
    table.add_column("Detail", no_wrap=False)

    status_styles = {"stored": "green", "queued": "cyan", "failed": "red"}
    counts: Dict[str, int] = {}
    for document, status, chunks, detail in rows:
        counts[status] = counts.get(status, 0) + 1
        style = status_styles.get(status, "white")
        table.add_row(document.filename, str(document.id), chunks, f"[{style}]{status}[/{style}]", detail)

    console.print(table)
    console.print(
        "\n[bold]Summary[/bold] "
        + ", ".join(f"{status}: {count}" for status, count in sorted(counts.items()))
    )


@app.command()
def ingest(
    path: Path = typer.Argument(
        ...,
        help="Path to a .txt/.md file or a directory containing them",
        exists=True,
    ),
    recursive: bool = typer.Option(
        False,
        "--recursive",
        "-r",
        help="Recursively scan directory for text files",
    ),
    source_type: Optional[str] = typer.Option(
        None,
        "--source-type",
        "-s",
        help="Value recorded as source_type in chunk metadata",
    ),
    chunk_size: Optional[int] = typer.Option(
        None,
        "--chunk-size",
        help="Characters per chunk (defaults to CHUNK_SIZE)",
    ),
    overlap: Optional[int] = typer.Option(
        None,
        "--overlap",
        help="Characters shared by consecutive chunks (defaults to CHUNK_OVERLAP)",
    ),
    enqueue: bool = typer.Option(
        False,
        "--enqueue",
        help="Push documents to the Redis queue instead of processing them here",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
):
    """
    Ingest text documents: chunk, embed and upsert into the vector table.
    """
    previous_level = _set_verbose_logging(verbose)
    try:
        console.print("\n[bold blue]Document Ingestion Pipeline[/bold blue]\n")
        files = _collect_text_files(path, recursive)
        console.print(f"Found [cyan]{len(files)}[/cyan] file(s)\n")

        documents = [load_document(file_path, source_type) for file_path in files]
        if enqueue:
            rows = _enqueue(documents)
        else:
            rows = _ingest_locally(documents, chunk_size, overlap)

        _print_ingest_summary(rows)
        if any(status == "failed" for _, status, _, _ in rows):
            raise typer.Exit(1)
    finally:
        if previous_level is not None:
            logging.getLogger().setLevel(previous_level)


@app.command()
def search(
    query: str = typer.Argument(
        ...,
        help="Text to search for",
    ),
    limit: int = typer.Option(
        5,
        "--limit",
        "-n",
        help="Number of chunks to return",
    ),
):
    """Search stored chunks and show the closest matches."""

    console.print("\n[bold blue]Similarity Search[/bold blue]\n")

    try:
        results = search_chunks(query, limit=limit)
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)
    except IngestionError as exc:
        console.print(f"[red]Search failed ({exc.stage}): {exc}[/red]")
        raise typer.Exit(1)

    if not results:
        console.print("[yellow]No matching chunks found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", width=3)
    table.add_column("Distance", justify="right", width=9)
    table.add_column("Source", style="cyan", no_wrap=False)
    table.add_column("Chunk", justify="right", width=6)
    table.add_column("Snippet", no_wrap=False)

    for rank, result in enumerate(results, start=1):
        table.add_row(
            str(rank),
            f"{result.distance:.4f}",
            result.source or "-",
            str(result.metadata.get("chunk_index", "-")),
            clean_snippet(result.content),
        )

    console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(f"[cyan]docingest[/cyan] v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
