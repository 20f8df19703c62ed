from __future__ import annotations

import asyncio
import json
from enum import Enum
from pathlib import Path

import typer

from .config import settings
from .db.session import SessionLocal, init_db
from .models import Company, DocumentStatusEnum
from .services.document_types import DOCUMENT_TYPE_INFO, classify_document_type
from .services.ingestion import IngestionPipeline
from .services.storage import get_storage_service
from .services.table_detection import extract_tables_from_document
from .services.table_formatting import format_table_as_html, format_table_as_markdown
from .services.text_extraction import DocumentExtractionError, extract_document, resolve_mime_type

app = typer.Typer(help="Proposal Copilot administrative CLI")


class OutputFormat(str, Enum):
    markdown = "markdown"
    html = "html"
    json = "json"


def _read_local_file(path: Path) -> tuple[bytes, str]:
    if not path.is_file():
        typer.echo(f"File not found: {path}", err=True)
        raise typer.Exit(code=1)
    return path.read_bytes(), resolve_mime_type(path.name, None)


@app.command("init-db")
def init_db_command() -> None:
    """Create all tables in the configured database."""
    init_db()
    typer.echo(f"Database schema ready ({settings.database_url.split('@')[-1]})")


@app.command()
def create_company(name: str = typer.Argument(..., help="Company name")) -> None:
    """Create a company, or print the existing one with the same name."""
    db = SessionLocal()
    try:
        company = db.query(Company).filter(Company.name == name).one_or_none()
        if company is None:
            company = Company(name=name)
            db.add(company)
            db.commit()
            typer.echo(f"Created company {company.name} ({company.id})")
        else:
            typer.echo(f"Company {company.name} already exists ({company.id})")
    finally:
        db.close()


@app.command()
def classify(path: Path = typer.Argument(..., help="Local document to classify")) -> None:
    """Print the document type detected from a file's name and content."""
    data, mime_type = _read_local_file(path)
    try:
        text = extract_document(data, mime_type).text
    except DocumentExtractionError as exc:
        typer.echo(f"Could not read content ({exc}); classifying by filename only", err=True)
        text = ""
    doc_type = classify_document_type(path.name, text)
    typer.echo(f"{doc_type.value}\t{DOCUMENT_TYPE_INFO[doc_type].label}")


@app.command()
def extract_tables(
    path: Path = typer.Argument(..., help="Local document to scan for tables"),
    output: OutputFormat = typer.Option(OutputFormat.markdown, "--format", "-f", show_default=True),
) -> None:
    """Detect tables in a local file and print them."""
    data, mime_type = _read_local_file(path)
    try:
        tables = extract_tables_from_document(data, mime_type, path.name)
    except DocumentExtractionError as exc:
        typer.echo(f"Could not read {path.name}: {exc}", err=True)
        raise typer.Exit(code=1)

    if output is OutputFormat.json:
        payload = [
            {
                "title": table.title,
                "headers": table.headers,
                "rows": table.rows,
                "metadata": table.metadata.model_dump(exclude_none=True),
            }
            for table in tables
        ]
        typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    render = format_table_as_html if output is OutputFormat.html else format_table_as_markdown
    for table in tables:
        typer.echo(render(table))
        typer.echo("")
    typer.echo(f"{len(tables)} table(s) found", err=True)


@app.command()
def reprocess(document_id: str = typer.Argument(..., help="Document id to run through ingestion again")) -> None:
    """Run the ingestion pipeline for one stored document."""
    pipeline = IngestionPipeline.from_settings(settings, SessionLocal, get_storage_service())
    status = asyncio.run(pipeline.run(document_id))
    if status is None:
        typer.echo(f"Document {document_id} not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Document {document_id}: {status.value}")
    if status is DocumentStatusEnum.ERROR:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
