from __future__ import annotations

import io
import logging
import os
import re
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import HTMLResponse, PlainTextResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..dependencies.db import get_db
from ..dependencies.services import get_ingestion_pipeline, get_storage
from ..models.companies import Company
from ..models.document_chunks import DocumentChunk
from ..models.documents import Document, DocumentCategoryEnum, DocumentStatusEnum
from ..models.extracted_tables import ExtractedTable
from ..services.document_types import DocumentType, parse_document_type
from ..services.ingestion import IngestionPipeline
from ..services.storage import StorageError, StorageService
from ..services.table_detection import DetectedTable, TableMetadata
from ..services.table_formatting import format_table_as_html, format_table_as_markdown
from ..services.text_extraction import (
    DocumentExtractionError,
    extract_document,
    is_supported_mime_type,
    resolve_mime_type,
)

logger = logging.getLogger(__name__)

router = APIRouter()

UPLOAD_READ_CHUNK_BYTES = 1024 * 1024


class TableFormat(str, Enum):
    JSON = "json"
    MARKDOWN = "markdown"
    HTML = "html"


def clean_filename(filename: str) -> str:
    name = os.path.basename((filename or "").replace("\\", "/")).strip()
    name = re.sub(r"[\x00-\x1f]", "", name)
    return name[:255] or "document"


def _parse_uuid(value: str, label: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {label} id") from exc


def _get_company(db: Session, company_id: str) -> Company:
    company = db.get(Company, _parse_uuid(company_id, "company"))
    if company is None:
        raise HTTPException(status_code=404, detail="Company not found")
    return company


def _get_document(db: Session, doc_id: str, company_id: str) -> Document:
    document = (
        db.query(Document)
        .filter(
            Document.id == _parse_uuid(doc_id, "document"),
            Document.company_id == _parse_uuid(company_id, "company"),
        )
        .one_or_none()
    )
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


def _read_upload(file: UploadFile, max_bytes: int) -> bytes:
    buffer = io.BytesIO()
    total_bytes = 0
    try:
        while True:
            chunk = file.file.read(UPLOAD_READ_CHUNK_BYTES)
            if not chunk:
                break
            total_bytes += len(chunk)
            if total_bytes > max_bytes:
                raise HTTPException(status_code=400, detail="File too large.")
            buffer.write(chunk)
    finally:
        file.file.close()

    data = buffer.getvalue()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")
    return data


def _serialize_document(document: Document, table_count: Optional[int] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": str(document.id),
        "company_id": str(document.company_id),
        "type": document.category.value,
        "document_type": document.document_type,
        "file_name": document.file_name,
        "mime_type": document.mime_type,
        "storage_url": document.storage_url,
        "uploaded_by_user_id": str(document.uploaded_by_user_id) if document.uploaded_by_user_id else None,
        "uploaded_at": document.uploaded_at.isoformat() if document.uploaded_at else None,
        "status": document.status.value,
        "has_tables": bool(document.has_tables),
        "detected_language": document.detected_language,
        "metadata": document.metadata_json or {},
    }
    if table_count is not None:
        payload["table_count"] = int(table_count)
    return payload


def _to_detected_table(row: ExtractedTable) -> DetectedTable:
    return DetectedTable(
        title=row.title or "",
        headers=list(row.headers or []),
        rows=[list(cells) for cells in row.rows or []],
        metadata=TableMetadata.model_validate(row.metadata_json or {}),
    )


def _serialize_table(row: ExtractedTable) -> Dict[str, Any]:
    return {
        "id": str(row.id),
        "title": row.title,
        "headers": row.headers or [],
        "rows": row.rows or [],
        "metadata": row.metadata_json or {},
        "order_index": row.order_index,
    }


@router.post("/documents/upload", status_code=202)
def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    company_id: str = Form(..., alias="companyId"),
    category: DocumentCategoryEnum = Form(..., alias="type"),
    user_id: Optional[str] = Form(None, alias="userId"),
    document_type: Optional[str] = Form(None, alias="documentType"),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename required")

    company = _get_company(db, company_id)
    uploader_id = _parse_uuid(user_id, "user") if user_id else None

    requested_type = DocumentType.OTHER
    if document_type:
        parsed = parse_document_type(document_type)
        if parsed is None:
            raise HTTPException(status_code=400, detail="Unknown document type")
        requested_type = parsed

    file_name = clean_filename(file.filename)
    mime_type = resolve_mime_type(file_name, file.content_type)
    if not is_supported_mime_type(mime_type):
        raise HTTPException(status_code=400, detail="Unsupported file type.")

    data = _read_upload(file, settings.max_upload_bytes)

    try:
        stored_file = storage.upload_fileobj(company.id, io.BytesIO(data), filename=file_name, content_type=mime_type)
    except StorageError as exc:
        logger.exception("Failed to store upload", extra={"company_id": str(company.id), "file_name": file_name})
        raise HTTPException(status_code=502, detail="Failed to store file.") from exc

    document = Document(
        company_id=company.id,
        category=category,
        file_name=file_name,
        storage_key=stored_file.key,
        storage_url=stored_file.storage_url,
        mime_type=mime_type,
        uploaded_by_user_id=uploader_id,
        document_type=requested_type.value,
        status=DocumentStatusEnum.UPLOADED,
    )
    db.add(document)
    db.commit()

    logger.info(
        "Document uploaded",
        extra={"document_id": str(document.id), "company_id": str(company.id), "bytes": len(data)},
    )
    background_tasks.add_task(pipeline.run, document.id)

    return {"id": str(document.id), "status": DocumentStatusEnum.UPLOADED.value}


@router.get("/documents")
def list_documents(
    company_id: str = Query(..., alias="companyId"),
    category: Optional[DocumentCategoryEnum] = Query(default=None, alias="type"),
    status: Optional[DocumentStatusEnum] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    filters = [Document.company_id == _parse_uuid(company_id, "company")]
    if category is not None:
        filters.append(Document.category == category)
    if status is not None:
        filters.append(Document.status == status)

    total = db.query(func.count(Document.id)).filter(*filters).scalar() or 0
    rows = (
        db.query(Document, func.count(ExtractedTable.id).label("table_count"))
        .outerjoin(ExtractedTable, ExtractedTable.document_id == Document.id)
        .filter(*filters)
        .group_by(Document.id)
        .order_by(Document.uploaded_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "items": [_serialize_document(document, table_count) for document, table_count in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit if total else 0,
        },
    }


@router.get("/documents/analyze-content")
def analyze_content(
    company_id: str = Query(..., alias="companyId"),
    document_id: Optional[str] = Query(default=None, alias="documentId"),
    db: Session = Depends(get_db),
):
    query = db.query(Document).filter(
        Document.company_id == _parse_uuid(company_id, "company"),
        Document.status == DocumentStatusEnum.PROCESSED,
    )
    if document_id:
        query = query.filter(Document.id == _parse_uuid(document_id, "document"))

    documents = [
        {
            "id": str(document.id),
            "file_name": document.file_name,
            "type": document.category.value,
            "document_type": document.document_type,
            "has_tables": bool(document.has_tables),
            "detected_language": document.detected_language,
            "text_extracted": document.text_extracted,
            "metadata": document.metadata_json or {},
            "uploaded_at": document.uploaded_at.isoformat() if document.uploaded_at else None,
        }
        for document in query.order_by(Document.uploaded_at.asc()).all()
    ]
    return {"documents": documents, "total_documents": len(documents)}


@router.post("/documents/extract-text")
def extract_text(file: UploadFile = File(...)):
    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename required")

    file_name = clean_filename(file.filename)
    mime_type = resolve_mime_type(file_name, file.content_type)
    if not is_supported_mime_type(mime_type):
        raise HTTPException(status_code=400, detail="Unsupported file type.")

    data = _read_upload(file, settings.max_upload_bytes)
    try:
        result = extract_document(data, mime_type)
    except DocumentExtractionError as exc:
        logger.warning("Text extraction failed for %s: %s", file_name, exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return {
        "text": result.text,
        "file_name": file_name,
        "size": len(data),
        "has_tables": result.has_tables,
        "metadata": result.metadata.model_dump(exclude_none=True),
    }


@router.get("/documents/{doc_id}")
def get_document(
    doc_id: str,
    company_id: str = Query(..., alias="companyId"),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
):
    document = _get_document(db, doc_id, company_id)
    table_count = (
        db.query(func.count(ExtractedTable.id)).filter(ExtractedTable.document_id == document.id).scalar() or 0
    )

    download_url = None
    if document.storage_key:
        try:
            download_url = storage.generate_presigned_url(document.storage_key)
        except StorageError:
            logger.warning("Could not sign download URL", extra={"document_id": str(document.id)}, exc_info=True)

    payload = _serialize_document(document, table_count)
    payload["download_url"] = download_url
    return payload


@router.get("/documents/{doc_id}/tables")
def get_document_tables(
    doc_id: str,
    company_id: str = Query(..., alias="companyId"),
    table_format: TableFormat = Query(default=TableFormat.JSON, alias="format"),
    db: Session = Depends(get_db),
):
    document = _get_document(db, doc_id, company_id)
    rows = (
        db.query(ExtractedTable)
        .filter(ExtractedTable.document_id == document.id)
        .order_by(ExtractedTable.order_index.asc())
        .all()
    )

    if table_format is TableFormat.MARKDOWN:
        return PlainTextResponse(
            "\n\n".join(format_table_as_markdown(_to_detected_table(row)) for row in rows),
            media_type="text/markdown",
        )
    if table_format is TableFormat.HTML:
        return HTMLResponse("\n".join(format_table_as_html(_to_detected_table(row)) for row in rows))

    return {"document_id": str(document.id), "tables": [_serialize_table(row) for row in rows]}


@router.delete("/documents/{doc_id}")
def delete_document(
    doc_id: str,
    company_id: str = Query(..., alias="companyId"),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
):
    document = _get_document(db, doc_id, company_id)
    document_id = document.id
    storage_key = document.storage_key

    db.query(DocumentChunk).filter(DocumentChunk.document_id == document_id).delete(synchronize_session=False)
    db.query(ExtractedTable).filter(ExtractedTable.document_id == document_id).delete(synchronize_session=False)
    db.delete(document)
    db.commit()

    if storage_key:
        try:
            storage.delete(storage_key)
        except StorageError:
            logger.warning(
                "Could not delete stored file", extra={"document_id": str(document_id), "storage_key": storage_key},
                exc_info=True,
            )

    return {"id": str(document_id), "deleted": True}
