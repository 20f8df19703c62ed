from __future__ import annotations

import asyncio
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings
from ..models.document_chunks import DocumentChunk
from ..models.documents import Document, DocumentCategoryEnum, DocumentStatusEnum
from ..models.extracted_tables import ExtractedTable
from .chunking import chunk_text, section_for_chunks
from .document_types import DocumentType, classify_document_type, parse_document_type
from .embeddings import EmbeddingService
from .language import DEFAULT_LANGUAGE, SAMPLE_CHARS, LanguageDetector
from .metrics import record_document_ingested, record_table_extraction_failure, record_tables_extracted
from .storage import StorageService
from .table_detection import DetectedTable, extract_tables_from_document
from .text_extraction import DocumentExtractionError, ExtractionMetadata, extract_document, split_composite

logger = logging.getLogger(__name__)

LANGUAGE_DETECTION_MIN_CHARS = 100
_PRICING_HEADER = re.compile(r"precio|price|costo|cost", re.IGNORECASE)
_CONTACT_INFO = re.compile(r"email|teléfono|telefono|phone|dirección|direccion|address", re.IGNORECASE)


class DocumentProcessingError(Exception):
    """Raised when a document cannot be taken through the pipeline."""


class DocumentMetadata(ExtractionMetadata):
    document_type: str = DocumentType.OTHER.value
    detected_language: str = DEFAULT_LANGUAGE
    tables_count: int = 0
    has_pricing_info: bool = False
    has_contact_info: bool = False


@dataclass
class DocumentSnapshot:
    id: uuid.UUID
    company_id: uuid.UUID
    category: DocumentCategoryEnum
    file_name: str
    mime_type: str
    storage_key: Optional[str]
    document_type: Optional[str]


@dataclass
class IngestionOutcome:
    text: str
    metadata: DocumentMetadata
    document_type: DocumentType
    language: str
    tables: List[DetectedTable] = field(default_factory=list)
    chunks: List[str] = field(default_factory=list)
    sections: List[str] = field(default_factory=list)
    embeddings: List[List[float]] = field(default_factory=list)


def build_document_metadata(
    extraction_metadata: ExtractionMetadata,
    text: str,
    document_type: DocumentType,
    language: str,
    tables: List[DetectedTable],
) -> DocumentMetadata:
    return DocumentMetadata(
        **extraction_metadata.model_dump(),
        document_type=document_type.value,
        detected_language=language,
        tables_count=len(tables),
        has_pricing_info=any(_PRICING_HEADER.search(header) for table in tables for header in table.headers),
        has_contact_info=bool(_CONTACT_INFO.search(text)),
    )


class IngestionPipeline:
    """Takes one uploaded document from ``uploaded`` to ``processed`` or ``error``.

    Blocking work (blob reads, decoding, database access) runs in worker
    threads with a fresh session per step, so several pipelines can share one
    event loop. Everything derived from the file is persisted in a single
    transaction that first clears earlier tables and chunks, so a re-run never
    duplicates them.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        storage: StorageService,
        language_detector: LanguageDetector,
        embedder: EmbeddingService,
        *,
        chunk_size_words: int = 500,
        embedding_concurrency: int = 4,
    ) -> None:
        self._session_factory = session_factory
        self.storage = storage
        self.language_detector = language_detector
        self.embedder = embedder
        self.chunk_size_words = chunk_size_words
        self.embedding_concurrency = embedding_concurrency

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: Callable[[], Session],
        storage: StorageService,
    ) -> "IngestionPipeline":
        return cls(
            session_factory,
            storage,
            LanguageDetector.from_settings(settings),
            EmbeddingService.from_settings(settings),
            chunk_size_words=settings.chunk_size_words,
            embedding_concurrency=settings.embedding_concurrency,
        )

    async def run(self, document_id: uuid.UUID | str) -> Optional[DocumentStatusEnum]:
        started = time.perf_counter()
        try:
            document_uuid = uuid.UUID(str(document_id))
        except ValueError:
            logger.error("Invalid document id for ingestion: %s", document_id)
            return None

        snapshot = await asyncio.to_thread(self._load_snapshot, document_uuid)
        if snapshot is None:
            logger.warning("Document not found for ingestion", extra={"document_id": str(document_uuid)})
            return None

        logger.info("Starting ingestion of %s (%s)", snapshot.file_name, snapshot.id)
        try:
            outcome = await self._process(snapshot)
            await asyncio.to_thread(self._persist_success, snapshot, outcome)
        except DocumentExtractionError as exc:
            logger.warning("Could not extract %s: %s", snapshot.file_name, exc)
            return await self._fail(snapshot, str(exc), started)
        except Exception as exc:
            logger.exception("Ingestion of %s failed", snapshot.file_name)
            return await self._fail(snapshot, str(exc) or exc.__class__.__name__, started)

        record_tables_extracted(len(outcome.tables))
        record_document_ingested(DocumentStatusEnum.PROCESSED.value, time.perf_counter() - started)
        logger.info(
            "Processed %s: %s characters, %s tables, %s chunks, language=%s, type=%s",
            snapshot.file_name,
            len(outcome.text),
            len(outcome.tables),
            len(outcome.chunks),
            outcome.language,
            outcome.document_type.value,
        )
        return DocumentStatusEnum.PROCESSED

    async def _process(self, snapshot: DocumentSnapshot) -> IngestionOutcome:
        if not snapshot.storage_key:
            raise DocumentProcessingError("Document has no stored file.")

        file_bytes = await asyncio.to_thread(self.storage.read_bytes, snapshot.storage_key)
        extraction = await asyncio.to_thread(extract_document, file_bytes, snapshot.mime_type)
        text = extraction.text
        _, plain_text = split_composite(text)

        document_type = parse_document_type(snapshot.document_type)
        if document_type in (None, DocumentType.OTHER):
            document_type = classify_document_type(snapshot.file_name, text)
            logger.info("Auto-detected document type %s for %s", document_type.value, snapshot.file_name)

        tables = await self._detect_tables(file_bytes, snapshot, text)

        language = DEFAULT_LANGUAGE
        if len(text) > LANGUAGE_DETECTION_MIN_CHARS:
            language = await self.language_detector.detect(plain_text[:SAMPLE_CHARS])

        metadata = build_document_metadata(extraction.metadata, text, document_type, language, tables)

        chunks = chunk_text(plain_text, self.chunk_size_words)
        sections = section_for_chunks(chunks, extraction.metadata.sections)
        embeddings = await self.embedder.embed_many(chunks, concurrency=self.embedding_concurrency)

        return IngestionOutcome(
            text=text,
            metadata=metadata,
            document_type=document_type,
            language=language,
            tables=tables,
            chunks=chunks,
            sections=sections,
            embeddings=embeddings,
        )

    async def _detect_tables(self, file_bytes: bytes, snapshot: DocumentSnapshot, text: str) -> List[DetectedTable]:
        try:
            return await asyncio.to_thread(
                extract_tables_from_document,
                file_bytes,
                snapshot.mime_type,
                snapshot.file_name,
                text,
            )
        except Exception:
            logger.warning("Table extraction failed for %s; continuing without tables", snapshot.file_name, exc_info=True)
            record_table_extraction_failure()
            return []

    async def _fail(self, snapshot: DocumentSnapshot, reason: str, started: float) -> DocumentStatusEnum:
        await asyncio.to_thread(self._mark_failed, snapshot.id, reason)
        record_document_ingested(DocumentStatusEnum.ERROR.value, time.perf_counter() - started)
        return DocumentStatusEnum.ERROR

    def _load_snapshot(self, document_id: uuid.UUID) -> Optional[DocumentSnapshot]:
        db = self._session_factory()
        try:
            document = db.get(Document, document_id)
            if document is None:
                return None
            return DocumentSnapshot(
                id=document.id,
                company_id=document.company_id,
                category=document.category,
                file_name=document.file_name,
                mime_type=document.mime_type,
                storage_key=document.storage_key,
                document_type=document.document_type,
            )
        finally:
            db.close()

    def _persist_success(self, snapshot: DocumentSnapshot, outcome: IngestionOutcome) -> None:
        db = self._session_factory()
        try:
            document = db.get(Document, snapshot.id)
            if document is None:
                raise DocumentProcessingError("Document was deleted during ingestion.")

            db.query(ExtractedTable).filter(ExtractedTable.document_id == snapshot.id).delete(
                synchronize_session=False
            )
            db.query(DocumentChunk).filter(DocumentChunk.document_id == snapshot.id).delete(
                synchronize_session=False
            )

            document.text_extracted = outcome.text
            document.metadata_json = outcome.metadata.model_dump(exclude_none=True)
            document.has_tables = bool(outcome.tables)
            document.detected_language = outcome.language
            document.document_type = outcome.document_type.value
            document.status = DocumentStatusEnum.PROCESSED

            for index, table in enumerate(outcome.tables):
                db.add(
                    ExtractedTable(
                        document_id=snapshot.id,
                        company_id=snapshot.company_id,
                        title=table.title,
                        headers=table.headers,
                        rows=table.rows,
                        metadata_json=table.metadata.model_dump(exclude_none=True),
                        order_index=index,
                    )
                )

            for index, (content, section, embedding) in enumerate(
                zip(outcome.chunks, outcome.sections, outcome.embeddings)
            ):
                db.add(
                    DocumentChunk(
                        document_id=snapshot.id,
                        company_id=snapshot.company_id,
                        category=snapshot.category,
                        content=content,
                        section=section,
                        order_index=index,
                        embedding=embedding,
                    )
                )

            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _mark_failed(self, document_id: uuid.UUID, reason: str) -> None:
        db = self._session_factory()
        try:
            document = db.get(Document, document_id)
            if document is None:
                return
            document.status = DocumentStatusEnum.ERROR
            document.metadata_json = {"error": reason}
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to mark document %s as errored", document_id)
        finally:
            db.close()
