from __future__ import annotations

from prometheus_client import Counter, Histogram


DOCUMENTS_INGESTED_COUNTER = Counter(
    "pc_documents_ingested_total",
    "Documents that finished ingestion, by final status",
    ["status"],
)

TABLES_EXTRACTED_COUNTER = Counter(
    "pc_tables_extracted_total",
    "Tables persisted from ingested documents",
)

TABLE_EXTRACTION_FAILURES_COUNTER = Counter(
    "pc_table_extraction_failures_total",
    "Table detection passes that raised and were skipped",
)

EMBEDDING_FAILURES_COUNTER = Counter(
    "pc_embedding_failures_total",
    "Chunk embeddings that fell back to an empty vector",
)

INGESTION_DURATION_SECONDS = Histogram(
    "pc_ingestion_duration_seconds",
    "Wall time of one document ingestion",
    buckets=(0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
)


def record_document_ingested(status: str, duration_seconds: float) -> None:
    DOCUMENTS_INGESTED_COUNTER.labels(status=status).inc()
    INGESTION_DURATION_SECONDS.observe(max(duration_seconds, 0.0))


def record_tables_extracted(count: int) -> None:
    if count > 0:
        TABLES_EXTRACTED_COUNTER.inc(count)


def record_table_extraction_failure() -> None:
    TABLE_EXTRACTION_FAILURES_COUNTER.inc()


def record_embedding_failure() -> None:
    EMBEDDING_FAILURES_COUNTER.inc()
