from .companies import Company
from .document_chunks import DocumentChunk
from .documents import Document, DocumentCategoryEnum, DocumentStatusEnum
from .extracted_tables import ExtractedTable

__all__ = [
    "Company",
    "Document",
    "DocumentCategoryEnum",
    "DocumentChunk",
    "DocumentStatusEnum",
    "ExtractedTable",
]
