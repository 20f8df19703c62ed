from enum import Enum
from datetime import datetime, timezone
import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum as SAEnum, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from .base import Base, JSONType


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class DocumentStatusEnum(str, Enum):
    UPLOADED = "uploaded"
    PROCESSED = "processed"
    ERROR = "error"


class DocumentCategoryEnum(str, Enum):
    REFERENCE_PROPOSAL = "model_rfp"
    COMPANY_DATA = "company_data"
    TENDER_DOCUMENT = "tender_document"


class Document(Base):
    __tablename__ = "documents"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(
        Uuid(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category = Column(
        SAEnum(DocumentCategoryEnum, name="document_category", values_callable=_enum_values),
        nullable=False,
    )
    file_name = Column(String, nullable=False)
    storage_key = Column(String, nullable=True)
    storage_url = Column(String, nullable=True)          # s3://bucket/key
    mime_type = Column(String, nullable=False)
    uploaded_by_user_id = Column(Uuid(as_uuid=True), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    text_extracted = Column(Text, nullable=False, default="")
    metadata_json = Column(JSONType, nullable=False, default=dict)
    has_tables = Column(Boolean, nullable=False, default=False)
    detected_language = Column(String(8), nullable=True)
    document_type = Column(String, nullable=False, default="other")
    status = Column(
        SAEnum(DocumentStatusEnum, name="document_status", values_callable=_enum_values),
        nullable=False,
        default=DocumentStatusEnum.UPLOADED,
        index=True,
    )

    company = relationship("Company", back_populates="documents")
    tables = relationship(
        "ExtractedTable",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ExtractedTable.order_index",
    )
    chunks = relationship(
        "DocumentChunk",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DocumentChunk.order_index",
    )
