from sqlalchemy import Column, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from .base import Base, JSONType
from .documents import DocumentCategoryEnum, _enum_values


class DocumentChunk(Base):
    __tablename__ = "document_chunks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id = Column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    company_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    category = Column(
        SAEnum(DocumentCategoryEnum, name="document_category", values_callable=_enum_values),
        nullable=False,
    )
    content = Column(Text, nullable=False)
    section = Column(String, nullable=False, default="General")
    order_index = Column(Integer, nullable=False)
    embedding = Column(JSONType, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    document = relationship("Document", back_populates="chunks")
