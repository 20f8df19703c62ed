from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from .base import Base, JSONType


class ExtractedTable(Base):
    __tablename__ = "extracted_tables"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id = Column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    company_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    title = Column(String, nullable=False, default="")
    headers = Column(JSONType, nullable=False, default=list)
    rows = Column(JSONType, nullable=False, default=list)
    metadata_json = Column(JSONType, nullable=False, default=dict)
    order_index = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    document = relationship("Document", back_populates="tables")
