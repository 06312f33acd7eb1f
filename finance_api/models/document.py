# finance_api/models/document.py
import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, JSON, String, Text
from sqlalchemy.dialects.postgresql import UUID

from finance_api.db.base import Base


class Document(Base):
    __tablename__ = "documents"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), index=True, nullable=False)

    filename = Column(String, nullable=False)
    content_type = Column(String, nullable=False)
    document_type = Column(String, nullable=True)

    ocr_status = Column(String, nullable=False)  # DONE | FAILED
    ocr_provider = Column(String, nullable=True)
    ocr_error = Column(String, nullable=True)
    ocr_text = Column(Text, nullable=True)
    result_json = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
