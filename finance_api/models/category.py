# finance_api/models/category.py
import uuid
from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import UUID

from finance_api.db.base import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), index=True, nullable=False)
    name = Column(String, nullable=False)
    kind = Column(String, nullable=True)  # "income" | "expense"
