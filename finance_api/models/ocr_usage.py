# finance_api/models/ocr_usage.py
from sqlalchemy import Column, Date, Integer

from finance_api.db.base import Base


class OcrUsage(Base):
    __tablename__ = "ocr_usage"

    usage_date = Column(Date, primary_key=True)
    count = Column(Integer, nullable=False, default=0)
