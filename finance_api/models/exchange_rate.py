# finance_api/models/exchange_rate.py
import uuid
from datetime import datetime
from sqlalchemy import Column, Date, DateTime, Numeric, String
from sqlalchemy.dialects.postgresql import UUID

from finance_api.db.base import Base


class ExchangeRate(Base):
    __tablename__ = "exchange_rates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    rate_date = Column(Date, unique=True, index=True, nullable=False)

    eur_to_brl = Column(Numeric(14, 8), nullable=False)
    brl_to_eur = Column(Numeric(14, 8), nullable=False)
    eur_to_usd = Column(Numeric(14, 8), nullable=True)
    usd_to_eur = Column(Numeric(14, 8), nullable=True)
    usd_to_brl = Column(Numeric(14, 8), nullable=True)
    brl_to_usd = Column(Numeric(14, 8), nullable=True)

    source = Column(String, nullable=True)
    fetched_at = Column(DateTime, default=datetime.utcnow)
