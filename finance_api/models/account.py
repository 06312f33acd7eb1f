# finance_api/models/account.py
import uuid
from datetime import datetime
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Numeric,
    String,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from finance_api.db.base import Base


class Account(Base):
    __tablename__ = "accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), index=True, nullable=False)

    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default="checking")
    currency = Column(String(3), nullable=False, default="EUR")
    is_active = Column(Boolean, nullable=False, default=True)

    # internal account created by the app to receive repasses
    auto_created = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    transactions = relationship(
        "BankAccountTransaction",
        back_populates="account",
        cascade="all, delete-orphan",
    )


class CreditCard(Base):
    __tablename__ = "credit_cards"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), index=True, nullable=False)

    bank_name = Column(String, nullable=False)
    card_name = Column(String, nullable=True)
    last_four_digits = Column(String(4), nullable=True)
    card_type = Column(String, nullable=True)
    currency = Column(String(3), nullable=False, default="EUR")
    credit_limit = Column(Numeric(12, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    transactions = relationship(
        "CreditCardTransaction",
        back_populates="credit_card",
        cascade="all, delete-orphan",
    )
