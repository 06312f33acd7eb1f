# finance_api/models/transaction.py
import uuid
from datetime import datetime
from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from finance_api.db.base import Base


class BankAccountTransaction(Base):
    __tablename__ = "bank_account_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), index=True, nullable=False)

    account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    category_id = Column(
        UUID(as_uuid=True),
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    document_id = Column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True,
    )

    # always positive; direction lives in transaction_type
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    description = Column(String, nullable=False)
    transaction_date = Column(Date, nullable=False, index=True)
    transaction_type = Column(String, nullable=False)  # "credit" | "debit"

    # repasse placeholders: "rule:<id>;planned:true;horizon:<date>"
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    account = relationship("Account", back_populates="transactions")


class CreditCardTransaction(Base):
    __tablename__ = "credit_card_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), index=True, nullable=False)

    credit_card_id = Column(
        UUID(as_uuid=True),
        ForeignKey("credit_cards.id", ondelete="CASCADE"),
        nullable=False,
    )
    category_id = Column(
        UUID(as_uuid=True),
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    document_id = Column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True,
    )

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    description = Column(String, nullable=False)
    transaction_date = Column(Date, nullable=False, index=True)
    transaction_type = Column(String, nullable=False)  # "payment" | "purchase"

    created_at = Column(DateTime, default=datetime.utcnow)

    credit_card = relationship("CreditCard", back_populates="transactions")
