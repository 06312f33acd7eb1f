# finance_api/models/repasse.py
import uuid
from datetime import datetime
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from finance_api.db.base import Base


class RepasseRule(Base):
    __tablename__ = "repasse_rules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), index=True, nullable=False)

    name = Column(String, nullable=False)
    percentage = Column(Numeric(5, 2), nullable=False)
    payout_day = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    is_recurring = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    targets = relationship(
        "RepasseRuleTarget",
        back_populates="rule",
        cascade="all, delete-orphan",
    )
    sources = relationship(
        "RepasseRuleSource",
        back_populates="rule",
        cascade="all, delete-orphan",
    )


class RepasseRuleTarget(Base):
    __tablename__ = "repasse_rule_targets"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)

    rule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("repasse_rules.id", ondelete="CASCADE"),
        nullable=False,
    )
    account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    share_percent = Column(Numeric(5, 2), nullable=False)

    rule = relationship("RepasseRule", back_populates="targets")


class RepasseRuleSource(Base):
    __tablename__ = "repasse_rule_sources"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)

    rule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("repasse_rules.id", ondelete="CASCADE"),
        nullable=False,
    )
    # exactly one of the two is set
    account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=True,
    )
    credit_card_id = Column(
        UUID(as_uuid=True),
        ForeignKey("credit_cards.id", ondelete="CASCADE"),
        nullable=True,
    )

    rule = relationship("RepasseRule", back_populates="sources")


class RepasseExecution(Base):
    __tablename__ = "repasse_executions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), index=True, nullable=False)

    rule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("repasse_rules.id", ondelete="CASCADE"),
        nullable=False,
    )
    execution_date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")

    # null for status-only executions
    account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
    )
    bank_transaction_id = Column(
        UUID(as_uuid=True),
        ForeignKey("bank_account_transactions.id", ondelete="SET NULL"),
        nullable=True,
    )
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
