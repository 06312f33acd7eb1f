# finance_api/models/fixed_cost.py
import uuid
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from finance_api.db.base import Base


class FixedCost(Base):
    __tablename__ = "fixed_costs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), index=True, nullable=False)

    name = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    billing_period = Column(String, nullable=False, default="monthly")
    due_day = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    entries = relationship(
        "FixedCostEntry",
        back_populates="fixed_cost",
        cascade="all, delete-orphan",
    )


class FixedCostEntry(Base):
    __tablename__ = "fixed_cost_entries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), index=True, nullable=False)

    fixed_cost_id = Column(
        UUID(as_uuid=True),
        ForeignKey("fixed_costs.id", ondelete="CASCADE"),
        nullable=False,
    )

    # planned amount; actual_amount wins when set
    amount = Column(Numeric(12, 2), nullable=False)
    actual_amount = Column(Numeric(12, 2), nullable=True)
    due_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending | overdue | paid
    payment_date = Column(Date, nullable=True)

    fixed_cost = relationship("FixedCost", back_populates="entries")


class FixedIncome(Base):
    __tablename__ = "fixed_incomes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), index=True, nullable=False)

    name = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    billing_period = Column(String, nullable=False, default="monthly")
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    pay_day = Column(Integer, nullable=True)
    next_pay_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
