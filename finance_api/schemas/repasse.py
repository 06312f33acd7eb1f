# finance_api/schemas/repasse.py

from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from finance_api.core.constants import CURRENCIES

SHARE_TOLERANCE = 0.001


class RepasseTarget(BaseModel):
    account_id: UUID
    share_percent: float = Field(gt=0, le=100)


class RepasseSource(BaseModel):
    account_id: Optional[UUID] = None
    credit_card_id: Optional[UUID] = None

    @model_validator(mode="after")
    def validate_one_side(self):
        if not self.account_id and not self.credit_card_id:
            raise ValueError("source needs account_id or credit_card_id")
        return self


def _check_targets(targets: Optional[List[RepasseTarget]]) -> None:
    if not targets:
        return
    total = sum(t.share_percent for t in targets)
    if abs(total - 100) > SHARE_TOLERANCE:
        raise ValueError("Targets must sum to 100%")


class RepasseRuleCreate(BaseModel):
    name: str = Field(min_length=1)
    percentage: float = Field(ge=0, le=100)
    payout_day: int = Field(ge=1, le=31)
    is_active: bool = True
    is_recurring: bool = False
    targets: Optional[List[RepasseTarget]] = None
    sources: Optional[List[RepasseSource]] = None

    @model_validator(mode="after")
    def validate_targets(self):
        _check_targets(self.targets)
        return self


class RepasseRuleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    percentage: Optional[float] = Field(default=None, ge=0, le=100)
    payout_day: Optional[int] = Field(default=None, ge=1, le=31)
    is_active: Optional[bool] = None
    is_recurring: Optional[bool] = None
    # None leaves them untouched, [] clears them
    targets: Optional[List[RepasseTarget]] = None
    sources: Optional[List[RepasseSource]] = None

    @model_validator(mode="after")
    def validate_targets(self):
        _check_targets(self.targets)
        return self


class RepasseRuleOut(BaseModel):
    id: UUID
    name: str
    percentage: Decimal
    payout_day: int
    is_active: bool
    is_recurring: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RepasseExecute(BaseModel):
    rule_id: UUID
    date: date
    amount: float
    account_id: Optional[UUID] = None
    notes: Optional[str] = None
    source_currency: str = "EUR"

    @model_validator(mode="after")
    def validate_execution(self):
        if not self.amount:
            raise ValueError("amount is required")
        self.source_currency = self.source_currency.upper()
        if self.source_currency not in CURRENCIES:
            raise ValueError(f"Unsupported currency: {self.source_currency}")
        return self


class RefreshPlanned(BaseModel):
    rule_id: Optional[UUID] = None


class DeleteExecution(BaseModel):
    execution_id: UUID


class RepasseExecutionOut(BaseModel):
    id: UUID
    rule_id: UUID
    execution_date: date
    amount: Decimal
    currency: str
    account_id: Optional[UUID] = None
    bank_transaction_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RuleForecast(BaseModel):
    rule_id: UUID
    name: str
    percentage: Decimal
    payout_day: int
    is_recurring: bool
    amount: Decimal
    currency: str
    base_profit: Decimal
    executed: Decimal
    available: Decimal
    horizon: date


class ForecastTotal(BaseModel):
    label: str = "Total"
    amount: Decimal
    currency: str


class ForecastOut(BaseModel):
    date: date
    profit: Decimal
    currency: str
    forecasts: List[RuleForecast] = []
    total: Decimal
    global_: ForecastTotal = Field(alias="global")

    class Config:
        populate_by_name = True
