# finance_api/services/profit_service.py
import logging
from datetime import date
from decimal import Decimal
from typing import Collection, List, NamedTuple, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from finance_api.core.constants import (
    CARD_PAYMENT,
    CARD_PURCHASE,
    FIXED_COST_OPEN_STATUSES,
    TX_CREDIT,
    TX_DEBIT,
)
from finance_api.models.fixed_cost import FixedCost, FixedCostEntry, FixedIncome
from finance_api.models.transaction import BankAccountTransaction, CreditCardTransaction
from finance_api.services.currency_service import RateSnapshot, convert, get_latest_rates
from finance_api.utils.calculations import q_money

logger = logging.getLogger(__name__)

EPOCH = date(1970, 1, 1)


class Movement(NamedTuple):
    kind: str  # credit | debit | payment | purchase
    amount: Decimal
    currency: str
    transaction_date: date
    account_id: Optional[UUID] = None
    credit_card_id: Optional[UUID] = None


class ScheduledCost(NamedTuple):
    amount: Decimal
    actual_amount: Optional[Decimal]
    currency: str
    due_date: date
    status: str


class ScheduledIncome(NamedTuple):
    amount: Decimal
    currency: str
    billing_period: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    pay_day: Optional[int] = None
    next_pay_date: Optional[date] = None


class Ledger(NamedTuple):
    movements: List[Movement]
    costs: List[ScheduledCost]
    incomes: List[ScheduledIncome]


# -------------------------------------------------
# PURE COMPUTATION
# -------------------------------------------------

def income_due(income: ScheduledIncome, cutoff: date) -> bool:
    if income.next_pay_date is not None:
        return income.next_pay_date <= cutoff

    start = income.start_date or EPOCH
    ended = income.end_date is not None and income.end_date < cutoff
    if start > cutoff or ended:
        return False

    if income.billing_period == "monthly":
        return not income.pay_day or income.pay_day <= cutoff.day
    if income.billing_period == "yearly":
        return (cutoff.month, cutoff.day) >= (start.month, start.day)
    if income.billing_period == "weekly":
        # permissive: due once the later of month start / income start has been reached
        base = max(start, cutoff.replace(day=1))
        return (cutoff - base).days >= 0
    return False


def _sum(rows: Sequence[Tuple[Decimal, str]], display: str, rates: RateSnapshot) -> Decimal:
    return sum((convert(amount, currency, display, rates) for amount, currency in rows), Decimal("0"))


def compute_profit(
    ledger: Ledger,
    cutoff: date,
    display_currency: str,
    rates: RateSnapshot,
    account_ids: Optional[Collection[UUID]] = None,
    credit_card_ids: Optional[Collection[UUID]] = None,
) -> Decimal:
    """
    Realized bank and card activity up to the cutoff plus scheduled
    fixed-cost entries and due fixed incomes, all in display_currency.

    Card activity follows credit_card_ids when given; otherwise it only
    counts when no account filter is active either.
    """
    account_ids = set(account_ids or ())
    credit_card_ids = set(credit_card_ids or ())

    def account_ok(m: Movement) -> bool:
        return not account_ids or m.account_id in account_ids

    def card_ok(m: Movement) -> bool:
        if credit_card_ids:
            return m.credit_card_id in credit_card_ids
        return not account_ids

    realized = [m for m in ledger.movements if m.transaction_date <= cutoff]
    bank_in = [(m.amount, m.currency) for m in realized if m.kind == TX_CREDIT and account_ok(m)]
    bank_out = [(m.amount, m.currency) for m in realized if m.kind == TX_DEBIT and account_ok(m)]
    card_in = [(m.amount, m.currency) for m in realized if m.kind == CARD_PAYMENT and card_ok(m)]
    card_out = [(m.amount, m.currency) for m in realized if m.kind == CARD_PURCHASE and card_ok(m)]

    income = _sum(bank_in, display_currency, rates) + _sum(card_in, display_currency, rates)
    expense = _sum(bank_out, display_currency, rates) + _sum(card_out, display_currency, rates)

    scheduled_expense = _sum(
        [
            (c.actual_amount if c.actual_amount is not None else c.amount, c.currency)
            for c in ledger.costs
            if c.due_date <= cutoff and c.status in FIXED_COST_OPEN_STATUSES
        ],
        display_currency,
        rates,
    )
    scheduled_income = _sum(
        [(i.amount, i.currency) for i in ledger.incomes if income_due(i, cutoff)],
        display_currency,
        rates,
    )

    return q_money((income - expense) + (scheduled_income - scheduled_expense))


# -------------------------------------------------
# DB LOADER
# -------------------------------------------------

def load_ledger(db: Session, user_id: UUID, cutoff: date) -> Ledger:
    movements: List[Movement] = []

    bank_rows = (
        db.query(BankAccountTransaction)
        .filter(
            BankAccountTransaction.user_id == user_id,
            BankAccountTransaction.transaction_date <= cutoff,
        )
        .all()
    )
    for r in bank_rows:
        movements.append(Movement(
            kind=r.transaction_type,
            amount=r.amount or Decimal("0"),
            currency=r.currency or "EUR",
            transaction_date=r.transaction_date,
            account_id=r.account_id,
        ))

    card_rows = (
        db.query(CreditCardTransaction)
        .filter(
            CreditCardTransaction.user_id == user_id,
            CreditCardTransaction.transaction_date <= cutoff,
        )
        .all()
    )
    for r in card_rows:
        movements.append(Movement(
            kind=r.transaction_type,
            amount=r.amount or Decimal("0"),
            currency=r.currency or "EUR",
            transaction_date=r.transaction_date,
            credit_card_id=r.credit_card_id,
        ))

    cost_rows = (
        db.query(FixedCostEntry, FixedCost.currency)
        .join(FixedCost, FixedCost.id == FixedCostEntry.fixed_cost_id)
        .filter(
            FixedCostEntry.user_id == user_id,
            FixedCostEntry.due_date <= cutoff,
            FixedCostEntry.status.in_(FIXED_COST_OPEN_STATUSES),
        )
        .all()
    )
    costs = [
        ScheduledCost(
            amount=e.amount or Decimal("0"),
            actual_amount=e.actual_amount,
            currency=currency or "EUR",
            due_date=e.due_date,
            status=e.status,
        )
        for e, currency in cost_rows
    ]

    income_rows = (
        db.query(FixedIncome)
        .filter(FixedIncome.user_id == user_id, FixedIncome.is_active.is_(True))
        .all()
    )
    incomes = [
        ScheduledIncome(
            amount=i.amount or Decimal("0"),
            currency=i.currency or "EUR",
            billing_period=i.billing_period,
            start_date=i.start_date,
            end_date=i.end_date,
            pay_day=i.pay_day,
            next_pay_date=i.next_pay_date,
        )
        for i in income_rows
    ]

    logger.debug(
        "ledger until %s: %d movements, %d open costs, %d incomes",
        cutoff, len(movements), len(costs), len(incomes),
    )
    return Ledger(movements=movements, costs=costs, incomes=incomes)


def profit_until(
    db: Session,
    user_id: UUID,
    cutoff: date,
    display_currency: str = "EUR",
    account_ids: Optional[Collection[UUID]] = None,
    credit_card_ids: Optional[Collection[UUID]] = None,
    rates: Optional[RateSnapshot] = None,
) -> Decimal:
    rates = rates or get_latest_rates(db)
    ledger = load_ledger(db, user_id, cutoff)
    return compute_profit(ledger, cutoff, display_currency, rates, account_ids, credit_card_ids)
