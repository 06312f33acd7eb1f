from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_api.core.constants import CARD_PAYMENT, CARD_PURCHASE, TX_CREDIT, TX_DEBIT
from finance_api.services.currency_service import derive
from finance_api.services.profit_service import (
    Ledger,
    Movement,
    ScheduledCost,
    ScheduledIncome,
    compute_profit,
    income_due,
)

CUTOFF = date(2024, 3, 15)
ACCOUNT_A = uuid4()
ACCOUNT_B = uuid4()
CARD_C = uuid4()
RATES = derive(eur_to_brl="5")


def D(x):
    return Decimal(str(x))


@pytest.fixture
def ledger():
    return Ledger(
        movements=[
            Movement(TX_CREDIT, D(1000), "EUR", date(2024, 3, 1), account_id=ACCOUNT_A),
            Movement(TX_DEBIT, D(200), "EUR", date(2024, 3, 2), account_id=ACCOUNT_A),
            Movement(TX_CREDIT, D(500), "BRL", date(2024, 3, 3), account_id=ACCOUNT_B),
            Movement(TX_DEBIT, D(999), "EUR", date(2024, 3, 20), account_id=ACCOUNT_A),
            Movement(CARD_PURCHASE, D(30), "EUR", date(2024, 3, 4), credit_card_id=CARD_C),
            Movement(CARD_PAYMENT, D(10), "EUR", date(2024, 3, 5), credit_card_id=CARD_C),
        ],
        costs=[
            ScheduledCost(D(100), None, "EUR", date(2024, 3, 10), "pending"),
            ScheduledCost(D(100), D(80), "EUR", date(2024, 3, 5), "overdue"),
            ScheduledCost(D(50), None, "EUR", date(2024, 3, 1), "paid"),
            ScheduledCost(D(70), None, "EUR", date(2024, 3, 20), "pending"),
        ],
        incomes=[
            ScheduledIncome(D(300), "EUR", "monthly", start_date=date(2024, 1, 1), pay_day=5),
            ScheduledIncome(D(1000), "BRL", "monthly", start_date=date(2024, 1, 1), pay_day=20),
        ],
    )


def test_profit_without_filters(ledger):
    # (1000 + 100 + 10) - (200 + 30) + 300 - (100 + 80)
    assert compute_profit(ledger, CUTOFF, "EUR", RATES) == Decimal("1000.00")


def test_account_filter_excludes_cards(ledger):
    assert compute_profit(ledger, CUTOFF, "EUR", RATES, account_ids=[ACCOUNT_A]) == Decimal("920.00")


def test_account_and_card_filter(ledger):
    profit = compute_profit(ledger, CUTOFF, "EUR", RATES, account_ids=[ACCOUNT_A], credit_card_ids=[CARD_C])
    assert profit == Decimal("900.00")


def test_display_currency_conversion(ledger):
    assert compute_profit(ledger, CUTOFF, "BRL", RATES) == Decimal("5000.00")


def test_empty_ledger():
    assert compute_profit(Ledger([], [], []), CUTOFF, "EUR", RATES) == Decimal("0.00")


# -------------------------------------------------
# FIXED INCOME
# -------------------------------------------------

@pytest.mark.parametrize("income, due", [
    (ScheduledIncome(D(1), "EUR", "monthly", next_pay_date=date(2024, 3, 15)), True),
    (ScheduledIncome(D(1), "EUR", "monthly", next_pay_date=date(2024, 3, 16), pay_day=1), False),
    (ScheduledIncome(D(1), "EUR", "monthly"), True),
    (ScheduledIncome(D(1), "EUR", "monthly", pay_day=15), True),
    (ScheduledIncome(D(1), "EUR", "monthly", pay_day=16), False),
    (ScheduledIncome(D(1), "EUR", "monthly", start_date=date(2024, 4, 1)), False),
    (ScheduledIncome(D(1), "EUR", "monthly", end_date=date(2024, 3, 14)), False),
    (ScheduledIncome(D(1), "EUR", "yearly", start_date=date(2020, 1, 10)), True),
    (ScheduledIncome(D(1), "EUR", "yearly", start_date=date(2020, 6, 1)), False),
    (ScheduledIncome(D(1), "EUR", "weekly", start_date=date(2024, 3, 1)), True),
    (ScheduledIncome(D(1), "EUR", "daily"), False),
])
def test_income_due(income, due):
    assert income_due(income, CUTOFF) is due
