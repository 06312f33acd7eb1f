# finance_api/utils/calculations.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

CENT = Decimal("0.01")
RATE_PREC = Decimal("0.00000001")


def to_decimal(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x if x is not None else 0))


def q_money(x) -> Decimal:
    return to_decimal(x).quantize(CENT, rounding=ROUND_HALF_UP)


def q_rate(x) -> Decimal:
    return to_decimal(x).quantize(RATE_PREC, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable) -> Decimal:
    return q_money(sum((to_decimal(v) for v in values), Decimal("0")))


def nearly_equal_money(a, b, tol: Decimal = CENT) -> bool:
    return abs(q_money(a) - q_money(b)) <= tol


def percent_of(amount, percentage) -> Decimal:
    return q_money(to_decimal(amount) * to_decimal(percentage) / Decimal("100"))
