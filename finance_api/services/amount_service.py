# finance_api/services/amount_service.py
from decimal import Decimal
from typing import Optional
from fastapi import HTTPException

from finance_api.core.constants import CURRENCIES
from finance_api.services.currency_service import RateSnapshot, convert


def check_currency(currency: Optional[str]) -> str:
    code = (currency or "EUR").upper()
    if code not in CURRENCIES:
        raise ValueError(f"Unsupported currency: {code}")
    return code


def resolve_amount(
    amount: Optional[float],
    from_currency: Optional[str],
    to_currency: Optional[str],
    rates: RateSnapshot,
):
    """Signed extraction amount -> absolute amount in the destination currency."""
    if amount is None:
        return None

    try:
        source = check_currency(from_currency)
        dest = check_currency(to_currency)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    converted = convert(abs(Decimal(str(amount))), source, dest, rates)
    return {
        "amount": converted,
        "currency": dest,
        "original_amount": amount,
        "original_currency": source,
        "is_inflow": amount >= 0,
    }
