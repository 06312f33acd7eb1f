# finance_api/api/exchange.py
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from finance_api.core.errors import RatesUnavailable
from finance_api.db.session import get_db
from finance_api.schemas.exchange import ExchangeRatesOut
from finance_api.services.currency_service import RATE_FIELDS, refresh_rates

logger = logging.getLogger(__name__)

router = APIRouter(tags=["exchange"])


# GET /api/exchange -> EUR/BRL/USD pairs, cached per calendar day
@router.get("", response_model=ExchangeRatesOut)
def get_exchange_rates(db: Session = Depends(get_db)):
    try:
        snap = refresh_rates(db)
    except RatesUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))

    rates = {f: float(getattr(snap, f)) if getattr(snap, f) is not None else None for f in RATE_FIELDS}
    return ExchangeRatesOut(
        date=snap.rate_date,
        fetched_at=snap.fetched_at,
        cached=snap.source == "db",
        stale=snap.stale,
        source=snap.source,
        **rates,
    )
