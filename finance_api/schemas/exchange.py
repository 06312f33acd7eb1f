# finance_api/schemas/exchange.py
from pydantic import BaseModel
import datetime as dt
from typing import Optional


class ExchangeRatesOut(BaseModel):
    date: Optional[dt.date] = None
    eur_to_brl: Optional[float] = None
    brl_to_eur: Optional[float] = None
    eur_to_usd: Optional[float] = None
    usd_to_eur: Optional[float] = None
    usd_to_brl: Optional[float] = None
    brl_to_usd: Optional[float] = None
    fetched_at: Optional[dt.datetime] = None
    cached: bool = False
    stale: bool = False
    source: Optional[str] = None
