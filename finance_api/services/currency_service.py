# finance_api/services/currency_service.py
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

import requests
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from finance_api.core.config import settings
from finance_api.core.errors import RatesUnavailable
from finance_api.models.exchange_rate import ExchangeRate
from finance_api.utils.calculations import q_money, q_rate, to_decimal

logger = logging.getLogger(__name__)

EUR_URL = "https://api.exchangerate.host/latest?base=EUR&symbols=BRL,USD"
EUR_URL_FALLBACK = "https://api.frankfurter.app/latest?from=EUR&to=BRL,USD"
USD_URL = "https://api.exchangerate.host/latest?base=USD&symbols=BRL"

RATE_FIELDS = ("eur_to_brl", "brl_to_eur", "eur_to_usd", "usd_to_eur", "usd_to_brl", "brl_to_usd")

ONE = Decimal("1")


class RateSnapshot(BaseModel):
    rate_date: Optional[date] = None
    eur_to_brl: Optional[Decimal] = None
    brl_to_eur: Optional[Decimal] = None
    eur_to_usd: Optional[Decimal] = None
    usd_to_eur: Optional[Decimal] = None
    usd_to_brl: Optional[Decimal] = None
    brl_to_usd: Optional[Decimal] = None
    source: str = "db"
    stale: bool = False
    fetched_at: Optional[datetime] = None


IDENTITY = RateSnapshot(source="identity", stale=True)


def _positive(x) -> Optional[Decimal]:
    if x is None:
        return None
    try:
        d = to_decimal(x)
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite() or d <= 0:
        return None
    return d


def _inverse(x: Optional[Decimal]) -> Optional[Decimal]:
    return q_rate(ONE / x) if x else None


def derive(
    eur_to_brl=None,
    eur_to_usd=None,
    usd_to_brl=None,
    **extra,
) -> RateSnapshot:
    """Fill the reciprocal pairs and bridge USD<->BRL through EUR when no direct rate exists."""
    eur_to_brl = _positive(eur_to_brl)
    eur_to_usd = _positive(eur_to_usd)
    usd_to_brl = _positive(usd_to_brl)
    if usd_to_brl is None and eur_to_brl and eur_to_usd:
        usd_to_brl = q_rate(eur_to_brl / eur_to_usd)
    return RateSnapshot(
        eur_to_brl=eur_to_brl,
        brl_to_eur=_inverse(eur_to_brl),
        eur_to_usd=eur_to_usd,
        usd_to_eur=_inverse(eur_to_usd),
        usd_to_brl=usd_to_brl,
        brl_to_usd=_inverse(usd_to_brl),
        **extra,
    )


def snapshot_from_row(row: ExchangeRate, stale: bool = False) -> RateSnapshot:
    values = {f: _positive(getattr(row, f)) for f in RATE_FIELDS}
    # older rows may only carry one side of a pair
    for a, b in (("eur_to_usd", "usd_to_eur"), ("usd_to_brl", "brl_to_usd"), ("eur_to_brl", "brl_to_eur")):
        if values[b] is None:
            values[b] = _inverse(values[a])
        if values[a] is None:
            values[a] = _inverse(values[b])
    return RateSnapshot(
        rate_date=row.rate_date,
        source="db",
        stale=stale,
        fetched_at=row.fetched_at,
        **values,
    )


def env_snapshot() -> Optional[RateSnapshot]:
    rate = _positive(settings.EXCHANGE_FALLBACK_EUR_TO_BRL)
    if rate is None:
        return None
    return RateSnapshot(
        rate_date=date.today(),
        eur_to_brl=rate,
        brl_to_eur=_inverse(rate),
        source="env",
        stale=True,
    )


# -------------------------------------------------
# CONVERSION (pure)
# -------------------------------------------------

def _stored(rates: RateSnapshot, a: str, b: str) -> Optional[Decimal]:
    return _positive(getattr(rates, f"{a.lower()}_to_{b.lower()}", None))


def pair_rate(from_currency: str, to_currency: str, rates: Optional[RateSnapshot]) -> Optional[Decimal]:
    """
    Best available rate: the stored pair, the reciprocal of its inverse,
    or a bridge through EUR. None when nothing applies.
    """
    a, b = (from_currency or "EUR").upper(), (to_currency or "EUR").upper()
    if a == b:
        return ONE
    if rates is None:
        return None

    direct = _stored(rates, a, b)
    if direct:
        return direct
    inverse = _stored(rates, b, a)
    if inverse:
        return ONE / inverse

    if "EUR" not in (a, b):
        to_eur = pair_rate(a, "EUR", rates)
        from_eur = pair_rate("EUR", b, rates)
        if to_eur and from_eur:
            return to_eur * from_eur
    return None


def convert(amount, from_currency: str, to_currency: str, rates: Optional[RateSnapshot]) -> Decimal:
    """Rounded to cents. Same-currency is identity; a missing rate degrades to 1."""
    if (from_currency or "EUR").upper() == (to_currency or "EUR").upper():
        return q_money(amount)
    rate = pair_rate(from_currency, to_currency, rates) or ONE
    return q_money(to_decimal(amount) * rate)


# -------------------------------------------------
# RATE STORE
# -------------------------------------------------

def get_latest_rates(db: Session) -> RateSnapshot:
    """today -> most recent stored -> env fallback (EUR/BRL only) -> identity"""
    row = (
        db.query(ExchangeRate)
        .order_by(ExchangeRate.rate_date.desc())
        .first()
    )
    if row is not None and _positive(row.eur_to_brl) and _positive(row.brl_to_eur):
        return snapshot_from_row(row, stale=row.rate_date != date.today())

    fallback = env_snapshot()
    if fallback is not None:
        return fallback

    logger.warning("No exchange rates stored or configured, using identity rates")
    return IDENTITY


def _fetch_rates(url: str) -> dict:
    try:
        resp = requests.get(url, timeout=10)
        resp.raise_for_status()
        return resp.json().get("rates") or {}
    except (requests.RequestException, ValueError) as e:
        logger.warning("FX provider %s failed: %s", url.split("/")[2], e)
        return {}


def fetch_live_rates() -> Optional[RateSnapshot]:
    eur = _fetch_rates(EUR_URL)
    eur_to_brl, eur_to_usd = _positive(eur.get("BRL")), _positive(eur.get("USD"))

    if not (eur_to_brl and eur_to_usd):
        eur = _fetch_rates(EUR_URL_FALLBACK)
        eur_to_brl = _positive(eur.get("BRL")) or eur_to_brl
        eur_to_usd = _positive(eur.get("USD")) or eur_to_usd

    usd_to_brl = _positive(_fetch_rates(USD_URL).get("BRL"))

    if not eur_to_brl:
        return None
    return derive(
        eur_to_brl=eur_to_brl,
        eur_to_usd=eur_to_usd,
        usd_to_brl=usd_to_brl,
        source="live",
        rate_date=date.today(),
        fetched_at=datetime.utcnow(),
    )


def _upsert(db: Session, snap: RateSnapshot) -> None:
    row = db.query(ExchangeRate).filter_by(rate_date=snap.rate_date).first()
    if row is None:
        row = ExchangeRate(rate_date=snap.rate_date)
        db.add(row)
    for f in RATE_FIELDS:
        setattr(row, f, getattr(snap, f))
    row.source = snap.source
    row.fetched_at = snap.fetched_at
    db.commit()


def refresh_rates(db: Session) -> RateSnapshot:
    """
    Cached snapshot for today, else live providers (stored), else the most
    recent snapshot or env fallback flagged stale. RatesUnavailable when
    there is nothing at all.
    """
    today = date.today()
    cached = db.query(ExchangeRate).filter_by(rate_date=today).first()
    if cached is not None:
        return snapshot_from_row(cached)

    live = fetch_live_rates()
    if live is not None:
        try:
            _upsert(db, live)
        except SQLAlchemyError as e:
            # rates are still returned when caching fails
            db.rollback()
            logger.error("Failed to cache exchange rates: %s", e)
        return live

    logger.warning("Live FX providers unavailable, falling back to stored rates")
    latest = db.query(ExchangeRate).order_by(ExchangeRate.rate_date.desc()).first()
    if latest is not None:
        return snapshot_from_row(latest, stale=True)

    fallback = env_snapshot()
    if fallback is not None:
        return fallback

    raise RatesUnavailable("No exchange rates available")
