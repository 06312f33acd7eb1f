from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
import requests

from finance_api.core.config import settings
from finance_api.core.errors import RatesUnavailable
from finance_api.services import currency_service
from finance_api.services.currency_service import (
    IDENTITY,
    RateSnapshot,
    convert,
    derive,
    get_latest_rates,
    pair_rate,
    refresh_rates,
    snapshot_from_row,
)
from finance_api.utils.calculations import nearly_equal_money


class FakeQuery:
    def __init__(self, row):
        self.row = row

    def filter_by(self, **kwargs):
        return self

    def order_by(self, *args):
        return self

    def first(self):
        return self.row


class FakeDb:
    def __init__(self, row=None):
        self.row = row
        self.added = []
        self.commits = 0

    def query(self, *args):
        return FakeQuery(self.row)

    def add(self, obj):
        self.added.append(obj)

    def commit(self):
        self.commits += 1


def rate_row(rate_date, **values):
    fields = {f: None for f in currency_service.RATE_FIELDS}
    fields.update(values)
    return SimpleNamespace(rate_date=rate_date, fetched_at=None, **fields)


@pytest.fixture
def no_env_fallback(monkeypatch):
    monkeypatch.setattr(settings, "EXCHANGE_FALLBACK_EUR_TO_BRL", None)


# -------------------------------------------------
# CONVERSION
# -------------------------------------------------

def test_same_currency_is_identity_and_rounded():
    assert convert(12.345, "EUR", "EUR", None) == Decimal("12.35")
    assert convert("7", "brl", "BRL", IDENTITY) == Decimal("7.00")


def test_round_trip_stays_within_a_cent():
    rates = derive(eur_to_brl="5.5")
    there = convert(100, "EUR", "BRL", rates)
    assert there == Decimal("550.00")
    assert nearly_equal_money(convert(there, "BRL", "EUR", rates), 100)


def test_bridge_through_eur():
    rates = RateSnapshot(eur_to_brl=Decimal("5.5"), eur_to_usd=Decimal("1.1"))
    assert convert(10, "USD", "BRL", rates) == Decimal("50.00")


def test_inverse_pair_is_used():
    rates = RateSnapshot(eur_to_usd=Decimal("1.25"))
    assert pair_rate("USD", "EUR", rates) == Decimal("0.8")


def test_missing_rate_degrades_to_one():
    assert convert(10, "EUR", "USD", RateSnapshot()) == Decimal("10.00")
    assert convert(10, "EUR", "USD", None) == Decimal("10.00")
    assert pair_rate("EUR", "USD", None) is None


def test_derive_fills_reciprocals_and_bridge():
    rates = derive(eur_to_brl="5", eur_to_usd="1.25")
    assert rates.brl_to_eur == Decimal("0.2")
    assert rates.usd_to_eur == Decimal("0.8")
    assert rates.usd_to_brl == Decimal("4")
    assert rates.brl_to_usd == Decimal("0.25")


@pytest.mark.parametrize("bad", ["-1", "0", "abc", "nan", None])
def test_derive_ignores_unusable_rates(bad):
    rates = derive(eur_to_brl=bad)
    assert rates.eur_to_brl is None
    assert rates.brl_to_eur is None


def test_snapshot_from_row_fills_one_sided_pairs():
    row = rate_row(date(2024, 3, 1), eur_to_brl=Decimal("5"), eur_to_usd=Decimal("1.25"))
    snap = snapshot_from_row(row, stale=True)
    assert snap.brl_to_eur == Decimal("0.2")
    assert snap.usd_to_eur == Decimal("0.8")
    assert snap.usd_to_brl is None
    assert snap.stale is True
    assert snap.rate_date == date(2024, 3, 1)


# -------------------------------------------------
# RATE STORE
# -------------------------------------------------

def test_latest_rates_today_is_fresh():
    db = FakeDb(rate_row(date.today(), eur_to_brl=Decimal("5.5"), brl_to_eur=Decimal("0.18181818")))
    snap = get_latest_rates(db)
    assert snap.source == "db"
    assert snap.stale is False


def test_latest_rates_older_row_is_stale():
    db = FakeDb(rate_row(date.today() - timedelta(days=3), eur_to_brl=Decimal("5.5"), brl_to_eur=Decimal("0.18")))
    assert get_latest_rates(db).stale is True


def test_latest_rates_env_fallback(monkeypatch):
    monkeypatch.setattr(settings, "EXCHANGE_FALLBACK_EUR_TO_BRL", "6")
    snap = get_latest_rates(FakeDb())
    assert snap.source == "env"
    assert snap.eur_to_brl == Decimal("6")
    assert snap.stale is True


def test_latest_rates_identity(no_env_fallback):
    snap = get_latest_rates(FakeDb())
    assert snap is IDENTITY
    assert convert(10, "EUR", "BRL", snap) == Decimal("10.00")


def test_fetch_live_rates_uses_fallback_provider(monkeypatch):
    def fake_get(url, timeout):
        if "frankfurter" in url:
            return SimpleNamespace(raise_for_status=lambda: None, json=lambda: {"rates": {"BRL": 5.4, "USD": 1.08}})
        if "base=USD" in url:
            raise requests.ConnectionError("down")
        return SimpleNamespace(raise_for_status=lambda: None, json=lambda: {"rates": {}})

    monkeypatch.setattr(currency_service.requests, "get", fake_get)
    snap = currency_service.fetch_live_rates()
    assert snap.source == "live"
    assert snap.eur_to_brl == Decimal("5.4")
    assert snap.usd_to_brl == Decimal("5")
    assert snap.rate_date == date.today()


def test_refresh_rates_caches_live_snapshot(monkeypatch):
    live = derive(eur_to_brl="5.4", source="live", rate_date=date.today())
    monkeypatch.setattr(currency_service, "fetch_live_rates", lambda: live)
    db = FakeDb()
    assert refresh_rates(db) is live
    assert db.commits == 1
    assert db.added[0].eur_to_brl == Decimal("5.4")
    assert db.added[0].source == "live"


def test_refresh_rates_nothing_available(monkeypatch, no_env_fallback):
    monkeypatch.setattr(currency_service, "fetch_live_rates", lambda: None)
    with pytest.raises(RatesUnavailable):
        refresh_rates(FakeDb())
