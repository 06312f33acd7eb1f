from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from finance_api.core.errors import UsageLimitExceeded
from finance_api.models.ocr_usage import OcrUsage
from finance_api.services.usage_service import DailyUsageGate, increment_usage, read_usage

DAY = date(2024, 3, 10)


@pytest.fixture
def db():
    engine = create_engine("sqlite://")
    OcrUsage.__table__.create(engine)
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def test_usage_starts_at_zero(db):
    assert read_usage(db, DAY) == 0


def test_increment_creates_then_updates(db):
    increment_usage(db, DAY)
    increment_usage(db, DAY, delta=2)
    assert read_usage(db, DAY) == 3
    assert read_usage(db, date(2024, 3, 11)) == 0


def test_gate_blocks_at_limit(db):
    gate = DailyUsageGate(db, limit=2)
    gate.check(day=DAY)
    gate.record(day=DAY)
    gate.check(day=DAY)
    gate.record(day=DAY)

    with pytest.raises(UsageLimitExceeded) as exc:
        gate.check(day=DAY)
    assert (exc.value.used, exc.value.limit) == (2, 2)
    assert str(exc.value) == "Daily OCR limit reached"


def test_gate_zero_limit_blocks_everything(db):
    with pytest.raises(UsageLimitExceeded):
        DailyUsageGate(db, limit=0).check(day=DAY)
