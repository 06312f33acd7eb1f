# finance_api/services/usage_service.py
import logging
from datetime import date
from typing import Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from finance_api.core.config import settings
from finance_api.core.errors import UsageLimitExceeded
from finance_api.models.ocr_usage import OcrUsage

logger = logging.getLogger(__name__)


def read_usage(db: Session, day: Optional[date] = None) -> int:
    row = db.get(OcrUsage, day or date.today())
    return int(row.count) if row else 0


def increment_usage(db: Session, day: Optional[date] = None, delta: int = 1) -> None:
    day = day or date.today()
    if db.get_bind().dialect.name == "postgresql":
        stmt = (
            pg_insert(OcrUsage)
            .values(usage_date=day, count=delta)
            .on_conflict_do_update(
                index_elements=[OcrUsage.usage_date],
                set_={"count": OcrUsage.count + delta},
            )
        )
        db.execute(stmt)
    else:
        updated = (
            db.query(OcrUsage)
            .filter(OcrUsage.usage_date == day)
            .update({OcrUsage.count: OcrUsage.count + delta}, synchronize_session=False)
        )
        if not updated:
            db.add(OcrUsage(usage_date=day, count=delta))
    db.commit()


class DailyUsageGate:
    """Daily OCR budget keyed by calendar day. Increments are atomic on PostgreSQL."""

    def __init__(self, db: Session, limit: Optional[int] = None):
        self.db = db
        self.limit = settings.GOOGLE_AI_DAILY_LIMIT if limit is None else limit

    def used(self, day: Optional[date] = None) -> int:
        return read_usage(self.db, day)

    def check(self, units: int = 1, day: Optional[date] = None) -> None:
        used = self.used(day)
        if used + units > self.limit:
            logger.warning("daily OCR limit reached: %d/%d", used, self.limit)
            raise UsageLimitExceeded(used, self.limit)

    def record(self, units: int = 1, day: Optional[date] = None) -> None:
        increment_usage(self.db, day, units)
