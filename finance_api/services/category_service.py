# finance_api/services/category_service.py
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from finance_api.models.category import Category


def match_category(name: Optional[str], categories: Sequence[Category]) -> Optional[UUID]:
    """Case-insensitive substring match in either direction; first hit wins."""
    needle = (name or "").strip().lower()
    if not needle:
        return None
    for c in categories:
        hay = (c.name or "").lower()
        if hay and (needle in hay or hay in needle):
            return c.id
    return None


def user_categories(db: Session, user_id: UUID):
    return db.query(Category).filter_by(user_id=user_id).all()
