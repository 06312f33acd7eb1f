# finance_api/extraction/document_info.py
import re
from typing import Optional, Sequence

from finance_api.core.constants import KNOWN_BANKS, UNKNOWN_INSTITUTION
from finance_api.ocr.schemas import OcrEntity
from finance_api.extraction.entities import find_entity, number_of, text_of, walk_entities
from finance_api.extraction.locale import parse_flexible_date
from finance_api.extraction.schemas import CardInfo


def extract_institution(text: str, entities: Sequence[OcrEntity]) -> str:
    ent = find_entity(entities, r"bank|issuer|institution")
    if ent is not None:
        name = text_of(ent)
        if name:
            return name.strip()

    for bank in KNOWN_BANKS:
        if re.search(r"\b" + re.escape(bank) + r"\b", text or "", flags=re.I):
            return bank

    return UNKNOWN_INSTITUTION


def extract_card_info(entities: Sequence[OcrEntity]) -> Optional[CardInfo]:
    """Card header fields from anywhere in the entity tree; None when nothing identifies a card."""
    by_type = {}
    for e in walk_entities(entities):
        if e.type:
            by_type.setdefault(e.type.lower(), e)

    def find_text(t: str) -> Optional[str]:
        return text_of(by_type.get(t))

    def find_date(t: str) -> Optional[str]:
        raw = find_text(t)
        return (parse_flexible_date(raw) or None) if raw else None

    last_four = find_text("credit_card_last_four_digits")
    holder = find_text("card_holder_name")
    card_type = find_text("card_type")
    currency = find_text("currency")
    card_limit = number_of(by_type.get("card_limit"))
    available = number_of(by_type.get("available_limit"))

    if not any([last_four, holder, card_type, currency]) and card_limit is None and available is None:
        return None

    return CardInfo(
        last_four_digits=last_four,
        card_holder_name=holder,
        card_type=card_type,
        currency=currency,
        card_limit=card_limit,
        available_limit=available,
        start_date=find_date("start_date"),
        end_date=find_date("end_date"),
    )
