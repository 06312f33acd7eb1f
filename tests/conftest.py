# tests/conftest.py
from typing import List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from finance_api.db.base import Base
from finance_api.ocr.schemas import OcrDocument, OcrEntity

# every mapper must be registered before a model is instantiated
from finance_api.models import account, category, document, exchange_rate, fixed_cost, ocr_usage, repasse, transaction  # noqa: F401


class DocBuilder:
    """Builds an OcrDocument whose tables and lines point into `text` through anchors."""

    def __init__(self):
        self.text = ""
        self.pages: List[dict] = [{"lines": [], "tables": []}]
        self.entities: List[dict] = []

    def anchor(self, s: str) -> dict:
        start = len(self.text)
        self.text += s + "\n"
        return {"textAnchor": {"textSegments": [{"startIndex": start, "endIndex": start + len(s)}]}}

    def table(self, header: Optional[List[str]], rows: List[List[str]]) -> "DocBuilder":
        table = {"headerRows": [], "bodyRows": []}
        if header:
            table["headerRows"].append({"cells": [{"layout": self.anchor(h)} for h in header]})
        for row in rows:
            table["bodyRows"].append({"cells": [{"layout": self.anchor(c)} for c in row]})
        self.pages[-1]["tables"].append(table)
        return self

    def line(self, s: str) -> "DocBuilder":
        self.pages[-1]["lines"].append({"layout": self.anchor(s)})
        return self

    def raw(self, s: str) -> "DocBuilder":
        self.text += s + "\n"
        return self

    def entity(self, data: dict) -> "DocBuilder":
        self.entities.append(data)
        return self

    def build(self, provider: str = "documentai") -> OcrDocument:
        return OcrDocument.model_validate({
            "text": self.text,
            "pages": self.pages,
            "entities": self.entities,
            "provider": provider,
        })


def ent(type_: str, text: Optional[str] = None, number: Optional[float] = None, props=None) -> OcrEntity:
    data = {"type": type_, "mentionText": text, "properties": props or []}
    if number is not None:
        data["normalizedValue"] = {"numberValue": number}
    return OcrEntity.model_validate(data)


@pytest.fixture
def doc_builder():
    return DocBuilder()


@pytest.fixture
def make_entity():
    return ent


@pytest.fixture
def sqlite_db():
    """Session over a fresh in-memory database with every table created."""
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
