# finance_api/extraction/entities.py
import re
from typing import Iterable, Iterator, List, Optional

from finance_api.ocr.schemas import OcrDocument, OcrEntity, TextAnchor, Layout
from finance_api.extraction.locale import parse_amount


def text_of(entity: Optional[OcrEntity]) -> Optional[str]:
    if entity is None:
        return None
    nv = entity.normalized_value
    return (nv.text if nv and nv.text else None) or entity.mention_text or None


def number_of(entity: Optional[OcrEntity]) -> Optional[float]:
    if entity is None:
        return None
    nv = entity.normalized_value
    if nv is not None and nv.number_value is not None:
        return float(nv.number_value)
    return parse_amount(text_of(entity))


def pick_prop(entity: Optional[OcrEntity], names: Iterable[str]) -> Optional[OcrEntity]:
    """First direct child whose type matches one of `names` (case-insensitive)."""
    if entity is None or not entity.properties:
        return None
    wanted = {n.lower() for n in names}
    for p in entity.properties:
        if p.type and p.type.lower() in wanted:
            return p
    return None


def walk_entities(entities: Iterable[OcrEntity]) -> Iterator[OcrEntity]:
    # explicit work-list, pre-order in document order; id() guard keeps a shared node from being revisited
    stack: List[OcrEntity] = list(reversed(list(entities or [])))
    seen = set()
    while stack:
        e = stack.pop()
        if e is None or id(e) in seen:
            continue
        seen.add(id(e))
        yield e
        if e.properties:
            stack.extend(reversed(e.properties))


def find_entity(entities: Iterable[OcrEntity], pattern: str) -> Optional[OcrEntity]:
    """First top-level entity whose type matches the regex."""
    rx = re.compile(pattern, flags=re.I)
    for e in entities or []:
        if e.type and rx.search(e.type):
            return e
    return None


def anchor_to_text(anchor: Optional[TextAnchor], full_text: str) -> str:
    if anchor is None or not anchor.text_segments:
        return ""
    parts = []
    for seg in anchor.text_segments:
        start = seg.start_index or 0
        end = seg.end_index
        if end is not None and end > start:
            parts.append(full_text[start:end])
    return "".join(parts)


def layout_text(layout: Optional[Layout], full_text: str) -> str:
    if layout is None:
        return ""
    return anchor_to_text(layout.text_anchor, full_text)


def clean_cell(s: str) -> str:
    return re.sub(r"\s+", " ", s or "").strip()


def row_cells(row, full_text: str) -> List[str]:
    return [clean_cell(layout_text(c.layout, full_text)) for c in row.cells]


def document_lines(document: OcrDocument) -> List[str]:
    """Text of every OCR line on every page, resolved through its anchors."""
    out = []
    for page in document.pages:
        for ln in page.lines:
            t = clean_cell(layout_text(ln.layout, document.text))
            if t:
                out.append(t)
    return out


def text_lines(text: str) -> List[str]:
    lines = (re.sub(r"\s{2,}", " ", ln).strip() for ln in re.split(r"\r?\n", text or ""))
    return [ln for ln in lines if ln]
