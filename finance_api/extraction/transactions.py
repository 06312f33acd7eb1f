# finance_api/extraction/transactions.py
"""
Transaction candidate extractors.

Four independent strategies over one OCR document, tried in a fixed order
(entities -> tables -> lines -> plain text); the first non-empty result wins.
"""
import logging
import re
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple

from finance_api.core.constants import DEFAULT_CATEGORY
from finance_api.ocr.schemas import OcrDocument, OcrEntity
from finance_api.extraction.entities import (
    document_lines,
    number_of,
    pick_prop,
    row_cells,
    text_lines,
    text_of,
    walk_entities,
)
from finance_api.extraction.locale import (
    AMOUNT_RE,
    DATE_ANY_RE,
    has_letters,
    parse_amount,
    parse_flexible_date,
    strip_accents,
)
from finance_api.extraction.schemas import ExtractedTransaction

logger = logging.getLogger(__name__)

TX_TYPES_RE = re.compile(
    r"^(transaction|line_item|table_item|table_row|bank_transaction|statement_line"
    r"|installments?|movement|movimento|entry)$",
    flags=re.I,
)

DATE_KEYS = [
    "date",
    "transaction_date",
    "processed_date",
    "date_transaction",
    "data",
    "dt",
    "value_date",
    "processing_date",
]
DESC_KEYS = [
    "description",
    "merchant",
    "comerciante",
    "descricao",
    "historic",
    "historico",
    "detail",
    "detalhe",
]
AMOUNT_KEYS = [
    "amount",
    "installment_amount",
    "amount_refund",
    "valor",
    "value",
    "total",
    "debit_amount",
    "credit_amount",
    "transaction_amount",
]
CATEGORY_KEYS = ["category", "categoria", "type", "tipo"]

# table date cell (also accepts dotted dates)
TABLE_DATE_RE = re.compile(
    r"\b(\d{1,2}[-/.]\d{1,2}(?:[-/.]\d{2,4})?"
    r"|\d{4}[-/.]\d{1,2}[-/.]\d{1,2}"
    r"|\d{1,2}\s+[A-Za-zÀ-ÿ]{3,}\.?\s*\d{0,4})\b"
)

HEADER_DATE_KEYS = ["data", "date", "dt"]
HEADER_DESC_KEYS = ["descricao", "description", "historico", "merchant", "detalhe", "detalhes"]
HEADER_AMOUNT_KEYS = ["valor", "amount", "total", "montante"]
HEADER_DC_KEYS = ["d/c", "dc", "debito/credito", "debito credito", "debito", "credito", "dr/cr", "dr cr"]

SUMMARY_LINE_RE = re.compile(
    r"^\s*(sub\s*total|total|saldo(\s+(anterior|final|atual|actual|disponivel|disponível))?"
    r"|balance|resumo|summary|sum[aá]rio|p[aá]gina|page)\b[^A-Za-zÀ-ÿ]*$",
    flags=re.I,
)
BOILERPLATE_DESC_RE = re.compile(
    r"^(saldo|saldo anterior|saldo final|balance|resumo|sumario|pagamento|payment|total|subtotal)$",
    flags=re.I,
)

DEBIT_AFTER_RE = re.compile(r"^\)?\s*(D|DB|d[ée]bito|debit)\b", flags=re.I)
CREDIT_AFTER_RE = re.compile(r"^\)?\s*(C|CR|cr[ée]dito|credit)\b", flags=re.I)
DEBIT_BEFORE_RE = re.compile(r"sa[íi]da|withdrawal|payment|pagamento", flags=re.I)
CREDIT_BEFORE_RE = re.compile(r"entrada|deposit|dep[óo]sito|recebimento", flags=re.I)
DC_EDGE_RE = re.compile(r"^(D|C|DB|CR|d[ée]bito|cr[ée]dito|debit|credit)\b\s*|\s*\b(D|C|DB|CR|d[ée]bito|cr[ée]dito|debit|credit)$", flags=re.I)


def _today() -> str:
    return date.today().isoformat()


def _looks_like_date(t: str, base_year: int) -> str:
    iso = parse_flexible_date(t, base_year)
    if iso:
        return iso
    m = TABLE_DATE_RE.search(t)
    if m:
        return parse_flexible_date(m.group(1), base_year)
    return ""


def _type_contains(e: OcrEntity, keys: Sequence[str]) -> bool:
    t = (e.type or "").lower()
    return bool(t) and any(k in t for k in keys)


# -------------------------------------------------
# (a) ENTITY MAPPER
# -------------------------------------------------

def _is_transaction_like(e: OcrEntity) -> bool:
    if e.type:
        t = e.type.lower()
        if TX_TYPES_RE.match(t) or "line" in t or "row" in t or "entry" in t:
            return True
    if e.properties:
        return any(_type_contains(p, AMOUNT_KEYS) or _type_contains(p, DATE_KEYS) for p in e.properties)
    return False


def map_transactions(entities: Sequence[OcrEntity], today: Optional[str] = None) -> List[ExtractedTransaction]:
    base_year = date.today().year
    collected = [e for e in walk_entities(entities) if _is_transaction_like(e)]

    txs: List[ExtractedTransaction] = []
    for e in collected:
        tx_date = parse_flexible_date(text_of(pick_prop(e, DATE_KEYS)) or "", base_year)
        desc = text_of(pick_prop(e, DESC_KEYS)) or e.mention_text or ""
        amount = number_of(pick_prop(e, AMOUNT_KEYS))
        category = text_of(pick_prop(e, CATEGORY_KEYS)) or DEFAULT_CATEGORY

        if (not tx_date or amount is None or not desc) and e.properties:
            for p in e.properties:
                t = text_of(p) or ""
                if not t:
                    continue
                iso = _looks_like_date(t, base_year)
                if not tx_date and iso:
                    tx_date = iso
                # a date property must not be read as a number
                if amount is None and not iso:
                    amount = number_of(p)
                if len(desc) < 3 and has_letters(t) and len(t) >= 3 and len(t) >= len(desc):
                    desc = t

        desc = desc.strip()
        if not desc or amount is None:
            continue

        txs.append(ExtractedTransaction(
            date=tx_date or today or _today(),
            description=desc,
            amount=round(amount, 2),
            suggested_category=category,
        ))

    logger.debug("entity mapper: %d candidates, %d transactions", len(collected), len(txs))
    return txs


# -------------------------------------------------
# (b) TABLE EXTRACTOR
# -------------------------------------------------

def _header_has(h: str, keys: Sequence[str]) -> bool:
    return any(re.search(r"(^|[^a-z])" + re.escape(k) + r"([^a-z]|$)", h, flags=re.I) for k in keys)


def _find_col(headers: List[str], keys: Sequence[str], skip: Sequence[str] = ()) -> int:
    for i, h in enumerate(headers):
        if skip and _header_has(h, skip):
            continue
        if _header_has(h, keys):
            return i
    return -1


def extract_from_tables(document: OcrDocument, base_year: Optional[int] = None) -> List[ExtractedTransaction]:
    out: List[ExtractedTransaction] = []
    year = base_year or date.today().year
    full_text = document.text or ""
    tables = 0

    for page in document.pages:
        for table in page.tables:
            tables += 1
            date_idx = desc_idx = amount_idx = dc_idx = -1
            if table.header_rows:
                headers = [strip_accents(h).lower() for h in row_cells(table.header_rows[0], full_text)]
                date_idx = _find_col(headers, HEADER_DATE_KEYS)
                desc_idx = _find_col(headers, HEADER_DESC_KEYS)
                # "data valor" is the value date, not the amount
                amount_idx = _find_col(headers, HEADER_AMOUNT_KEYS, skip=HEADER_DATE_KEYS)
                dc_idx = _find_col(headers, HEADER_DC_KEYS)

            for row in table.body_rows:
                cells = row_cells(row, full_text)
                if len(cells) < 2:
                    continue

                d_i, a_i, s_i = date_idx, amount_idx, desc_idx
                if d_i == -1:
                    d_i = next((i for i, c in enumerate(cells) if TABLE_DATE_RE.search(c)), -1)
                if a_i == -1:
                    a_i = next((i for i in range(len(cells) - 1, -1, -1) if parse_amount(cells[i]) is not None), -1)
                if s_i == -1:
                    best_len = -1
                    for i, c in enumerate(cells):
                        if i in (d_i, a_i, dc_idx):
                            continue
                        if len(c) > best_len:
                            best_len, s_i = len(c), i
                if min(d_i, a_i, s_i) < 0 or max(d_i, a_i, s_i) >= len(cells):
                    continue

                m = TABLE_DATE_RE.search(cells[d_i])
                iso = parse_flexible_date(m.group(1) if m else cells[d_i], year)
                if not iso:
                    continue

                amount_text = cells[a_i]
                amount = parse_amount(amount_text)
                if amount is None:
                    continue
                if "(" in amount_text or "-" in amount_text:
                    amount = -abs(amount)
                if 0 <= dc_idx < len(cells):
                    flag = cells[dc_idx].upper()
                    if re.search(r"\bD\b|DEB", flag):
                        amount = -abs(amount)
                    if re.search(r"\bC\b|CR|CRED", flag):
                        amount = abs(amount)

                description = cells[s_i]
                if not description:
                    continue
                out.append(ExtractedTransaction(date=iso, description=description, amount=round(amount, 2)))

    logger.debug("table extractor: %d tables, %d rows", tables, len(out))
    return out


# -------------------------------------------------
# (d) PLAIN-TEXT EXTRACTOR
# -------------------------------------------------

def _cut_spans(line: str, spans: List[Tuple[int, int]]) -> str:
    for start, end in sorted(spans, reverse=True):
        line = line[:start] + " " + line[end:]
    return re.sub(r"\s{2,}", " ", line).strip()


def extract_from_text(text: str, base_year: Optional[int] = None) -> List[ExtractedTransaction]:
    out: List[ExtractedTransaction] = []
    if not text:
        return out
    year = base_year or date.today().year

    for line in text_lines(text):
        if len(line) < 5 or SUMMARY_LINE_RE.match(line):
            continue

        amounts = list(AMOUNT_RE.finditer(line))
        if not amounts:
            continue
        best = amounts[-1]
        amount = parse_amount(best.group(0))
        if amount is None:
            continue

        after = line[best.end():].strip()
        before = line[:best.start()].strip()
        if (DEBIT_AFTER_RE.match(after) or "(" in best.group(0) or "-" in best.group(0)
                or DEBIT_BEFORE_RE.search(before)):
            amount = -abs(amount)
        elif (CREDIT_AFTER_RE.match(after) or "+" in best.group(0)
                or CREDIT_BEFORE_RE.search(before)):
            amount = abs(amount)

        dm = DATE_ANY_RE.search(line)
        if not dm:
            continue
        iso = parse_flexible_date(dm.group(1), year)
        if not iso:
            continue

        spans = [best.span()]
        if dm.end(1) <= best.start() or dm.start(1) >= best.end():
            spans.append(dm.span(1))
        description = _cut_spans(line, spans)
        description = DC_EDGE_RE.sub("", description).strip(" -:;|")

        if len(description) < 2 or description.isdigit():
            continue
        if BOILERPLATE_DESC_RE.match(strip_accents(description)):
            continue
        if not has_letters(description):
            continue

        out.append(ExtractedTransaction(date=iso, description=description, amount=round(amount, 2)))

    return out


# -------------------------------------------------
# (c) LINE EXTRACTOR
# -------------------------------------------------

def extract_from_lines(document: OcrDocument, base_year: Optional[int] = None) -> List[ExtractedTransaction]:
    lines = document_lines(document)
    if not lines:
        return []
    txs = extract_from_text("\n".join(lines), base_year)
    logger.debug("line extractor: %d lines, %d rows", len(lines), len(txs))
    return txs


# -------------------------------------------------
# CASCADE
# -------------------------------------------------

Strategy = Tuple[str, Callable[[OcrDocument], List[ExtractedTransaction]]]

STRATEGIES: List[Strategy] = [
    ("entities", lambda doc: map_transactions(doc.entities)),
    ("tables", extract_from_tables),
    ("lines", extract_from_lines),
    ("text", lambda doc: extract_from_text(doc.text)),
]


def extract_transactions(document: OcrDocument) -> Tuple[List[ExtractedTransaction], Optional[str]]:
    """Run the strategies in order; returns (transactions, name of the strategy that produced them)."""
    for name, strategy in STRATEGIES:
        txs = strategy(document)
        if txs:
            logger.debug("cascade: %s produced %d transactions", name, len(txs))
            return txs, name
        logger.debug("cascade: %s found nothing", name)
    return [], None
