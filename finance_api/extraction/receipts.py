# finance_api/extraction/receipts.py
"""
Itemized receipt extraction.

Cascade: entity line items -> best-scoring table -> (optional LLM cleanup) -> plain text.
A structured result is only kept when it passes the quality gate in
`is_poor_receipt_items`; otherwise the plain-text scan gets a chance.
"""
import logging
import re
from typing import Callable, List, Optional, Tuple

from finance_api.ocr.schemas import OcrDocument, OcrEntity, Table
from finance_api.extraction.entities import (
    number_of,
    pick_prop,
    row_cells,
    text_lines,
    text_of,
)
from finance_api.extraction.locale import (
    AMOUNT_RE,
    DATE_ANY_RE,
    has_letters,
    parse_amount,
    parse_flexible_date,
    strip_accents,
)
from finance_api.extraction.schemas import (
    ExtractedReceipt,
    ReceiptItem,
    ReceiptTable,
    finalize_receipt,
)

logger = logging.getLogger(__name__)

LlmReceiptMapper = Callable[[OcrDocument], Optional[ExtractedReceipt]]

# -------------------------------------------------
# HEADER VOCABULARY (matched against accent-stripped, lowercased header text)
# -------------------------------------------------
COL_DESC_RE = re.compile(r"(descri|descricao|description|produto|item)", flags=re.I)
COL_QTY_RE = re.compile(r"(qtd|quant|qty|quantidade)", flags=re.I)
COL_UNIT_RE = re.compile(r"(preco\s*un|unit|unitario|unit price|preco unit)", flags=re.I)
COL_TOTAL_RE = re.compile(r"(total|valor)", flags=re.I)
COL_CODE_RE = re.compile(r"(cod|codigo|sku|ref|referencia|item\s*id|produto\s*id)", flags=re.I)
COL_TAX_RE = re.compile(r"(iva|vat|imposto|taxa|tax)", flags=re.I)

ROW_SKIP_RE = re.compile(
    r"subtotal|iva|vat|imposto|taxa|total|descri[cç][aã]o|description|item|produto",
    flags=re.I,
)

SUBTOTAL_LINE_RE = re.compile(r"\b(subtotal|sub-total|total\s*sem\s*iva|before\s*tax)\b", flags=re.I)
TAX_LINE_RE = re.compile(r"\b(iva|vat|taxa|imposto)\b", flags=re.I)
TOTAL_LINE_RE = re.compile(r"\b(total)\b", flags=re.I)
MERCHANT_SKIP_RE = re.compile(r"subtotal|total|iva|vat|imposto", flags=re.I)

NOISE_RE = re.compile(
    r"(rastreabilidade|visa|mastercard|troco|change|aprovado|authorized|multibanco|mbway"
    r"|nif|vat|iva|imposto|subtotal|total|pagamento|payment)",
    flags=re.I,
)
PRICE_ONLY_RE = re.compile(r"^\s*\d{1,4}[,.]\d{2}\s*$")
QTY_SUFFIX_RE = re.compile(r"\s(\d{1,3})\s*[xX*]\s*$")
PERCENT_RE = re.compile(r"(-?\d{1,3}(?:\.\d{1,2})?)\s*%")

ENTITY_MERCHANT_RE = re.compile(r"merchant|seller|store|supplier_name|issuer|institution", flags=re.I)
ENTITY_DATE_RE = re.compile(r"date|data", flags=re.I)
ENTITY_SUBTOTAL_RE = re.compile(r"subtotal", flags=re.I)
ENTITY_TAX_RE = re.compile(r"tax|iva|vat", flags=re.I)
ENTITY_TOTAL_RE = re.compile(r"total", flags=re.I)
ENTITY_ITEM_RE = re.compile(r"line_item|item", flags=re.I)

ITEM_DESC_KEYS = ["description", "descricao", "item", "produto", "line_item/description"]
ITEM_CODE_KEYS = ["code", "sku", "ref", "referencia", "referência", "item_id", "product_id", "line_item/product_code"]
ITEM_QTY_KEYS = ["quantity", "qtd", "quantidade", "line_item/quantity"]
ITEM_UNIT_KEYS = ["unit_price", "preco_unitario", "unit", "line_item/unit_price"]
ITEM_TOTAL_KEYS = ["amount", "total", "line_total", "line_item/amount"]


def _r2(v: Optional[float]) -> Optional[float]:
    return None if v is None else round(v, 2)


def _parse_percent(t: Optional[str], allow_bare: bool = True) -> Optional[float]:
    if not t or not t.strip():
        return None
    m = PERCENT_RE.search(t.replace(",", "."))
    if m:
        return float(m.group(1))
    if not allow_bare:
        return None
    try:
        return float(re.sub(r"[^0-9.\-]", "", t.replace(",", ".")))
    except ValueError:
        return None


def _tax_from_rate(total: Optional[float], rate: Optional[float]) -> Optional[float]:
    # rate in percent, total includes tax
    if total is None or rate is None or rate <= -100:
        return None
    return round(total - total / (1 + rate / 100), 2)


def _trailing_amount(line: str) -> Optional[float]:
    matches = list(AMOUNT_RE.finditer(line))
    if not matches:
        return None
    return parse_amount(matches[-1].group(0))


def _scan_totals(lines: List[str]) -> Tuple[Optional[float], Optional[float], Optional[float]]:
    subtotal = tax = total = None
    for line in lines[-60:]:
        if SUBTOTAL_LINE_RE.search(line):
            if subtotal is None:
                subtotal = _trailing_amount(line)
        elif TAX_LINE_RE.search(line):
            if tax is None:
                tax = _trailing_amount(line)
        elif TOTAL_LINE_RE.search(line):
            if total is None:
                total = _trailing_amount(line)
    return subtotal, tax, total


def _scan_header(lines: List[str]) -> Tuple[Optional[str], Optional[str]]:
    merchant, when = None, ""
    for line in lines[:20]:
        if merchant is None and len(line) > 3 and not re.search(r"\d{2,}", line) \
                and not MERCHANT_SKIP_RE.search(line):
            merchant = line
        if not when:
            when = parse_flexible_date(line)
            if not when:
                m = DATE_ANY_RE.search(line)
                when = parse_flexible_date(m.group(1)) if m else ""
        if merchant and when:
            break
    return merchant, (when or None)


def _fill_totals_from_text(receipt: ExtractedReceipt, text: str) -> ExtractedReceipt:
    """Header totals the entities did not carry, read from the printed summary lines."""
    if None not in (receipt.subtotal, receipt.tax, receipt.total):
        return receipt
    subtotal, tax, total = _scan_totals(text_lines(text))
    return receipt.model_copy(update={
        "subtotal": receipt.subtotal if receipt.subtotal is not None else _r2(subtotal),
        "tax": receipt.tax if receipt.tax is not None else _r2(tax),
        "total": receipt.total if receipt.total is not None else _r2(total),
    })


# -------------------------------------------------
# QUALITY GATE
# -------------------------------------------------

def is_poor_receipt_items(items: List[ReceiptItem]) -> bool:
    if not items:
        return True
    n = len(items)
    no_letters = sum(1 for it in items if not has_letters((it.description or "").strip()))
    no_total = sum(1 for it in items if it.total is None)
    one_token = sum(1 for it in items if len((it.description or "").split()) < 2)
    return no_letters / n > 0.15 or no_total / n > 0.5 or one_token / n > 0.6


# -------------------------------------------------
# (a) ENTITIES
# -------------------------------------------------

def _item_from_entity(e: OcrEntity) -> ReceiptItem:
    total = number_of(pick_prop(e, ITEM_TOTAL_KEYS))
    tax_rate = number_of(pick_prop(e, ["tax_rate"]))
    tax_amount = number_of(pick_prop(e, ["tax_amount"]))
    if tax_amount is None:
        tax_amount = _tax_from_rate(total, tax_rate)
    return ReceiptItem(
        code=text_of(pick_prop(e, ITEM_CODE_KEYS)),
        description=(text_of(pick_prop(e, ITEM_DESC_KEYS)) or text_of(e) or "Item").strip(),
        quantity=number_of(pick_prop(e, ITEM_QTY_KEYS)),
        unit_price=_r2(number_of(pick_prop(e, ITEM_UNIT_KEYS))),
        total=_r2(total),
        tax_rate=tax_rate,
        tax_amount=tax_amount,
    )


def receipt_from_entities(entities: List[OcrEntity]) -> Optional[ExtractedReceipt]:
    if not entities:
        return None

    items: List[ReceiptItem] = []
    merchant = when = None
    subtotal = tax = total = None

    stack = list(reversed(entities))
    seen = set()
    while stack:
        e = stack.pop()
        if id(e) in seen:
            continue
        seen.add(id(e))
        t = e.type or ""

        if t and ENTITY_ITEM_RE.search(t):
            items.append(_item_from_entity(e))
            # an item's own fields are not receipt header fields
            continue

        if t:
            if ENTITY_MERCHANT_RE.search(t) and merchant is None:
                merchant = text_of(e)
            if ENTITY_DATE_RE.search(t) and when is None:
                when = parse_flexible_date(text_of(e) or "") or None
            if ENTITY_SUBTOTAL_RE.search(t):
                subtotal = subtotal if subtotal is not None else number_of(e)
            elif ENTITY_TAX_RE.search(t):
                tax = tax if tax is not None else number_of(e)
            elif ENTITY_TOTAL_RE.search(t):
                total = total if total is not None else number_of(e)

        stack.extend(reversed(e.properties))

    if not items:
        return None
    return ExtractedReceipt(
        merchant=merchant, date=when, subtotal=_r2(subtotal), tax=_r2(tax), total=_r2(total), items=items,
    )


# -------------------------------------------------
# (b) TABLES
# -------------------------------------------------

def _normalized_header(table: Table, full_text: str) -> List[str]:
    if not table.header_rows:
        return []
    return [strip_accents(h).lower() for h in row_cells(table.header_rows[0], full_text)]


def _find_col(headers: List[str], rx) -> int:
    return next((i for i, h in enumerate(headers) if rx.search(h)), -1)


def _best_table(document: OcrDocument, weights: Tuple[float, ...]) -> Optional[Table]:
    best, best_score = None, -1.0
    for page in document.pages:
        for table in page.tables:
            header = _normalized_header(table, document.text)
            flags = [
                any(rx.search(h) for h in header)
                for rx in (COL_DESC_RE, COL_QTY_RE, COL_UNIT_RE, COL_TOTAL_RE, COL_CODE_RE, COL_TAX_RE)
            ]
            score = sum(w for w, hit in zip(weights, flags) if hit) + min(len(table.body_rows), 10)
            if score > best_score:
                best, best_score = table, score
    return best


def receipt_from_tables(document: OcrDocument) -> Optional[ExtractedReceipt]:
    table = _best_table(document, (1, 1, 1, 1, 0.5, 0.5))
    if table is None:
        return None

    full_text = document.text
    header = _normalized_header(table, full_text)
    desc_idx = _find_col(header, COL_DESC_RE)
    qty_idx = _find_col(header, COL_QTY_RE)
    unit_idx = _find_col(header, COL_UNIT_RE)
    total_idx = _find_col(header, COL_TOTAL_RE)
    code_idx = _find_col(header, COL_CODE_RE)
    tax_idx = _find_col(header, COL_TAX_RE)

    items: List[ReceiptItem] = []
    for row in table.body_rows:
        cells = row_cells(row, full_text)

        def get(i: int) -> str:
            return cells[i] if 0 <= i < len(cells) else ""

        d_i, q_i, u_i, t_i, x_i = desc_idx, qty_idx, unit_idx, total_idx, tax_idx

        if d_i == -1:
            best_len = -1
            for i, c in enumerate(cells):
                if c and has_letters(c) and len(c) > best_len:
                    best_len, d_i = len(c), i

        numeric = []
        for i, c in enumerate(cells):
            v = parse_amount(c)
            if v is not None:
                is_int = abs(v - round(v)) < 0.001 and 0 < v <= 100
                numeric.append((i, v, is_int))

        if q_i == -1:
            q_i = next((i for i, v, is_int in numeric if is_int and v <= 50), -1)
        if t_i == -1 and numeric:
            t_i = numeric[-1][0]
        if u_i == -1:
            prices = [(i, v) for i, v, is_int in numeric if not is_int or v > 10]
            if len(prices) >= 2:
                u_i = prices[-2][0]
        if x_i == -1:
            x_i = next((i for i in range(len(cells) - 1, -1, -1) if "%" in cells[i]), -1)

        description = get(d_i).strip()
        if not description or not has_letters(description) or description.isdigit() \
                or ROW_SKIP_RE.search(description):
            continue

        quantity = parse_amount(get(q_i)) if q_i >= 0 else None
        unit_price = parse_amount(get(u_i)) if u_i >= 0 else None
        total = parse_amount(get(t_i)) if t_i >= 0 else None
        tax_rate = _parse_percent(get(x_i), allow_bare=tax_idx >= 0) if x_i >= 0 else None

        if len(description) > 1 and (quantity is not None or unit_price is not None or total is not None):
            items.append(ReceiptItem(
                code=get(code_idx).strip() or None,
                description=description,
                quantity=quantity,
                unit_price=_r2(unit_price),
                total=_r2(total),
                tax_rate=tax_rate,
                tax_amount=_tax_from_rate(total, tax_rate),
            ))

    if not items:
        return None

    lines = text_lines(full_text)
    subtotal, tax, total = _scan_totals(lines)
    merchant, when = _scan_header(lines)
    return ExtractedReceipt(
        merchant=merchant, date=when, subtotal=_r2(subtotal), tax=_r2(tax), total=_r2(total), items=items,
    )


def build_dynamic_receipt_table(document: OcrDocument) -> Optional[ReceiptTable]:
    """Raw headers and rows of the most receipt-like table, plus which column means what."""
    table = _best_table(document, (2, 1, 1, 2, 1, 1))
    if table is None:
        return None

    full_text = document.text
    raw_headers = row_cells(table.header_rows[0], full_text) if table.header_rows else []
    header = [strip_accents(h).lower() for h in raw_headers]

    semantics = {}
    for name, rx in (
        ("description", COL_DESC_RE),
        ("quantity", COL_QTY_RE),
        ("unit_price", COL_UNIT_RE),
        ("total", COL_TOTAL_RE),
        ("code", COL_CODE_RE),
        ("tax", COL_TAX_RE),
    ):
        idx = _find_col(header, rx)
        if idx >= 0:
            semantics[name] = idx

    rows = [cells for cells in (row_cells(r, full_text) for r in table.body_rows) if cells]
    return ReceiptTable(headers=raw_headers, rows=rows, column_semantics=semantics)


# -------------------------------------------------
# (c) PLAIN TEXT
# -------------------------------------------------

def receipt_from_text(text: str) -> Optional[ExtractedReceipt]:
    lines = text_lines(text)
    if not lines:
        return None

    items: List[ReceiptItem] = []
    current_desc = ""
    pending_price: Optional[float] = None

    i = 0
    while i < len(lines):
        line = lines[i]
        if NOISE_RE.search(line):
            i += 1
            continue

        if PRICE_ONLY_RE.match(line):
            price = parse_amount(line)
            if price is not None:
                if len(current_desc) > 2:
                    items.append(ReceiptItem(description=current_desc, total=price))
                    current_desc, pending_price = "", None
                else:
                    pending_price = price
            i += 1
            continue

        matches = list(AMOUNT_RE.finditer(line))
        numbers = [v for v in (parse_amount(m.group(0)) for m in matches) if v is not None]

        if numbers:
            first_idx = matches[0].start()
            desc = line[:first_idx].strip() if first_idx > 1 else AMOUNT_RE.sub("", line).strip()
            quantity = None
            m = QTY_SUFFIX_RE.search(" " + desc)
            if m:
                quantity = float(m.group(1))
                desc = (" " + desc)[:m.start()].strip()

            if len(desc) > 2 and not desc.isdigit():
                unit_price = None
                total = numbers[-1]
                if len(numbers) >= 2:
                    first = numbers[0]
                    if quantity is None and first <= 100 and abs(first - round(first)) < 0.001 and len(numbers) >= 3:
                        quantity = float(round(first))
                    unit_price = numbers[-2]
                elif quantity is not None and quantity > 0:
                    unit_price = round(total / quantity, 2)
                items.append(ReceiptItem(description=desc, quantity=quantity, unit_price=unit_price, total=total))
                current_desc, pending_price = "", None
            else:
                current_desc = desc or current_desc
        else:
            clean = re.sub(r"^\d+\s*", "", line).strip()
            if len(clean) > 2 and has_letters(clean):
                if pending_price is not None:
                    items.append(ReceiptItem(description=clean, total=pending_price))
                    current_desc, pending_price = "", None
                else:
                    current_desc = clean

        # description waiting for a price on the very next line
        if current_desc and i + 1 < len(lines) and PRICE_ONLY_RE.match(lines[i + 1]):
            price = parse_amount(lines[i + 1])
            if price is not None:
                items.append(ReceiptItem(description=current_desc, total=price))
                current_desc = ""
                i += 1
        i += 1

    seen = set()
    kept: List[ReceiptItem] = []
    for it in items:
        if len(it.description) <= 1 or re.match(r"^[-+]?\d", it.description):
            continue
        if it.total is None and it.unit_price is None:
            continue
        key = f"{it.description}|{it.total}"
        if key in seen:
            continue
        seen.add(key)
        kept.append(it.model_copy(update={"total": _r2(it.total)}))

    if not kept:
        return None

    subtotal, tax, total = _scan_totals(lines)
    merchant, when = _scan_header(lines)
    return ExtractedReceipt(
        merchant=merchant, date=when, subtotal=_r2(subtotal), tax=_r2(tax), total=_r2(total), items=kept,
    )


# -------------------------------------------------
# CASCADE
# -------------------------------------------------

def extract_receipt(
    document: OcrDocument,
    is_receipt: bool = True,
    llm_mapper: Optional[LlmReceiptMapper] = None,
) -> Optional[ExtractedReceipt]:
    receipt = receipt_from_entities(document.entities)
    source = "entities"
    if receipt is None:
        receipt = receipt_from_tables(document)
        source = "tables"

    table = build_dynamic_receipt_table(document) if is_receipt else None

    if is_receipt and llm_mapper is not None:
        mapped = llm_mapper(document)
        if mapped is not None and mapped.items:
            receipt, source = mapped, "llm"

    if (receipt is None or is_poor_receipt_items(receipt.items)) and document.text:
        if receipt is not None:
            logger.debug("receipt from %s failed the quality gate", source)
        from_text = receipt_from_text(document.text)
        if from_text is not None and from_text.items:
            receipt, source = from_text, "text"

    if receipt is None:
        logger.debug("no receipt found")
        return None

    logger.debug("receipt from %s: %d items", source, len(receipt.items))
    if source == "entities" and document.text:
        receipt = _fill_totals_from_text(receipt, document.text)
    receipt = finalize_receipt(receipt)
    if table is not None:
        receipt = receipt.model_copy(update={"table": table})
    return receipt
