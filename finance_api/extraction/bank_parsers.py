# finance_api/extraction/bank_parsers.py
"""
Institution-specific parsers.

`BANK_REGISTRY` and `STORE_REGISTRY` are ordered; detection is first match
wins. A bank with `parse=None` is recognised but has no layout parser, so
the document continues to store detection and then to the generic cascade.
"""
import logging
import re
from datetime import date
from typing import Callable, List, NamedTuple, Optional, Pattern, Union

from finance_api.core.constants import DEFAULT_CATEGORY
from finance_api.extraction.locale import parse_amount, parse_flexible_date, strip_accents
from finance_api.extraction.schemas import (
    CardStatement,
    ExtractedTransaction,
    Period,
    StoreItem,
    StoreReceipt,
)

logger = logging.getLogger(__name__)

BankDocument = Union[CardStatement, StoreReceipt]


def _rx(*patterns: str) -> List[Pattern]:
    return [re.compile(p, flags=re.I) for p in patterns]


class BankPattern(NamedTuple):
    name: str
    identifiers: List[Pattern]
    kind: str
    parse: Optional[Callable[[str], Optional[CardStatement]]]


class StorePattern(NamedTuple):
    name: str
    identifiers: List[Pattern]
    category: str


class BankMatch(NamedTuple):
    bank: str
    kind: str


class StoreMatch(NamedTuple):
    store: str
    category: str


# -------------------------------------------------
# NOVO BANCO (credit card statement)
# -------------------------------------------------

NB_HEADER_FIELDS = {
    "card_type": re.compile(r"cart[aã]o\s*de\s*cr[ée]dito:\s*(.+)", flags=re.I),
    "card_number": re.compile(r"n\.?\s*de\s*conta[_\-]?cart[aã]o.*:\s*(\d+)", flags=re.I),
    "statement_number": re.compile(r"extrato\s*n\.?\s*(\d+)", flags=re.I),
    "current_date": re.compile(r"data\s*extrato\s*atual:\s*([\d./]+)", flags=re.I),
    "previous_date": re.compile(r"data\s*extrato\s*anterior:\s*([\d./]+)", flags=re.I),
}
NB_SECTION_START_RE = re.compile(r"movimentos|transa[cç][oõ]es|opera[cç][oõ]es", flags=re.I)
NB_SECTION_END_RE = re.compile(r"totais|resumo|saldo", flags=re.I)
NB_ROW_DATE_RE = re.compile(r"(\d{1,2}[./]\d{1,2}[./]\d{4})")
NB_AMOUNT_RE = re.compile(r"([\d.,]*\d[.,]\d{2})\s*(?:€|EUR)?\s*(-|\+|CR|C|DB|D)?\s*$", flags=re.I)
CREDIT_DESC_RE = re.compile(r"pagamento|payment|reembolso|refund|estorno|cr[ée]dito", flags=re.I)


def _card_amount(value: float, marker: Optional[str], description: str) -> float:
    # card lines are purchases unless marked as a credit
    marker = (marker or "").upper()
    if marker in ("-", "+", "C", "CR") or CREDIT_DESC_RE.search(description):
        return abs(value)
    return -abs(value)


def parse_novo_banco_credit(text: str) -> Optional[CardStatement]:
    lines = [ln.strip() for ln in re.split(r"\r?\n", text or "") if ln.strip()]

    header = {}
    for line in lines:
        for field, rx in NB_HEADER_FIELDS.items():
            m = rx.search(line)
            if m:
                header[field] = m.group(1).strip()

    transactions: List[ExtractedTransaction] = []
    current = None
    in_section = False

    def flush():
        if current and current["description"] and current["amount"] is not None:
            transactions.append(ExtractedTransaction(
                date=current["date"],
                description=current["description"],
                amount=round(_card_amount(current["amount"], current["marker"], current["description"]), 2),
                suggested_category=DEFAULT_CATEGORY,
            ))

    for line in lines:
        if NB_SECTION_START_RE.search(line):
            in_section = True
            continue
        if in_section and NB_SECTION_END_RE.search(line):
            in_section = False
            continue
        if not in_section:
            continue

        dm = NB_ROW_DATE_RE.search(line)
        if dm:
            flush()
            iso = parse_flexible_date(dm.group(1))
            rest = NB_ROW_DATE_RE.sub("", line).strip()
            am = NB_AMOUNT_RE.search(rest)
            amount = parse_amount(am.group(1)) if am else None
            if am:
                rest = rest[:am.start()].strip()
            current = {
                "date": iso,
                "description": rest,
                "amount": amount,
                "marker": am.group(2) if am else None,
            } if iso else None
            continue

        if current is None:
            continue
        am = NB_AMOUNT_RE.search(line)
        if am and current["amount"] is None:
            current["amount"] = parse_amount(am.group(1))
            current["marker"] = am.group(2)
            extra = line[:am.start()].strip()
            if extra:
                current["description"] = f"{current['description']} {extra}".strip()
        elif not am and len(line) > 2 and not line.isdigit():
            current["description"] = f"{current['description']} {line}".strip()

    flush()

    if not transactions:
        return None

    return CardStatement(
        bank="NOVO_BANCO",
        card_number=header.get("card_number"),
        card_type=header.get("card_type"),
        statement_number=header.get("statement_number"),
        period=Period(
            start=parse_flexible_date(header.get("previous_date", "")),
            end=parse_flexible_date(header.get("current_date", "")),
        ),
        transactions=transactions,
    )


# -------------------------------------------------
# REGISTRIES
# -------------------------------------------------

BANK_REGISTRY: List[BankPattern] = [
    BankPattern(
        "NOVO_BANCO",
        _rx(r"novobanco", r"novo\s*banco", r"extrato\s*de\s*conta[_\-]?cart[aã]o", r"cart[aã]o\s*de\s*cr[ée]dito.*gold"),
        "credit_card",
        parse_novo_banco_credit,
    ),
    BankPattern(
        "CGD",
        _rx(r"caixa\s*geral\s*de\s*dep[oó]sitos", r"\bcgd\b", r"caixadirecta"),
        "bank_statement",
        None,
    ),
    BankPattern(
        "MILLENNIUM",
        _rx(r"millennium", r"\bbcp\b", r"banco\s*comercial\s*portugu[eê]s"),
        "bank_statement",
        None,
    ),
    BankPattern("ITAU", _rx(r"\bita[uú]\b", r"banco\s*ita[uú]"), "bank_statement", None),
    BankPattern("NUBANK", _rx(r"nubank", r"nu\s*pagamentos"), "credit_card", None),
]

STORE_REGISTRY: List[StorePattern] = [
    StorePattern("CONTINENTE", _rx(r"continente", r"modelo\s*continente", r"sonae"), "Supermercado"),
    StorePattern("PINGO_DOCE", _rx(r"pingo\s*doce", r"jer[oó]nimo\s*martins"), "Supermercado"),
    StorePattern("LIDL", _rx(r"lidl"), "Supermercado"),
    StorePattern("AUCHAN", _rx(r"auchan", r"jumbo"), "Supermercado"),
    StorePattern("EL_CORTE_INGLES", _rx(r"el\s*corte\s*ingl[eé]s", r"corte\s*ingl[eé]s"), "Loja"),
    StorePattern("WORTEN", _rx(r"worten"), "Eletrodomésticos"),
    StorePattern("FNAC", _rx(r"fnac"), "Loja"),
    StorePattern("MEDIA_MARKT", _rx(r"media\s*markt", r"mediamarkt"), "Eletrodomésticos"),
    StorePattern("FARMACIA", _rx(r"farm[aá]cia"), "Farmácia"),
    StorePattern("GASOLINEIRA", _rx(r"galp", r"\bbp\b", r"repsol", r"cepsa", r"petrogal"), "Combustível"),
    StorePattern("GENERICO", _rx(r"fatura", r"recibo", r"nota\s*fiscal"), "Compras"),
]

GENERIC_STORE = StoreMatch("GENERICO", "Compras")

# statement wording that rules out a shop receipt
NOT_A_RECEIPT = _rx(
    r"extrato\s*de\s*(conta|cart[aã]o|movimentos)",
    r"cart[aã]o\s*de\s*cr[ée]dito",
    r"novobanco|novo\s*banco",
    r"caixa\s*geral\s*de\s*dep[oó]sitos",
    r"millennium.*bcp",
    r"conta[_\-]?cart[aã]o",
)

RECEIPT_SHAPE = _rx(
    r"nif.*consumidor\s*final",
    r"fatura\s*(simplificada|normal)",
    r"recibo",
    r"artigos.*codigo.*descricao",
    r"quant.*p\.unit.*valor",
    r"subtotal.*total",
    r"obrigado.*visita",
)

STORE_NAME_HINTS = [
    re.compile(p, flags=re.I | re.M)
    for p in (
        r"nif[:\s]*\d+[^\n]*\n([^0-9\n]{3,50})",
        r"([^0-9\n]{3,50})\s*nif.*consumidor\s*final",
        r"^([A-ZÀÁÂÃÉÊÍÓÔÕÚÇ\s]{3,50})$",
        r"\d{4}-\d{2}-\d{2}.*?\*\s*([^*\n]{3,50})",
    )
]

# keywords looked up inside a store name recovered from the layout
STORE_NAME_KEYWORDS: List[StorePattern] = [
    StorePattern("CONTINENTE", _rx(r"continente|modelo"), "Supermercado"),
    StorePattern("PINGO_DOCE", _rx(r"pingo|doce"), "Supermercado"),
    StorePattern("LIDL", _rx(r"lidl"), "Supermercado"),
    StorePattern("AUCHAN", _rx(r"auchan|jumbo"), "Supermercado"),
    StorePattern("WORTEN", _rx(r"worten"), "Eletrodomésticos"),
    StorePattern("FNAC", _rx(r"fnac"), "Loja"),
    StorePattern("FARMACIA", _rx(r"farm[aá]cia"), "Farmácia"),
    StorePattern("GASOLINEIRA", _rx(r"galp|\bbp\b|repsol|cepsa"), "Combustível"),
]


def detect_bank(text: str) -> Optional[BankMatch]:
    t = text or ""
    for entry in BANK_REGISTRY:
        for rx in entry.identifiers:
            if rx.search(t):
                logger.debug("bank detected: %s via %s", entry.name, rx.pattern)
                return BankMatch(entry.name, entry.kind)
    return None


def detect_store(text: str) -> Optional[StoreMatch]:
    t = text or ""
    if any(rx.search(t) for rx in NOT_A_RECEIPT):
        return None

    folded = strip_accents(t)
    if not any(rx.search(folded) for rx in RECEIPT_SHAPE):
        return None

    for entry in STORE_REGISTRY:
        if any(rx.search(t) for rx in entry.identifiers):
            return StoreMatch(entry.name, entry.category)

    # store name from the document layout (near the NIF, first capitalised line, ...)
    for rx in STORE_NAME_HINTS:
        m = rx.search(t)
        if not m or not m.group(1).strip():
            continue
        candidate = m.group(1).strip()
        for entry in STORE_NAME_KEYWORDS:
            if any(p.search(candidate) for p in entry.identifiers):
                return StoreMatch(entry.name, entry.category)

    return GENERIC_STORE


# -------------------------------------------------
# STORE RECEIPT
# -------------------------------------------------

RECEIPT_DATE_RES = [
    re.compile(r"(\d{1,2}[./\-]\d{1,2}[./\-]\d{4})"),
    re.compile(r"(\d{4}[./\-]\d{1,2}[./\-]\d{1,2})"),
]
RECEIPT_TOTAL_RES = _rx(
    r"total[^0-9\n]*?(\d[\d.,]*)",
    r"total\s*geral[^0-9\n]*?(\d[\d.,]*)",
    r"valor\s*total[^0-9\n]*?(\d[\d.,]*)",
    r"total.*c/iva[^0-9\n]*?(\d[\d.,]*)",
    r"montante[^0-9\n]*?(\d[\d.,]*)",
)
EURO_AMOUNT_RES = [
    re.compile(r"(\d[\d.,]*)\s*€\s*$", flags=re.M),
    re.compile(r"€\s*(\d[\d.,]*)\s*$", flags=re.M),
]
ANY_PRICE_RE = re.compile(r"\b(\d{1,4}[,.]\d{2})\b")

ITEMS_START_RE = re.compile(r"artigos|codigo|descricao|quant")
ITEMS_END_RE = re.compile(r"subtotal|total|iva|desconto|forma de pagamento|obrigado")
ITEM_SKIP_RE = re.compile(r"recibo|nif|contribuinte|morada|local|data|hora")

_UPPER = "A-ZÁÀÂÃÉÊÍÓÔÕÚÇ"
STORE_ITEM_RES = [
    re.compile(rf"^([{_UPPER}][{_UPPER}\s]{{2,30}})\s+(\d+(?:,\d+)?)\s+([\d,]+)\s+([\d,]+)$", flags=re.I),
    re.compile(rf"^\d+\s+([{_UPPER}][{_UPPER}\s]{{2,30}})\s+(\d+(?:,\d+)?)\s+([\d,]+)\s+([\d,]+)$", flags=re.I),
    re.compile(rf"^([{_UPPER}][{_UPPER}\s]{{2,30}})\s+([\d,]+)$", flags=re.I),
]
ITEM_REJECT_RE = re.compile(r"linha|codigo|carro|original|barrar", flags=re.I)


def _receipt_date(text: str) -> str:
    for rx in RECEIPT_DATE_RES:
        m = rx.search(text)
        if m:
            iso = parse_flexible_date(m.group(1))
            if iso:
                return iso
    return ""


def _receipt_total(text: str) -> float:
    best = 0.0
    for rx in RECEIPT_TOTAL_RES + EURO_AMOUNT_RES:
        m = rx.search(text)
        if m:
            v = parse_amount(m.group(1))
            if v is not None and best < v < 10000:
                best = v
    if best:
        return best

    found = [v for v in (parse_amount(m) for m in ANY_PRICE_RE.findall(text)) if v is not None and 1 < v < 10000]
    return max(found) if found else 0.0


def _store_item(line: str) -> Optional[StoreItem]:
    for rx in STORE_ITEM_RES:
        m = rx.match(line)
        if not m:
            continue
        groups = m.groups()
        quantity = 1.0
        if len(groups) == 4:
            description = groups[0]
            quantity = parse_amount(groups[1]) or 1.0
            price = parse_amount(groups[3])
        else:
            description = groups[0]
            price = parse_amount(groups[1])

        description = description.replace("*", "").strip()
        valid = (
            price is not None
            and 3 <= len(description) <= 50
            and description[0].isalpha()
            and not description.isdigit()
            and not ITEM_REJECT_RE.search(strip_accents(description))
            and 0.01 < price < 1000
        )
        if not valid:
            return None
        return StoreItem(
            description=description,
            quantity=quantity if quantity > 1 else None,
            unit_price=round(price / quantity, 2) if quantity > 1 else None,
            total_price=round(price, 2),
        )
    return None


def parse_store_receipt(text: str, store: str, category: str) -> Optional[StoreReceipt]:
    total = _receipt_total(text)

    items: List[StoreItem] = []
    started = False
    for raw in re.split(r"\r?\n", text):
        line = raw.strip()
        if len(line) < 3:
            continue
        low = strip_accents(line).lower()

        if ITEMS_START_RE.search(low):
            started = True
            continue
        if not started:
            continue
        if ITEMS_END_RE.search(low):
            break
        if ITEM_SKIP_RE.search(low) or len(line) < 5:
            continue

        item = _store_item(line)
        if item is not None:
            items.append(item)

    if not items and total <= 0:
        return None

    return StoreReceipt(
        store=store,
        category=category,
        date=_receipt_date(text) or date.today().isoformat(),
        total_amount=round(total, 2),
        items=items,
    )


# -------------------------------------------------
# ENTRY POINT
# -------------------------------------------------

def parse_bank_document(text: str) -> Optional[BankDocument]:
    if not text or len(text.strip()) < 10:
        return None

    bank = detect_bank(text)
    if bank is not None:
        entry = next(b for b in BANK_REGISTRY if b.name == bank.bank)
        if entry.parse is not None:
            result = entry.parse(text)
            if result is not None:
                return result
            logger.debug("%s parser found no transactions", bank.bank)
        else:
            logger.debug("no layout parser for %s", bank.bank)

    store = detect_store(text)
    if store is not None:
        return parse_store_receipt(text, store.store, store.category)
    return None


def bank_document_transactions(result: BankDocument) -> List[ExtractedTransaction]:
    if isinstance(result, CardStatement):
        return list(result.transactions)

    if result.items:
        return [
            ExtractedTransaction(
                date=result.date,
                description=it.description,
                amount=-abs(it.total_price),
                suggested_category=result.category,
                quantity=it.quantity,
                unit_price=it.unit_price,
            )
            for it in result.items
        ]
    if result.total_amount > 0:
        return [ExtractedTransaction(
            date=result.date,
            description=f"Compra em {result.store}",
            amount=-abs(result.total_amount),
            suggested_category=result.category,
        )]
    return []


def bank_document_name(result: BankDocument) -> str:
    return result.bank if isinstance(result, CardStatement) else result.store


def bank_document_period(result: BankDocument) -> Period:
    if isinstance(result, CardStatement):
        return result.period
    return Period(start=result.date, end=result.date)

