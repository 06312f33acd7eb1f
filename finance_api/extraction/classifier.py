# finance_api/extraction/classifier.py
import re
from typing import Dict, List, Optional, Sequence, Tuple

from finance_api.core.constants import DOCUMENT_TYPES
from finance_api.ocr.schemas import OcrEntity
from finance_api.extraction.entities import find_entity, text_of
from finance_api.extraction.locale import strip_accents

RECEIPT = "receipt"
CREDIT_CARD = "credit_card"
BANK_STATEMENT = "bank_statement"

# tie-break order, most specific first
PRIORITY = [RECEIPT, CREDIT_CARD, BANK_STATEMENT]

ENTITY_SIGNALS: List[Tuple[str, str]] = [
    (CREDIT_CARD, r"credit_card|card_limit|available_limit|last_four|billing_period"),
    (RECEIPT, r"line_item|receipt_date|merchant|supplier_name"),
    (BANK_STATEMENT, r"iban|bic|account|bank_transaction|statement_line"),
]

FILENAME_SIGNALS: List[Tuple[str, str]] = [
    (RECEIPT, r"recibo|receipt|invoice|fatura"),
    (CREDIT_CARD, r"cartao|card|credit"),
    (BANK_STATEMENT, r"extrato|statement|bank"),
]


def _kw(*pairs) -> List[Tuple[re.Pattern, int]]:
    return [(re.compile(p, flags=re.M), w) for p, w in pairs]


# matched against lowercased, accent-stripped text; the lists do not share keywords
KEYWORDS: Dict[str, List[Tuple[re.Pattern, int]]] = {
    RECEIPT: _kw(
        (r"\brecibo\b", 3),
        (r"\breceipt\b", 3),
        (r"fatura\s*(simplificada|recibo)", 3),
        (r"\bnif\b|\bnipc\b", 2),
        (r"consumidor\s*final", 2),
        (r"\bsubtotal\b", 2),
        (r"\btotal\s*(a\s*pagar)?\s*:", 2),
        (r"\b(iva|vat)\b", 1),
        (r"\b(cupom|ticket|invoice)\b", 1),
        (r"taxa de servico|service charge", 1),
        (r"obrigado", 1),
    ),
    CREDIT_CARD: _kw(
        (r"cartao\s*de\s*credito|credit\s*card", 3),
        (r"limite\s*disponivel|available\s*limit|credit\s*limit", 3),
        (r"fatura\s*do\s*cartao|card\s*statement", 3),
        (r"pagamento\s*minimo|minimum\s*payment", 2),
        (r"data\s*de\s*vencimento|due\s*date", 2),
        (r"data\s*de\s*corte", 2),
        (r"\blimite\b", 1),
        (r"\bcartao\b|\bcard\b", 1),
    ),
    BANK_STATEMENT: _kw(
        (r"\biban\b", 3),
        (r"saldo\s*(anterior|final|disponivel|contabilistico)", 3),
        (r"extrato\s*(bancario|de\s*conta|de\s*movimentos)|account\s*statement", 3),
        (r"\b(bic|swift|nib)\b", 2),
        (r"conta\s*corrente|conta\s*a\s*ordem", 2),
        (r"\bsaldo\b|\bbalance\b", 1),
        (r"\bmovimentos?\b|\btransactions\b", 1),
        (r"transferencia|\btransfer\b|deposito|\bdeposit\b", 1),
        (r"\bagencia\b", 1),
    ),
}


def from_entities(entities: Sequence[OcrEntity]) -> Optional[str]:
    types = [(e.type or "").lower() for e in entities or []]
    for kind, pattern in ENTITY_SIGNALS:
        if any(re.search(pattern, t) for t in types if t):
            return kind

    declared = (text_of(find_entity(entities, r"document_type")) or "").lower()
    if "receipt" in declared or "recibo" in declared:
        return RECEIPT
    if "credit" in declared:
        return CREDIT_CARD
    if "statement" in declared or "extrato" in declared:
        return BANK_STATEMENT
    return None


def from_filename(filename: Optional[str]) -> Optional[str]:
    name = strip_accents(filename or "").lower()
    if not name:
        return None
    for kind, pattern in FILENAME_SIGNALS:
        if re.search(pattern, name):
            return kind
    return None


def keyword_scores(text: str) -> Dict[str, int]:
    folded = strip_accents(text or "").lower()
    return {
        kind: sum(w for rx, w in rules if rx.search(folded))
        for kind, rules in KEYWORDS.items()
    }


def from_text(text: str) -> str:
    scores = keyword_scores(text)
    best = max(scores.values())
    if best == 0:
        return BANK_STATEMENT
    return next(kind for kind in PRIORITY if scores[kind] == best)


def classify(
    text: str,
    entities: Sequence[OcrEntity] = (),
    filename: Optional[str] = None,
    hint: Optional[str] = None,
) -> str:
    """
    receipt | credit_card | bank_statement.
    Caller hint, then OCR entity types, then filename, then keyword scoring.
    """
    if hint in DOCUMENT_TYPES:
        return hint
    return from_entities(entities) or from_filename(filename) or from_text(text)
