# finance_api/extraction/pipeline.py
import logging
from datetime import date
from typing import List, Optional, Tuple

from finance_api.core.constants import (
    DEFAULT_CATEGORY,
    PARSING_BANK_SPECIFIC,
    PARSING_FALLBACK,
    PARSING_LLM,
)
from finance_api.ocr.schemas import LlmDocument, OcrDocument
from finance_api.extraction.bank_parsers import (
    bank_document_name,
    bank_document_period,
    bank_document_transactions,
    parse_bank_document,
)
from finance_api.extraction.classifier import RECEIPT, classify
from finance_api.extraction.document_info import extract_card_info, extract_institution
from finance_api.extraction.entities import find_entity, text_of
from finance_api.extraction.locale import detect_currency, detect_period, parse_flexible_date
from finance_api.extraction.receipts import LlmReceiptMapper, extract_receipt
from finance_api.extraction.transactions import extract_transactions
from finance_api.extraction.schemas import (
    BankInfo,
    ExtractedReceipt,
    ExtractedTransaction,
    ExtractionResult,
    Period,
)

logger = logging.getLogger(__name__)

NO_TRANSACTIONS_MESSAGE = "Nenhuma transação encontrada no documento"


# -------------------------------------------------
# LLM RESULT -> TRANSACTIONS
# -------------------------------------------------

def llm_transactions(doc: LlmDocument, today: Optional[str] = None) -> List[ExtractedTransaction]:
    """
    transactions first, then items as expenses, then one "<name> - Total"
    expense. Entries without a usable amount are dropped.
    """
    today = today or date.today().isoformat()
    doc_date = parse_flexible_date(doc.date or "") or today

    out: List[ExtractedTransaction] = []
    for t in doc.transactions:
        if t.amount is None or not (t.description or "").strip():
            continue
        out.append(ExtractedTransaction(
            date=parse_flexible_date(t.date or "") or doc_date,
            description=t.description.strip(),
            amount=round(t.amount, 2),
            suggested_category=t.suggestedCategory or DEFAULT_CATEGORY,
            reference=t.reference,
        ))
    if out:
        return out

    for it in doc.items:
        total = it.totalPrice
        if total is None and it.unitPrice is not None:
            total = it.unitPrice * (it.quantity or 1)
        if total is None or not (it.description or "").strip():
            continue
        out.append(ExtractedTransaction(
            date=doc_date,
            description=it.description.strip(),
            amount=-abs(round(total, 2)),
            suggested_category=it.category or DEFAULT_CATEGORY,
            quantity=it.quantity,
            unit_price=it.unitPrice,
        ))
    if out:
        return out

    if doc.totalAmount:
        name = (doc.establishment.name if doc.establishment else None) or "Documento"
        out.append(ExtractedTransaction(
            date=doc_date,
            description=f"{name} - Total",
            amount=-abs(round(doc.totalAmount, 2)),
        ))
    return out


def receipt_transaction(receipt: ExtractedReceipt, today: Optional[str] = None) -> ExtractedTransaction:
    return ExtractedTransaction(
        date=receipt.date or today or date.today().isoformat(),
        description=f"{receipt.merchant} (recibo)" if receipt.merchant else "Recibo",
        amount=-abs(receipt.total),
        suggested_category=DEFAULT_CATEGORY,
    )


# -------------------------------------------------
# DOCUMENT -> RESULT
# -------------------------------------------------

def _entity_period(document: OcrDocument) -> Period:
    fallback = detect_period(document.text)
    start = text_of(find_entity(document.entities, r"period_start|start_date|billing_period_start"))
    end = text_of(find_entity(document.entities, r"period_end|end_date|billing_period_end"))
    return Period(
        start=(parse_flexible_date(start) if start else "") or fallback["start"],
        end=(parse_flexible_date(end) if end else "") or fallback["end"],
    )


def _choose_transactions(
    document: OcrDocument,
    llm_document: Optional[LlmDocument],
    today: Optional[str],
) -> Tuple[List[ExtractedTransaction], str, Optional[str], Optional[Period]]:
    """(transactions, parsing method, detected bank, bank period)"""
    if llm_document is not None:
        txs = llm_transactions(llm_document, today=today)
        if txs:
            name = llm_document.establishment.name if llm_document.establishment else None
            return txs, PARSING_LLM, name, None
        logger.warning("LLM result had no transactions, falling back to parsers")

    parsed = parse_bank_document(document.text)
    if parsed is not None:
        txs = bank_document_transactions(parsed)
        if txs:
            return txs, PARSING_BANK_SPECIFIC, bank_document_name(parsed), bank_document_period(parsed)
        logger.warning("%s detected but produced no transactions", bank_document_name(parsed))

    txs, _ = extract_transactions(document)
    return txs, PARSING_FALLBACK, None, None


def build_result(
    document: OcrDocument,
    hint: Optional[str] = None,
    filename: Optional[str] = None,
    llm_document: Optional[LlmDocument] = None,
    llm_receipt_mapper: Optional[LlmReceiptMapper] = None,
    today: Optional[str] = None,
) -> ExtractionResult:
    document_type = classify(document.text, document.entities, filename=filename, hint=hint)
    is_receipt = document_type == RECEIPT

    transactions, method, detected_bank, bank_period = _choose_transactions(document, llm_document, today)

    receipt = extract_receipt(document, is_receipt=is_receipt, llm_mapper=llm_receipt_mapper if is_receipt else None)
    if is_receipt and receipt is not None and receipt.total:
        transactions = [receipt_transaction(receipt, today=today)]

    # only an explicit receipt upload names the merchant as the institution
    if hint == RECEIPT and receipt is not None and receipt.merchant:
        institution = receipt.merchant
    else:
        institution = extract_institution(document.text, document.entities)

    period = bank_period or _entity_period(document)

    currency = None
    if llm_document is not None and llm_document.currency:
        currency = llm_document.currency.upper()
    currency = currency or detect_currency(document.text)

    bank_info = BankInfo(
        detected_bank=detected_bank or "unknown",
        parsing_method=method,
        document_type=document_type if detected_bank else "unknown",
        period=bank_period,
        transactions_found=len(transactions),
    )
    if llm_document is not None:
        bank_info.llm = {
            "confidence": llm_document.metadata.confidence if llm_document.metadata else None,
            "document_type": llm_document.documentType,
            "establishment": llm_document.establishment.name if llm_document.establishment else None,
            "total_amount": llm_document.totalAmount,
            "notes": llm_document.metadata.notes if llm_document.metadata else None,
        }

    logger.debug(
        "result: type=%s method=%s transactions=%d receipt=%s",
        document_type, method, len(transactions), receipt is not None,
    )

    return ExtractionResult(
        document_type=document_type,
        institution=institution,
        period=period,
        currency=currency,
        transactions=transactions,
        receipts=[receipt] if receipt is not None else [],
        card_candidate=extract_card_info(document.entities),
        bank_info=bank_info,
        message=None if transactions else NO_TRANSACTIONS_MESSAGE,
    )
