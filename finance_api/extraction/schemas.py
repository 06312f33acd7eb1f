# finance_api/extraction/schemas.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from finance_api.core.constants import DEFAULT_CATEGORY


class ExtractedTransaction(BaseModel):
    date: str
    description: str
    amount: float
    suggested_category: str = DEFAULT_CATEGORY
    reference: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None


class ReceiptItem(BaseModel):
    code: Optional[str] = None
    description: str
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total: Optional[float] = None
    tax_rate: Optional[float] = None
    tax_amount: Optional[float] = None


class ReceiptTable(BaseModel):
    headers: List[str] = Field(default_factory=list)
    rows: List[List[str]] = Field(default_factory=list)
    column_semantics: Dict[str, int] = Field(default_factory=dict)


class ExtractedReceipt(BaseModel):
    merchant: Optional[str] = None
    date: Optional[str] = None
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    total: Optional[float] = None
    items: List[ReceiptItem] = Field(default_factory=list)
    table: Optional[ReceiptTable] = None


class CardInfo(BaseModel):
    last_four_digits: Optional[str] = None
    card_holder_name: Optional[str] = None
    card_type: Optional[str] = None
    currency: Optional[str] = None
    card_limit: Optional[float] = None
    available_limit: Optional[float] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class Period(BaseModel):
    start: str = ""
    end: str = ""


class BankInfo(BaseModel):
    detected_bank: str = "unknown"
    parsing_method: str
    document_type: str = "unknown"
    period: Optional[Period] = None
    transactions_found: int = 0
    llm: Optional[Dict[str, Any]] = None


class ExtractionResult(BaseModel):
    document_type: str
    institution: str
    period: Period
    currency: Optional[str] = None
    transactions: List[ExtractedTransaction] = Field(default_factory=list)
    receipts: List[ExtractedReceipt] = Field(default_factory=list)
    card_candidate: Optional[CardInfo] = None
    bank_info: BankInfo
    message: Optional[str] = None


def finalize_receipt(receipt: ExtractedReceipt) -> ExtractedReceipt:
    """Derive total from the items and subtotal from total - tax when they are missing."""
    total = receipt.total
    if total is None:
        parts = []
        for it in receipt.items:
            if it.total is not None:
                parts.append(it.total)
            elif it.unit_price is not None and it.quantity is not None:
                parts.append(it.unit_price * it.quantity)
        # no contributing item leaves the total absent
        total = round(sum(parts), 2) if parts else None

    subtotal = receipt.subtotal
    if subtotal is None and total is not None and receipt.tax is not None:
        subtotal = round(total - receipt.tax, 2)

    return receipt.model_copy(update={"total": total, "subtotal": subtotal})


# -------------------------------------------------
# INSTITUTION-SPECIFIC PARSER RESULTS
# -------------------------------------------------

class CardStatement(BaseModel):
    bank: str
    card_number: Optional[str] = None
    card_type: Optional[str] = None
    statement_number: Optional[str] = None
    period: Period = Field(default_factory=Period)
    transactions: List[ExtractedTransaction] = Field(default_factory=list)


class StoreItem(BaseModel):
    description: str
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total_price: float


class StoreReceipt(BaseModel):
    store: str
    category: str
    date: str
    total_amount: float = 0.0
    items: List[StoreItem] = Field(default_factory=list)
