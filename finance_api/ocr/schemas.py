# finance_api/ocr/schemas.py
from pydantic import BaseModel, Field
from typing import List, Optional


# -------------------------------------------------
# OCR DOCUMENT (provider-neutral)
# Field aliases accept the Document AI JSON spelling.
# -------------------------------------------------

class NormalizedValue(BaseModel):
    text: Optional[str] = None
    number_value: Optional[float] = Field(default=None, alias="numberValue")

    class Config:
        populate_by_name = True
        frozen = True


class OcrEntity(BaseModel):
    type: Optional[str] = None
    mention_text: Optional[str] = Field(default=None, alias="mentionText")
    normalized_value: Optional[NormalizedValue] = Field(default=None, alias="normalizedValue")
    properties: List["OcrEntity"] = Field(default_factory=list)

    class Config:
        populate_by_name = True
        frozen = True


class TextSegment(BaseModel):
    start_index: int = Field(default=0, alias="startIndex")
    end_index: Optional[int] = Field(default=None, alias="endIndex")

    class Config:
        populate_by_name = True


class TextAnchor(BaseModel):
    text_segments: List[TextSegment] = Field(default_factory=list, alias="textSegments")

    class Config:
        populate_by_name = True


class Layout(BaseModel):
    text_anchor: Optional[TextAnchor] = Field(default=None, alias="textAnchor")

    class Config:
        populate_by_name = True


class TableCell(BaseModel):
    layout: Optional[Layout] = None


class TableRow(BaseModel):
    cells: List[TableCell] = Field(default_factory=list)


class Table(BaseModel):
    header_rows: List[TableRow] = Field(default_factory=list, alias="headerRows")
    body_rows: List[TableRow] = Field(default_factory=list, alias="bodyRows")

    class Config:
        populate_by_name = True


class PageLine(BaseModel):
    layout: Optional[Layout] = None


class Page(BaseModel):
    lines: List[PageLine] = Field(default_factory=list)
    tables: List[Table] = Field(default_factory=list)


class OcrDocument(BaseModel):
    text: str = ""
    entities: List[OcrEntity] = Field(default_factory=list)
    pages: List[Page] = Field(default_factory=list)
    provider: Optional[str] = None


# -------------------------------------------------
# LLM RESULT (whole-document normalization)
# -------------------------------------------------

class LlmEstablishment(BaseModel):
    name: Optional[str] = None
    nif: Optional[str] = None
    address: Optional[str] = None


class LlmTransaction(BaseModel):
    date: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[float] = None
    suggestedCategory: Optional[str] = None
    reference: Optional[str] = None


class LlmItem(BaseModel):
    description: Optional[str] = None
    quantity: Optional[float] = None
    unitPrice: Optional[float] = None
    totalPrice: Optional[float] = None
    category: Optional[str] = None


class LlmSummary(BaseModel):
    itemCount: Optional[int] = None
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    total: Optional[float] = None


class LlmMetadata(BaseModel):
    confidence: Optional[str] = None
    notes: Optional[str] = None


class LlmDocument(BaseModel):
    documentType: Optional[str] = None
    establishment: Optional[LlmEstablishment] = None
    date: Optional[str] = None
    totalAmount: Optional[float] = None
    currency: Optional[str] = None
    transactions: List[LlmTransaction] = Field(default_factory=list)
    items: List[LlmItem] = Field(default_factory=list)
    summary: Optional[LlmSummary] = None
    metadata: Optional[LlmMetadata] = None


# -------------------------------------------------
# LLM RESULT (receipt line-item cleanup)
# -------------------------------------------------

class LlmReceiptItem(BaseModel):
    code: Optional[str] = None
    description: str
    quantity: Optional[float] = None
    unitPrice: Optional[float] = None
    total: Optional[float] = None
    taxRate: Optional[float] = None
    taxAmount: Optional[float] = None


class LlmReceipt(BaseModel):
    merchant: Optional[str] = None
    date: Optional[str] = None
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    total: Optional[float] = None
    items: List[LlmReceiptItem] = Field(default_factory=list)

