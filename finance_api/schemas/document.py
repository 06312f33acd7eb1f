# finance_api/schemas/document.py
from pydantic import BaseModel, model_validator
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from finance_api.extraction.schemas import ExtractionResult


class DocumentUploadResponse(BaseModel):
    id: UUID
    filename: str
    content_type: str
    ocr_status: str
    ocr_provider: Optional[str] = None
    data: ExtractionResult
    message: Optional[str] = None


class DocumentOut(BaseModel):
    id: UUID
    filename: str
    content_type: str
    document_type: Optional[str] = None
    ocr_status: str
    ocr_provider: Optional[str] = None
    ocr_error: Optional[str] = None
    result_json: Optional[dict] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ConfirmTransaction(BaseModel):
    date: str
    description: str
    amount: float
    suggested_category: Optional[str] = None


class DocumentConfirm(BaseModel):
    account_id: Optional[UUID] = None
    credit_card_id: Optional[UUID] = None
    currency: Optional[str] = None  # document currency; defaults to the extracted one
    transactions: List[ConfirmTransaction]

    @model_validator(mode="after")
    def validate_destination(self):
        if bool(self.account_id) == bool(self.credit_card_id):
            raise ValueError("exactly one of account_id or credit_card_id is required")
        if not self.transactions:
            raise ValueError("at least one transaction is required")
        return self


class DocumentConfirmResponse(BaseModel):
    created: int
    skipped: int = 0
    ids: List[UUID] = []
