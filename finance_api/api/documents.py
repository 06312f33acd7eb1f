# finance_api/api/documents.py
import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    UploadFile,
    status,
)
from sqlalchemy.orm import Session

from finance_api.api.deps import get_current_user_id
from finance_api.core.config import settings
from finance_api.core.constants import (
    ALLOWED_MIME_TYPES,
    CARD_PAYMENT,
    CARD_PURCHASE,
    DOCUMENT_STATUS_DONE,
    DOCUMENT_STATUS_FAILED,
    DOCUMENT_TYPES,
    TX_CREDIT,
    TX_DEBIT,
)
from finance_api.core.errors import DocumentUnreadableError, ProviderNotConfigured, UsageLimitExceeded
from finance_api.db.session import get_db
from finance_api.extraction.locale import parse_flexible_date
from finance_api.models.account import Account, CreditCard
from finance_api.models.document import Document
from finance_api.models.transaction import BankAccountTransaction, CreditCardTransaction
from finance_api.ocr.service import analyze_document
from finance_api.schemas.document import (
    DocumentConfirm,
    DocumentConfirmResponse,
    DocumentOut,
    DocumentUploadResponse,
)
from finance_api.services.amount_service import resolve_amount
from finance_api.services.category_service import match_category, user_categories
from finance_api.services.currency_service import get_latest_rates
from finance_api.services.usage_service import DailyUsageGate

logger = logging.getLogger(__name__)

# main.py mounts this router with prefix="/api/documents"
router = APIRouter(tags=["documents"])


def get_owned_document(db: Session, document_id: UUID, user_id: UUID) -> Document:
    doc = db.query(Document).filter_by(id=document_id, user_id=user_id).first()
    if not doc:
        raise HTTPException(status_code=404, detail="Document not found")
    return doc


# -------------------------------------------------------------------
# UPLOAD + EXTRACT
# POST /api/documents
# form-data: file, document_type?, use_llm?, processor_id?
# -------------------------------------------------------------------

@router.post(
    "",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
def upload_document(
    file: UploadFile = File(...),
    document_type: Optional[str] = Form(default=None),
    use_llm: Optional[bool] = Form(default=None),
    processor_id: Optional[str] = Form(default=None),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    mime = (file.content_type or "").lower()
    if mime not in ALLOWED_MIME_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {mime or 'unknown'}")
    if document_type and document_type not in DOCUMENT_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported document type: {document_type}")

    content = file.file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(content) > settings.MAX_UPLOAD_MB * 1024 * 1024:
        raise HTTPException(status_code=400, detail=f"File exceeds {settings.MAX_UPLOAD_MB} MB")

    filename = file.filename or "document"
    try:
        ocr_doc, result = analyze_document(
            content,
            mime,
            filename=filename,
            hint=document_type,
            use_llm=use_llm,
            processor_id=processor_id,
            gate=DailyUsageGate(db),
        )
    except UsageLimitExceeded as e:
        raise HTTPException(status_code=429, detail=str(e))
    except ProviderNotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e))
    except DocumentUnreadableError as e:
        db.add(Document(
            user_id=user_id,
            filename=filename,
            content_type=mime,
            document_type=document_type,
            ocr_status=DOCUMENT_STATUS_FAILED,
            ocr_error=str(e)[:2000],
        ))
        db.commit()
        raise HTTPException(status_code=422, detail=str(e))

    doc = Document(
        user_id=user_id,
        filename=filename,
        content_type=mime,
        document_type=result.document_type,
        ocr_status=DOCUMENT_STATUS_DONE,
        ocr_provider=ocr_doc.provider,
        ocr_text=ocr_doc.text,
        result_json=result.model_dump(mode="json"),
    )
    db.add(doc)
    db.commit()
    db.refresh(doc)

    return DocumentUploadResponse(
        id=doc.id,
        filename=doc.filename,
        content_type=doc.content_type,
        ocr_status=doc.ocr_status,
        ocr_provider=doc.ocr_provider,
        data=result,
        message=result.message,
    )


# -------------------------------------------------------------------
# GET /api/documents/{document_id}
# -------------------------------------------------------------------

@router.get("/{document_id}", response_model=DocumentOut)
def get_document(
    document_id: UUID,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    return get_owned_document(db, document_id, user_id)


# -------------------------------------------------------------------
# CONFIRM -> persist selected transactions
# POST /api/documents/{document_id}/confirm
# -------------------------------------------------------------------

@router.post("/{document_id}/confirm", response_model=DocumentConfirmResponse)
def confirm_document(
    document_id: UUID,
    payload: DocumentConfirm,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    doc = get_owned_document(db, document_id, user_id)
    if doc.ocr_status != DOCUMENT_STATUS_DONE:
        raise HTTPException(status_code=409, detail="Document was not processed")

    if payload.account_id:
        target = db.query(Account).filter_by(id=payload.account_id, user_id=user_id).first()
    else:
        target = db.query(CreditCard).filter_by(id=payload.credit_card_id, user_id=user_id).first()
    if not target:
        raise HTTPException(status_code=404, detail="Account not found")

    doc_currency = payload.currency or (doc.result_json or {}).get("currency") or "EUR"
    rates = get_latest_rates(db)
    categories = user_categories(db, user_id)

    created, skipped = [], 0
    for tx in payload.transactions:
        tx_date = parse_flexible_date(tx.date)
        if not tx_date:
            skipped += 1
            continue

        resolved = resolve_amount(tx.amount, doc_currency, target.currency, rates)
        common = dict(
            user_id=user_id,
            category_id=match_category(tx.suggested_category, categories),
            document_id=doc.id,
            amount=resolved["amount"],
            currency=resolved["currency"],
            description=tx.description,
            transaction_date=date.fromisoformat(tx_date),
        )
        if payload.account_id:
            row = BankAccountTransaction(
                account_id=target.id,
                transaction_type=TX_CREDIT if resolved["is_inflow"] else TX_DEBIT,
                **common,
            )
        else:
            row = CreditCardTransaction(
                credit_card_id=target.id,
                transaction_type=CARD_PAYMENT if resolved["is_inflow"] else CARD_PURCHASE,
                **common,
            )
        db.add(row)
        created.append(row)

    db.commit()
    logger.info("document %s confirmed: %d created, %d skipped", doc.id, len(created), skipped)
    return DocumentConfirmResponse(created=len(created), skipped=skipped, ids=[r.id for r in created])
