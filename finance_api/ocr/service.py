# finance_api/ocr/service.py
import logging
import time
from typing import Optional, Tuple

from finance_api.core.config import settings
from finance_api.core.errors import DocumentUnreadableError, ProviderNotConfigured, UsageLimitExceeded
from finance_api.extraction.classifier import BANK_STATEMENT, CREDIT_CARD, RECEIPT, classify
from finance_api.extraction.pipeline import build_result
from finance_api.extraction.schemas import ExtractionResult
from finance_api.ocr import documentai
from finance_api.ocr.groq_llm import map_receipt_with_llm, parse_document_with_llm
from finance_api.ocr.schemas import OcrDocument

logger = logging.getLogger(__name__)

_paddle_instance = None


def _paddle():
    # paddle pulls in heavy native deps, load on first use
    global _paddle_instance
    from finance_api.ocr import paddle

    if _paddle_instance is None:
        _paddle_instance = paddle.init_ocr(lang=settings.PADDLE_OCR_LANG)
    return paddle, _paddle_instance


# -------------------------------------------------
# SELECTION
# -------------------------------------------------

def resolve_provider(name: Optional[str] = None) -> str:
    name = (name or settings.OCR_PROVIDER or "auto").lower()
    if name == "auto":
        return documentai.PROVIDER if settings.GOOGLE_CLOUD_PROJECT_ID else "paddle"
    return name


def specific_processor(kind: Optional[str]) -> Optional[str]:
    return {
        BANK_STATEMENT: settings.DOCUMENT_AI_PROCESSOR_ID_BANK,
        CREDIT_CARD: settings.DOCUMENT_AI_PROCESSOR_ID_CARD,
        RECEIPT: settings.DOCUMENT_AI_PROCESSOR_ID_RECEIPT,
    }.get(kind or "")


def _has_specific() -> bool:
    return any((
        settings.DOCUMENT_AI_PROCESSOR_ID_BANK,
        settings.DOCUMENT_AI_PROCESSOR_ID_CARD,
        settings.DOCUMENT_AI_PROCESSOR_ID_RECEIPT,
    ))


# -------------------------------------------------
# PROVIDERS
# -------------------------------------------------

def _call_documentai(content: bytes, mime_type: str, processor_id: str, gate=None) -> OcrDocument:
    if gate is not None:
        gate.check()
    doc = documentai.process_document(
        content,
        mime_type,
        processor_id,
        processor_version=settings.DOCUMENT_AI_PROCESSOR_VERSION,
    )
    if gate is not None:
        gate.record()
    return doc


def run_documentai(
    content: bytes,
    mime_type: str,
    hint: Optional[str] = None,
    processor_id: Optional[str] = None,
    gate=None,
) -> OcrDocument:
    """explicit processor -> type-specific (hint, else preflight) -> generic"""
    if processor_id:
        return _call_documentai(content, mime_type, processor_id, gate)

    specific = specific_processor(hint)
    if specific:
        return _call_documentai(content, mime_type, specific, gate)

    generic = settings.DOCUMENT_AI_PROCESSOR_ID
    if not generic:
        raise ProviderNotConfigured("No Document AI processor configured")

    doc = _call_documentai(content, mime_type, generic, gate)
    if hint or not _has_specific():
        return doc

    kind = classify(doc.text, doc.entities)
    specific = specific_processor(kind)
    if not specific or specific == generic:
        return doc
    logger.debug("preflight classified upload as %s, re-running on the %s processor", kind, kind)
    return _call_documentai(content, mime_type, specific, gate)


def run_paddle(content: bytes, mime_type: str) -> OcrDocument:
    paddle, engine = _paddle()
    return paddle.process_document(engine, content, mime_type)


def run_ocr(
    content: bytes,
    mime_type: str,
    hint: Optional[str] = None,
    processor_id: Optional[str] = None,
    provider: Optional[str] = None,
    gate=None,
) -> OcrDocument:
    """
    Provider errors fall through to the next provider. Quota and
    configuration errors propagate; an empty result is unreadable.
    """
    chosen = resolve_provider(provider)
    doc = None

    if chosen == documentai.PROVIDER:
        try:
            doc = run_documentai(content, mime_type, hint=hint, processor_id=processor_id, gate=gate)
        except UsageLimitExceeded:
            raise
        except ProviderNotConfigured:
            if provider or settings.OCR_PROVIDER.lower() == documentai.PROVIDER:
                raise
            logger.warning("Document AI not configured, falling back to PaddleOCR")
        except Exception as e:
            logger.warning("Document AI failed, falling back to PaddleOCR: %s", e)

    if doc is None or not doc.text.strip():
        try:
            doc = run_paddle(content, mime_type)
        except Exception as e:
            logger.warning("PaddleOCR failed: %s", e)
            doc = None

    if doc is None or not doc.text.strip():
        raise DocumentUnreadableError("Could not read any text from the document")
    return doc


# -------------------------------------------------
# UPLOAD ANALYSIS
# -------------------------------------------------

def analyze_document(
    content: bytes,
    mime_type: str,
    filename: Optional[str] = None,
    hint: Optional[str] = None,
    use_llm: Optional[bool] = None,
    processor_id: Optional[str] = None,
    gate=None,
) -> Tuple[OcrDocument, ExtractionResult]:
    started = time.monotonic()
    use_llm = settings.DEFAULT_USE_LLM if use_llm is None else use_llm

    doc = run_ocr(content, mime_type, hint=hint, processor_id=processor_id, gate=gate)

    llm_document = parse_document_with_llm(doc.text) if use_llm else None
    result = build_result(
        doc,
        hint=hint,
        filename=filename,
        llm_document=llm_document,
        llm_receipt_mapper=map_receipt_with_llm if use_llm else None,
    )

    elapsed = int((time.monotonic() - started) * 1000)
    logger.info(
        "processed %s in %dms via %s: type=%s method=%s transactions=%d",
        filename or "upload", elapsed, doc.provider, result.document_type,
        result.bank_info.parsing_method, len(result.transactions),
    )
    return doc, result
