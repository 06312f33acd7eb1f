# finance_api/ocr/documentai.py
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from google.api_core.client_options import ClientOptions
from google.cloud import documentai

from finance_api.core.config import settings
from finance_api.ocr.schemas import OcrDocument

logger = logging.getLogger(__name__)

PROVIDER = "documentai"


def api_endpoint(location: str) -> str:
    return "eu-documentai.googleapis.com" if (location or "").lower() == "eu" else "us-documentai.googleapis.com"


def resolve_credentials_path(p: Optional[str]) -> Optional[str]:
    if not p:
        return None
    if p.startswith("./"):
        return str(Path.cwd() / p[2:])
    return p


def get_client(location: str) -> documentai.DocumentProcessorServiceClient:
    if not settings.GOOGLE_CLOUD_PROJECT_ID:
        raise RuntimeError("Missing GOOGLE_CLOUD_PROJECT_ID")

    opts = ClientOptions(api_endpoint=api_endpoint(location))
    creds = resolve_credentials_path(settings.GOOGLE_APPLICATION_CREDENTIALS)
    if creds and os.path.exists(creds):
        return documentai.DocumentProcessorServiceClient.from_service_account_file(creds, client_options=opts)
    # application default credentials
    return documentai.DocumentProcessorServiceClient(client_options=opts)


# -------------------------------------------------
# PROTO -> OcrDocument
# -------------------------------------------------

def _number_from_normalized(nv: Dict[str, Any]) -> Optional[float]:
    money = nv.get("moneyValue")
    if money:
        units = float(money.get("units") or 0)
        nanos = float(money.get("nanos") or 0)
        return units + nanos / 1e9
    for key in ("floatValue", "integerValue"):
        if nv.get(key) is not None:
            return float(nv[key])
    return None


def _normalize_entities(entities) -> None:
    stack = list(entities or [])
    while stack:
        e = stack.pop()
        nv = e.get("normalizedValue")
        if nv and nv.get("numberValue") is None:
            number = _number_from_normalized(nv)
            if number is not None:
                nv["numberValue"] = number
        stack.extend(e.get("properties") or [])


def to_ocr_document(document: documentai.Document) -> OcrDocument:
    data = json.loads(documentai.Document.to_json(document))
    _normalize_entities(data.get("entities"))
    return OcrDocument.model_validate({
        "text": data.get("text") or "",
        "entities": data.get("entities") or [],
        "pages": data.get("pages") or [],
        "provider": PROVIDER,
    })


# -------------------------------------------------
# PROCESS
# -------------------------------------------------

def process_document(
    content: bytes,
    mime_type: str,
    processor_id: str,
    location: Optional[str] = None,
    processor_version: Optional[str] = None,
) -> OcrDocument:
    location = location or settings.GOOGLE_CLOUD_LOCATION
    client = get_client(location)

    project = settings.GOOGLE_CLOUD_PROJECT_ID
    if processor_version:
        name = client.processor_version_path(project, location, processor_id, processor_version)
    else:
        name = client.processor_path(project, location, processor_id)

    request = documentai.ProcessRequest(
        name=name,
        raw_document=documentai.RawDocument(content=content, mime_type=mime_type),
    )
    result = client.process_document(request=request)
    doc = to_ocr_document(result.document)
    logger.debug(
        "documentai %s: %d chars, %d entities, %d pages",
        processor_id, len(doc.text), len(doc.entities), len(doc.pages),
    )
    return doc
