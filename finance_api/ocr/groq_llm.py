# finance_api/ocr/groq_llm.py
import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from groq import Groq
from pydantic import ValidationError

from finance_api.core.config import settings
from finance_api.ocr.schemas import LlmDocument, LlmReceipt, OcrDocument
from finance_api.extraction.locale import parse_flexible_date
from finance_api.extraction.receipts import receipt_from_entities
from finance_api.extraction.schemas import ExtractedReceipt, ReceiptItem

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "És um especialista em análise de documentos financeiros portugueses. Respondes sempre com JSON válido."

DOCUMENT_PROMPT = """Analisa este texto extraído via OCR de um documento financeiro português
(fatura, recibo, extrato bancário ou cartão de crédito) e organiza a informação em JSON.

TEXTO OCR:
{text}

Retorna APENAS um JSON válido com esta estrutura:

{{
  "documentType": "receipt|invoice|bank_statement|credit_card",
  "establishment": {{"name": string|null, "nif": string|null, "address": string|null}},
  "date": "YYYY-MM-DD",
  "totalAmount": number|null,
  "currency": "EUR|BRL|USD",
  "transactions": [
    {{"date": "YYYY-MM-DD", "description": string, "amount": number,
      "suggestedCategory": string, "reference": string|null}}
  ],
  "items": [
    {{"description": string, "quantity": number, "unitPrice": number,
      "totalPrice": number, "category": string}}
  ],
  "summary": {{"itemCount": number, "subtotal": number, "tax": number, "total": number}},
  "metadata": {{"confidence": "high|medium|low", "notes": string}}
}}

INSTRUÇÕES:
- Extrato bancário ou cartão de crédito: preenche "transactions" com TODAS as movimentações
- Recibo ou fatura: preenche "items" com os produtos/serviços
- Valores negativos para débitos/gastos, positivos para créditos/depósitos
- Valores em formato português (vírgula decimal): 12,50 = 12.50
- Se há muitos items (>20), extrai apenas os 20 primeiros
- Se não conseguires identificar algo, usa null
- Sem markdown, sem comentários, sem texto fora do JSON
"""

RECEIPT_SYSTEM_PROMPT = """You are a data normalizer for retail receipts. Input is OCR line_item entities and raw text snippets.
Return a strict JSON object with fields: merchant (string|optional), date (YYYY-MM-DD|optional),
subtotal (number|optional), tax (number|optional), total (number|optional), and items (array).
Each item: { code?: string, description: string, quantity?: number, unitPrice?: number, total?: number, taxRate?: number, taxAmount?: number }.
Rules:
- Merge duplicated split lines; ignore summary rows like subtotal/total/iva/vat.
- Prefer totals when available; compute nothing if uncertain.
- Date should be a single receipt date. If absent, omit.
"""

# closing values spliced in when a response is cut inside an array
DOCUMENT_CLOSING = {
    "summary": {"itemCount": 0, "subtotal": 0, "tax": 0, "total": 0},
    "metadata": {"confidence": "medium", "notes": "Resposta truncada, items não extraídos completamente"},
}

RELEVANT_SECTION_RE = re.compile(
    r"\d{2}/\d{2}/\d{4}|\d{4}-\d{2}-\d{2}|€|EUR|USD|US\$|\$|\d+,\d{2}|\d+\.\d{2}|DEBITO|CREDITO|TRF|POS|MB|ATM"
    r"|movimentos|transações|operações|extrato|saldo",
    flags=re.I,
)


# -------------------------------------------------
# JSON HANDLING
# -------------------------------------------------

def _strip_fences(s: str) -> str:
    s = (s or "").strip()
    m = re.match(r"^```(?:json)?\s*\n?(.*?)\n?```$", s, flags=re.S | re.I)
    if m:
        return m.group(1).strip()
    if s.startswith("```"):
        # opening fence only (truncated response)
        return re.sub(r"^```(?:json)?\s*\n?", "", s, flags=re.I)
    return s


def _extract_json_str(s: str) -> str:
    s = (s or "").strip()
    if s.startswith("{") and s.endswith("}"):
        return s
    m = re.search(r"\{.*\}", s, flags=re.S)
    if not m:
        raise ValueError("LLM response does not contain JSON.")
    return m.group(0)


def repair_truncated_json(
    raw: str,
    array_keys: Sequence[str],
    closing: Optional[Dict[str, Any]] = None,
) -> Optional[dict]:
    """
    Cut the response at one of `array_keys` (last key first, so complete
    earlier arrays survive) and close the object with empty arrays plus
    `closing`. One attempt per key; None when nothing parses.
    """
    start = raw.find("{")
    if start == -1:
        return None
    raw = raw[start:]

    for i in reversed(range(len(array_keys))):
        key = array_keys[i]
        m = re.search(r'"%s"\s*:\s*\[' % re.escape(key), raw)
        if not m:
            continue
        head = raw[:m.start()].rstrip()
        if not head.endswith(("{", ",")):
            head += ","
        tail = {k: [] for k in array_keys[i:]}
        tail.update(closing or {})
        candidate = head + json.dumps(tail, ensure_ascii=False)[1:]
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def load_llm_json(
    content: Optional[str],
    array_keys: Sequence[str] = (),
    closing: Optional[Dict[str, Any]] = None,
) -> Optional[dict]:
    """Strict parse, then one bounded structural repair, then None."""
    text = _strip_fences(content or "")
    if not text:
        return None
    try:
        data = json.loads(_extract_json_str(text))
        if isinstance(data, dict):
            return data
    except ValueError:
        logger.warning("LLM returned malformed JSON, attempting repair")

    repaired = repair_truncated_json(text, array_keys, closing)
    if repaired is None:
        logger.warning("LLM JSON repair failed")
    return repaired


def reduce_text(text: str, limit: Optional[int] = None) -> str:
    limit = limit or settings.LLM_TEXT_LIMIT
    if len(text) <= limit:
        return text
    sections = re.split(r"\n\s*\n", text)
    relevant = [s for s in sections if RELEVANT_SECTION_RE.search(s)]
    if relevant:
        return "\n\n".join(relevant[:5])
    return text[:limit]


# -------------------------------------------------
# CLIENT
# -------------------------------------------------

def get_groq_client() -> Groq:
    key = settings.GROQ_API_KEY
    if not key:
        raise RuntimeError("Missing GROQ_API_KEY")
    return Groq(api_key=key)


def _complete(client, model: str, messages: List[dict], json_mode: bool = False) -> str:
    kwargs = {}
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}
    resp = client.chat.completions.create(
        model=model,
        temperature=0,
        max_tokens=settings.LLM_MAX_TOKENS,
        messages=messages,
        **kwargs,
    )
    return resp.choices[0].message.content or ""


# -------------------------------------------------
# WHOLE-DOCUMENT NORMALIZATION
# -------------------------------------------------

def parse_document_with_llm(ocr_text: str, client=None, model: Optional[str] = None) -> Optional[LlmDocument]:
    """
    Classify + extract the whole document. Never raises: any provider or
    parse failure is logged and reported as None.
    """
    if not (ocr_text or "").strip():
        return None
    try:
        client = client or get_groq_client()
        content = _complete(
            client,
            model or settings.LLM_MODEL,
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": DOCUMENT_PROMPT.format(text=reduce_text(ocr_text))},
            ],
        )
    except Exception as e:
        logger.warning("LLM call failed: %s", e)
        return None

    data = load_llm_json(content, array_keys=("transactions", "items"), closing=DOCUMENT_CLOSING)
    if data is None:
        return None
    try:
        return LlmDocument.model_validate(data)
    except ValidationError as e:
        logger.warning("LLM document does not match schema: %s", e.error_count())
        return None


# -------------------------------------------------
# RECEIPT LINE-ITEM CLEANUP
# -------------------------------------------------

def _raw_items(document: OcrDocument) -> List[dict]:
    receipt = receipt_from_entities(document.entities)
    if receipt is None:
        return []
    return [it.model_dump(exclude_none=True) for it in receipt.items]


def map_receipt_with_llm(document: OcrDocument, client=None, model: Optional[str] = None) -> Optional[ExtractedReceipt]:
    lines = (document.text or "").splitlines()
    payload = {
        "rawItems": _raw_items(document),
        "textHead": "\n".join(lines[:25]),
        "textTail": "\n".join(lines[-25:]),
    }
    try:
        client = client or get_groq_client()
        content = _complete(
            client,
            model or settings.LLM_RECEIPT_MODEL,
            [
                {"role": "system", "content": RECEIPT_SYSTEM_PROMPT},
                {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
            ],
            json_mode=True,
        )
    except Exception as e:
        logger.warning("LLM receipt mapping failed: %s", e)
        return None

    data = load_llm_json(content, array_keys=("items",))
    if data is None or not isinstance(data.get("items"), list):
        return None
    data["items"] = [
        it for it in data["items"]
        if isinstance(it, dict) and isinstance(it.get("description"), str) and it["description"].strip()
    ]
    try:
        mapped = LlmReceipt.model_validate(data)
    except ValidationError as e:
        logger.warning("LLM receipt does not match schema: %s", e.error_count())
        return None

    return ExtractedReceipt(
        merchant=mapped.merchant,
        date=parse_flexible_date(mapped.date or "") or None,
        subtotal=mapped.subtotal,
        tax=mapped.tax,
        total=mapped.total,
        items=[
            ReceiptItem(
                code=it.code,
                description=it.description.strip(),
                quantity=it.quantity,
                unit_price=it.unitPrice,
                total=it.total,
                tax_rate=it.taxRate,
                tax_amount=it.taxAmount,
            )
            for it in mapped.items
        ],
    )
