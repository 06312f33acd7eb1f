# finance_api/extraction/locale.py
"""
Amount and date parsing for Portuguese / European / US formatted text.

Nothing here raises on bad input: amounts come back as None and dates as ''.
"""
import re
import unicodedata
from datetime import date
from typing import Dict, Optional

LETTER_RE = re.compile(r"[A-Za-zÀ-ÿ]")

# date-shaped substring anywhere in a line
DATE_ANY_RE = re.compile(
    r"(\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?"
    r"|\d{4}-\d{1,2}-\d{1,2}"
    r"|\d{1,2}\s+[A-Za-zÀ-ÿ]{3,}\.?\s*\d{0,4})"
)

# amount-shaped substring (thousands groups, decimal part, optional sign / parens)
AMOUNT_RE = re.compile(
    r"[+\-]?\(?\s*[0-9]{1,3}(?:[.,\s][0-9]{3})*(?:[.,][0-9]{1,2})\s*\)?"
)

_EU_RE = re.compile(r"^\d{1,3}(\.\d{3})*,\d{2}$")
_US_RE = re.compile(r"^\d{1,3}(,\d{3})*\.\d{2}$")
_COMMA_DECIMAL_RE = re.compile(r"^\d+,\d{1,2}$")
_THOUSANDS_ONLY_RE = re.compile(r"^\d{1,3}([.,])\d{3}(\1\d{3})+$")

MONTHS_MAP: Dict[str, int] = {
    "jan": 1, "janeiro": 1, "january": 1,
    "fev": 2, "fevereiro": 2, "feb": 2, "february": 2,
    "mar": 3, "marco": 3, "march": 3,
    "abr": 4, "abril": 4, "apr": 4, "april": 4,
    "mai": 5, "maio": 5, "may": 5,
    "jun": 6, "junho": 6, "june": 6,
    "jul": 7, "julho": 7, "july": 7,
    "ago": 8, "agosto": 8, "aug": 8, "august": 8,
    "set": 9, "setembro": 9, "sep": 9, "sept": 9, "september": 9,
    "out": 10, "outubro": 10, "oct": 10, "october": 10,
    "nov": 11, "novembro": 11, "novem": 11, "november": 11,
    "dez": 12, "dezembro": 12, "dec": 12, "december": 12,
}

_ISO_RE = re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})$")
_DMY_RE = re.compile(r"^(\d{1,2})[-/.](\d{1,2})[-/.](\d{2}|\d{4})$")
_DM_RE = re.compile(r"^(\d{1,2})[-/.](\d{1,2})$")
_D_MONTH_Y_RE = re.compile(r"^(\d{1,2})\s+([A-Za-zÀ-ÿ]{3,})\.?\s*(\d{2}|\d{4})?$")

_PERIOD_RE = re.compile(
    r"(\d{1,2}[/-]\d{1,2}[/-]\d{2,4}|\d{4}-\d{1,2}-\d{1,2})"
    r".{0,20}?(?:a|até|to|–|-).{0,20}?"
    r"\b(\d{1,2}[/-]\d{1,2}[/-]\d{2,4}|\d{4}-\d{1,2}-\d{1,2})",
    flags=re.I,
)


def strip_accents(s: str) -> str:
    return "".join(
        ch for ch in unicodedata.normalize("NFD", s or "")
        if unicodedata.category(ch) != "Mn"
    )


def has_letters(s: Optional[str]) -> bool:
    return bool(s) and bool(LETTER_RE.search(s))


def _normalize_separators(body: str) -> str:
    if _EU_RE.match(body):
        return body.replace(".", "").replace(",", ".")
    if _US_RE.match(body):
        return body.replace(",", "")
    if _COMMA_DECIMAL_RE.match(body):
        return body.replace(",", ".")
    if _THOUSANDS_ONLY_RE.match(body):
        return re.sub(r"[.,]", "", body)

    last_comma = body.rfind(",")
    last_dot = body.rfind(".")
    if last_comma > last_dot:
        # comma is the decimal point
        head, tail = body[:last_comma], body[last_comma + 1:]
        return re.sub(r"[.,]", "", head) + "." + tail
    if last_dot > last_comma:
        head, tail = body[:last_dot], body[last_dot + 1:]
        return re.sub(r"[.,]", "", head) + "." + tail
    return body


def parse_amount(text) -> Optional[float]:
    """
    "1.234,56" / "1,234.56" / "123,45" / "(45,90)" / "-45,90" / "R$ 10,00" -> float.
    Returns None when nothing numeric can be recovered.
    """
    if not text or not isinstance(text, str):
        return None

    raw = text.strip()
    negative = "(" in raw and ")" in raw

    kept = re.sub(r"[^\d\-+.,]", "", raw)
    if not kept:
        return None

    if kept.startswith("-") or kept.endswith("-"):
        negative = True
    body = kept.strip("+-")
    if not body or "-" in body or "+" in body:
        return None
    if not re.search(r"\d", body):
        return None

    body = _normalize_separators(body)
    try:
        value = float(body)
    except ValueError:
        return None
    if value != value or value in (float("inf"), float("-inf")):
        return None

    return -abs(value) if negative else value


def _iso(y: int, m: int, d: int) -> str:
    try:
        return date(y, m, d).isoformat()
    except ValueError:
        return ""


def _full_year(y: str) -> int:
    return int(f"20{y}") if len(y) == 2 else int(y)


def parse_flexible_date(text, base_year: Optional[int] = None) -> str:
    """
    Accepts YYYY-MM-DD, DD/MM/YYYY, DD-MM-YY, DD.MM, "5 março 2024", "12 Jan."
    Returns ISO YYYY-MM-DD, or '' when the text is not a calendar date.
    """
    if not text or not isinstance(text, str):
        return ""
    s = text.strip()

    m = _ISO_RE.match(s)
    if m:
        return _iso(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _DMY_RE.match(s)
    if m:
        return _iso(_full_year(m.group(3)), int(m.group(2)), int(m.group(1)))

    year = base_year or date.today().year

    m = _DM_RE.match(s)
    if m:
        return _iso(year, int(m.group(2)), int(m.group(1)))

    m = _D_MONTH_Y_RE.match(s)
    if m:
        month = MONTHS_MAP.get(strip_accents(m.group(2)).lower())
        if month:
            y = _full_year(m.group(3)) if m.group(3) else year
            return _iso(y, month, int(m.group(1)))

    return ""


def detect_period(text: str) -> Dict[str, str]:
    m = _PERIOD_RE.search(text or "")
    if not m:
        return {"start": "", "end": ""}
    return {
        "start": parse_flexible_date(m.group(1)),
        "end": parse_flexible_date(m.group(2)),
    }


def detect_currency(text: str) -> Optional[str]:
    t = (text or "").upper()
    if re.search(r"R\$|BRL", t):
        return "BRL"
    if re.search(r"\bUSD\b|US\$|\$", t):
        return "USD"
    if re.search(r"€|EUR", t):
        return "EUR"
    return None
