# finance_api/ocr/paddle.py
from typing import List

import fitz  # PyMuPDF
import cv2
import numpy as np
from PIL import Image
from paddleocr import PaddleOCR

from finance_api.ocr.schemas import Layout, OcrDocument, Page, PageLine, TextAnchor, TextSegment

PROVIDER = "paddle"


# -------------------------------------------------
# OCR INIT
# -------------------------------------------------

def init_ocr(lang: str = "pt") -> PaddleOCR:
    return PaddleOCR(
        lang=lang,
        use_doc_orientation_classify=False,
        use_doc_unwarping=False,
        use_textline_orientation=True,
    )


# -------------------------------------------------
# BYTES -> IMAGES (BGR arrays, what paddle expects)
# -------------------------------------------------

def pdf_to_images(content: bytes, dpi: int = 250) -> List[np.ndarray]:
    doc = fitz.open(stream=content, filetype="pdf")
    zoom = dpi / 72.0
    mat = fitz.Matrix(zoom, zoom)

    out: List[np.ndarray] = []
    for i in range(doc.page_count):
        page = doc.load_page(i)
        pix = page.get_pixmap(matrix=mat, alpha=False)
        img = Image.frombytes("RGB", [pix.width, pix.height], pix.samples)
        out.append(cv2.cvtColor(np.array(img), cv2.COLOR_RGB2BGR))
    doc.close()
    return out


def image_from_bytes(content: bytes) -> np.ndarray:
    img = cv2.imdecode(np.frombuffer(content, dtype=np.uint8), cv2.IMREAD_COLOR)
    if img is None:
        raise ValueError("Unsupported or corrupt image")
    return img


# -------------------------------------------------
# OCR RUN
# -------------------------------------------------

def run_ocr(ocr: PaddleOCR, image: np.ndarray) -> List[str]:
    result = ocr.predict(
        image,
        use_doc_orientation_classify=False,
        use_doc_unwarping=False,
        use_textline_orientation=True,
        return_word_box=False,
    )

    lines: List[str] = []
    for res in (result or []):
        d = res.to_dict() if hasattr(res, "to_dict") else res
        if not isinstance(d, dict):
            continue

        payload = d.get("res", d)
        for txt in payload.get("rec_texts") or []:
            if txt:
                lines.append(str(txt))
    return lines


def build_document(page_lines: List[List[str]]) -> OcrDocument:
    """Join recognised lines into one text and anchor each line back into it."""
    text = ""
    pages: List[Page] = []
    for lines in page_lines:
        page = Page()
        for ln in lines:
            start = len(text)
            text += ln + "\n"
            seg = TextSegment(start_index=start, end_index=start + len(ln))
            page.lines.append(PageLine(layout=Layout(text_anchor=TextAnchor(text_segments=[seg]))))
        pages.append(page)
        text += "\n"
    return OcrDocument(text=text.rstrip(), pages=pages, provider=PROVIDER)


def process_document(ocr: PaddleOCR, content: bytes, mime_type: str) -> OcrDocument:
    if mime_type == "application/pdf":
        images = pdf_to_images(content)
    else:
        images = [image_from_bytes(content)]
    return build_document([run_ocr(ocr, img) for img in images])
