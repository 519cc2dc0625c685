# pdfplumber words -> PageText, image-only heuristics

# listas/extraction/pdf_text.py
from __future__ import annotations

import io
from pathlib import Path
from typing import List, Union

from reconciliation.contracts import PageText, TextRun

PdfSource = Union[str, Path, bytes]


def _open(source: PdfSource):
    import pdfplumber  # local import to reduce editor import sensitivity

    if isinstance(source, (bytes, bytearray)):
        return pdfplumber.open(io.BytesIO(source))
    return pdfplumber.open(str(source))


def read_pdf_text_layer(source: PdfSource) -> List[PageText]:
    """
    Positioned words per page using pdfplumber.

    pdfplumber measures `top`/`bottom` from the page top; runs are converted
    to PDF space (origin bottom-left) using the word's bottom edge as its
    baseline, which is what the item locator expects.

    Notes:
    - Image-only PDFs (scans) yield pages with no runs.
    """
    pages: List[PageText] = []
    with _open(source) as pdf:
        for i, page in enumerate(pdf.pages, start=1):
            height = float(page.height)
            runs: List[TextRun] = []
            for w in page.extract_words() or []:
                text = (w.get("text") or "").strip()
                if not text:
                    continue
                x0 = float(w.get("x0", 0.0))
                x1 = float(w.get("x1", x0))
                top = float(w.get("top", 0.0))
                bottom = float(w.get("bottom", top))
                runs.append(
                    TextRun(
                        text=text,
                        x=x0,
                        y=height - bottom,
                        width=max(x1 - x0, 0.0),
                        height=max(bottom - top, 0.0),
                    )
                )
            pages.append(
                PageText(
                    page_number=i,
                    page_width=float(page.width),
                    page_height=height,
                    text_runs=runs,
                )
            )
    return pages


def looks_like_image_only(pages: List[PageText], min_runs_per_page: int = 5) -> bool:
    """
    Heuristic: if >=80% pages have fewer than min_runs_per_page words, treat as image-only.
    """
    if not pages:
        return True
    low = sum(1 for p in pages if len(p.text_runs) < min_runs_per_page)
    return (low / max(len(pages), 1)) >= 0.8
