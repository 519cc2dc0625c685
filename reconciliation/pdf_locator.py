# locate(page_texts, item_name) -> Coordinates | None

# reconciliation/pdf_locator.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .contracts import Coordinates, PageText, TextRun
from .text_normalizer import keywords, normalize

KEYWORD_FRACTION_THRESHOLD = 0.5
PREFIX_CHARS = 10

REGION_TOP_LIMIT = 35
REGION_BOTTOM_LIMIT = 65


@dataclass(frozen=True)
class LineMatch:
    page: PageText
    y: float
    runs: List[TextRun]
    text: str
    fraction: float
    prefix_hit: bool


def group_lines(page: PageText) -> List[tuple[float, List[TextRun]]]:
    """
    Bucket runs sharing a baseline (y rounded to one decimal), each line
    sorted left to right. Lines come back top to bottom (PDF y grows upward).
    """
    buckets: Dict[float, List[TextRun]] = {}
    for run in page.text_runs:
        buckets.setdefault(round(run.y, 1), []).append(run)

    lines = []
    for y in sorted(buckets, reverse=True):
        lines.append((y, sorted(buckets[y], key=lambda r: r.x)))
    return lines


def _pct(value: float, total: float) -> float:
    return round(min(max(value / total * 100, 0.0), 100.0), 1)


def region_for(y_pct: float) -> str:
    if y_pct < REGION_TOP_LIMIT:
        return "superior"
    if y_pct > REGION_BOTTOM_LIMIT:
        return "inferior"
    return "centro"


def find_line(page_texts: Sequence[PageText], item_name: str) -> Optional[LineMatch]:
    """
    First line (pages in order, lines top to bottom) containing at least half
    of the item's keywords, or the first PREFIX_CHARS normalized characters of
    the name verbatim.
    """
    kws = keywords(item_name or "")
    if not kws:
        return None
    prefix = normalize(item_name, drop_punctuation=True)[:PREFIX_CHARS]

    for page in page_texts or []:
        if page.page_width <= 0 or page.page_height <= 0:
            continue
        for y, runs in group_lines(page):
            line_text = " ".join(r.text for r in runs)
            line_norm = normalize(line_text, drop_punctuation=True)
            if not line_norm:
                continue
            hits = sum(1 for k in kws if k in line_norm)
            fraction = hits / len(kws)
            prefix_hit = bool(prefix) and prefix in line_norm
            if fraction >= KEYWORD_FRACTION_THRESHOLD or prefix_hit:
                return LineMatch(
                    page=page,
                    y=y,
                    runs=runs,
                    text=line_text,
                    fraction=fraction,
                    prefix_hit=prefix_hit,
                )
    return None


def to_coordinates(line: LineMatch) -> Coordinates:
    page = line.page
    runs = line.runs
    x_mean = sum(r.x for r in runs) / len(runs)
    width_total = sum(r.width for r in runs)
    height_mean = sum(r.height for r in runs) / len(runs)

    y_pct = _pct(page.page_height - line.y, page.page_height)
    return Coordinates(
        page=max(page.page_number, 1),
        x=_pct(x_mean, page.page_width),
        y=y_pct,
        width=_pct(width_total, page.page_width),
        height=_pct(height_mean, page.page_height),
        region=region_for(y_pct),
    )


def locate(page_texts: Sequence[PageText], item_name: str) -> Optional[Coordinates]:
    """
    Best-effort position of `item_name` inside the PDF as page percentages
    (y from the top). None when no line qualifies; never raises for odd input.
    """
    line = find_line(page_texts, item_name)
    if line is None:
        return None
    return to_coordinates(line)


def locate_many(page_texts: Sequence[PageText], item_names: Sequence[str]) -> Dict[int, Coordinates]:
    """Coordinates keyed by item position. Misses are left out."""
    found: Dict[int, Coordinates] = {}
    for i, name in enumerate(item_names):
        coords = locate(page_texts, name)
        if coords is not None:
            found[i] = coords
    return found
