from __future__ import annotations

import re
import unicodedata
from typing import Iterable, List

SPANISH_STOPWORDS = frozenset(
    {"de", "la", "el", "los", "las", "un", "una", "con", "sin", "para", "por", "del", "al", "y", "o", "en"}
)

_PUNCT_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(text: str, drop_punctuation: bool = False) -> str:
    """
    Lowercase, strip diacritics (NFD minus combining marks), collapse
    whitespace and trim. Underscores count as whitespace so that
    "3_basico_B" reads like "3 basico B".

    drop_punctuation=True also replaces every non-word character with a
    space. Ordinal markers like "°" are kept otherwise, since the course
    inferencer scores them.
    """
    if not text:
        return ""
    t = strip_accents(text.lower()).replace("_", " ")
    if drop_punctuation:
        t = _PUNCT_RE.sub(" ", t)
    return _WS_RE.sub(" ", t).strip()


def keywords(text: str, stopwords: Iterable[str] = SPANISH_STOPWORDS) -> List[str]:
    """Significant tokens of `text`: length > 1 and not a stop word."""
    stop = set(stopwords)
    return [tok for tok in normalize(text, drop_punctuation=True).split() if len(tok) > 1 and tok not in stop]
