# infer(label) -> CourseDescriptor | None

# reconciliation/course_inferencer.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .contracts import CourseDescriptor, Level
from .text_normalizer import normalize

PDF_EXT_RE = re.compile(r"\.pdf$", re.IGNORECASE)

BASIC_RE = re.compile(r"\b(basico|basica|basic)\b")
SECONDARY_RE = re.compile(r"\b(medio|media|secundario|secundaria)\b")

LEVEL_WORD = r"(?:basico|basica|basic|medio|media|secundario|secundaria)"
ORDINAL_MARKER = r"(?:°|º|o|do|da|ro|er|to|vo|mo|no)"

ROMAN_RE = re.compile(rf"\b([ivx]+)\s*{ORDINAL_MARKER}?\s*{LEVEL_WORD}\b")
# marker present, or digits glued to the level word ("3basico")
ARABIC_MARKED_RE = re.compile(rf"\b(\d{{1,2}})(?:\s*{ORDINAL_MARKER}\s*|){LEVEL_WORD}\b")
ARABIC_PLAIN_RE = re.compile(rf"\b(\d{{1,2}})\s+{LEVEL_WORD}\b")

CANONICAL_RE = re.compile(rf"\d{{1,2}}\s*{ORDINAL_MARKER}?\s*{LEVEL_WORD}(?:\s*[a-z])?")

SECTION_RE = re.compile(r"(?<!\d)\b([A-Z])\b(?!\d)")
SECTION_BEFORE_LEVEL_RE = re.compile(r"\s*[°º]?\s*(b[aá]sic|medi|secundari)", re.IGNORECASE)
YEAR_RE = re.compile(r"\b(20\d{2})\b")

ROMAN_NUMERALS = {
    "i": 1, "ii": 2, "iii": 3, "iv": 4,
    "v": 5, "vi": 6, "vii": 7, "viii": 8,
    "ix": 9, "x": 10, "xi": 11, "xii": 12,
}

SPELLED_ORDINALS: List[Tuple[str, int]] = [
    ("primero", 1), ("primera", 1), ("primer", 1),
    ("segundo", 2), ("segunda", 2),
    ("tercero", 3), ("tercera", 3), ("tercer", 3),
    ("cuarto", 4), ("cuarta", 4),
    ("quinto", 5), ("quinta", 5),
    ("sexto", 6), ("sexta", 6),
    ("septimo", 7), ("septima", 7),
    ("octavo", 8), ("octava", 8),
    ("noveno", 9), ("novena", 9),
    ("decimo", 10), ("decima", 10),
]

GRADE_RANGES = {
    Level.BASIC: (1, 8),
    Level.SECONDARY: (1, 4),
}

BASE_CONFIDENCE = 50
SECTION_BONUS = 10
YEAR_BONUS = 10
CANONICAL_BONUS = 10


def _grade_from_roman(text: str) -> Optional[int]:
    m = ROMAN_RE.search(text)
    if not m:
        return None
    return ROMAN_NUMERALS.get(m.group(1))


def _grade_from_spelled(text: str) -> Optional[int]:
    for word, num in SPELLED_ORDINALS:
        if re.search(rf"\b{word}\b", text):
            return num
    return None


def _grade_from_arabic_marked(text: str) -> Optional[int]:
    m = ARABIC_MARKED_RE.search(text)
    return int(m.group(1)) if m else None


def _grade_from_arabic_plain(text: str) -> Optional[int]:
    m = ARABIC_PLAIN_RE.search(text)
    return int(m.group(1)) if m else None


@dataclass(frozen=True)
class GradeMethod:
    name: str
    bonus: int
    extract: Callable[[str], Optional[int]]


# Evaluated in order; the first method that yields a grade wins.
GRADE_METHODS: List[GradeMethod] = [
    GradeMethod("Roman numeral", 15, _grade_from_roman),
    GradeMethod("Spelled-out ordinal", 10, _grade_from_spelled),
    GradeMethod("Arabic numeral with ordinal marker", 20, _grade_from_arabic_marked),
    GradeMethod("Arabic numeral", 0, _grade_from_arabic_plain),
]


def detect_level(normalized: str) -> Optional[Level]:
    if BASIC_RE.search(normalized):
        return Level.BASIC
    if SECONDARY_RE.search(normalized):
        return Level.SECONDARY
    return None


def detect_grade(normalized: str) -> Tuple[Optional[int], Optional[GradeMethod]]:
    for method in GRADE_METHODS:
        grade = method.extract(normalized)
        if grade is not None:
            return grade, method
    return None, None


def detect_section(label: str) -> Optional[str]:
    """
    Single standalone uppercase letter, case preserved from the raw label.
    A letter sitting right before the level word is a roman grade ("I Medio"),
    not a section.
    """
    for m in SECTION_RE.finditer(label):
        if SECTION_BEFORE_LEVEL_RE.match(label, m.end()):
            continue
        return m.group(1)
    return None


def detect_year(label: str) -> Optional[int]:
    m = YEAR_RE.search(label)
    return int(m.group(1)) if m else None


def infer(label: str) -> Optional[CourseDescriptor]:
    """
    Infer {level, grade, section, year} from a free-text label, usually a
    filename such as "3° Básico B 2026.pdf".

    Returns None when level or grade cannot be recognized or the grade is out
    of range for the level. Never raises.
    """
    if not label:
        return None

    raw = PDF_EXT_RE.sub("", label).strip()
    norm = normalize(raw)

    level = detect_level(norm)
    if level is None:
        return None

    grade, method = detect_grade(norm)
    if grade is None or method is None:
        return None

    lo, hi = GRADE_RANGES[level]
    if not lo <= grade <= hi:
        return None

    spaced = raw.replace("_", " ")
    section = detect_section(spaced)
    year = detect_year(spaced)

    confidence = BASE_CONFIDENCE + method.bonus
    if section:
        confidence += SECTION_BONUS
    if year:
        confidence += YEAR_BONUS
    if CANONICAL_RE.fullmatch(norm):
        confidence += CANONICAL_BONUS

    return CourseDescriptor(
        level=level,
        grade=grade,
        section=section,
        year=year,
        confidence=min(100, confidence),
        method=method.name,
    )


def describe(descriptor: CourseDescriptor) -> str:
    """Human-readable summary, e.g. '3° Basic B 2026 (Arabic numeral with ordinal marker)'."""
    parts = [f"{descriptor.grade}° {descriptor.level.value}"]
    if descriptor.section:
        parts.append(descriptor.section)
    if descriptor.year:
        parts.append(str(descriptor.year))
    return f"{' '.join(parts)} ({descriptor.method})"
