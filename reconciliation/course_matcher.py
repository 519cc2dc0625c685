# match(descriptor, catalog) + classify(score)

# reconciliation/course_matcher.py
from __future__ import annotations

from typing import Iterable, Optional

from .contracts import CourseDescriptor, CourseRecord, MatchResult, MatchStatus

LEVEL_POINTS = 40
GRADE_POINTS = 40
SECTION_EXACT_POINTS = 15
SECTION_MISMATCH_PENALTY = -5
SECTION_BOTH_EMPTY_POINTS = 5
YEAR_POINTS = 5

MIN_MATCH_SCORE = 80
AUTO_APPLY_SCORE = 95


def _clean_section(section: Optional[str]) -> str:
    return (section or "").strip().upper()


def score_candidate(descriptor: CourseDescriptor, record: CourseRecord) -> Optional[int]:
    """
    Additive score for one catalog record, or None when a mandatory gate
    (level, grade) fails and the record must be skipped.
    """
    if record.level != descriptor.level:
        return None
    score = LEVEL_POINTS

    if record.grade != descriptor.grade:
        return None
    score += GRADE_POINTS

    want = _clean_section(descriptor.section)
    have = _clean_section(record.section)
    if want:
        if have == want:
            score += SECTION_EXACT_POINTS
        elif have:
            score += SECTION_MISMATCH_PENALTY
    elif not have:
        score += SECTION_BOTH_EMPTY_POINTS

    if descriptor.year is not None and record.year == descriptor.year:
        score += YEAR_POINTS

    return score


def best_candidate(descriptor: CourseDescriptor, catalog: Iterable[CourseRecord]) -> Optional[MatchResult]:
    """Highest-scoring record regardless of threshold. Ties keep the first seen."""
    best: Optional[MatchResult] = None
    for record in catalog:
        score = score_candidate(descriptor, record)
        if score is None:
            continue
        if best is None or score > best.score:
            best = MatchResult(record=record, score=score)
    return best


def match(
    descriptor: CourseDescriptor,
    catalog: Iterable[CourseRecord],
    min_score: int = MIN_MATCH_SCORE,
) -> Optional[MatchResult]:
    """
    Deterministic matching of an inferred course against the catalog.
    Returns the best record only if its score reaches `min_score`.
    """
    best = best_candidate(descriptor, catalog)
    if best is None or best.score < min_score:
        return None
    return best


def classify(
    result: Optional[MatchResult],
    min_score: int = MIN_MATCH_SCORE,
    auto_apply_score: int = AUTO_APPLY_SCORE,
) -> MatchStatus:
    if result is None or result.score < min_score:
        return MatchStatus.NOT_FOUND
    if result.score >= auto_apply_score:
        return MatchStatus.MATCHED
    return MatchStatus.AMBIGUOUS
