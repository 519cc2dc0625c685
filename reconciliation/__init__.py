# reconciliation/__init__.py
"""
Pure reconciliation core for school supply lists.

Public API:
- infer(label) -> CourseDescriptor | None
- match(descriptor, catalog) -> MatchResult | None
- locate(page_texts, item_name) -> Coordinates | None
- append_version / set_item_approval / recompute_review_state
"""

from .course_inferencer import infer
from .course_matcher import classify, match
from .ledger import append_version, approve_all, recompute_review_state, set_item_approval
from .pdf_locator import locate, locate_many

__all__ = [
    "infer",
    "match",
    "classify",
    "locate",
    "locate_many",
    "append_version",
    "set_item_approval",
    "recompute_review_state",
    "approve_all",
]
