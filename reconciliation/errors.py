from __future__ import annotations

from typing import Optional


class ReconciliationError(Exception):
    """Base class for logical errors raised by the reconciliation core."""


class InferenceFailed(ReconciliationError):
    """The label has no recognizable level or grade. Route to manual review."""

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Could not infer a course from label {label!r}")


class NoConfidentMatch(ReconciliationError):
    """No catalog course scored at or above the match threshold."""

    def __init__(self, label: str, best_score: Optional[int] = None):
        self.label = label
        self.best_score = best_score
        super().__init__(f"No confident course match for {label!r}")


class LocatorMiss(ReconciliationError):
    """Non-fatal: an item could not be found in the PDF text layer."""

    def __init__(self, item_name: str):
        self.item_name = item_name
        super().__init__(f"Item not found in PDF text: {item_name!r}")


class ItemNotFound(ReconciliationError):
    def __init__(self, course_id: str, ref: object):
        self.course_id = course_id
        self.ref = ref
        super().__init__(f"Item {ref!r} not found in latest version of course {course_id}")


class EmptyLedger(ReconciliationError):
    def __init__(self, course_id: str, reason: str = "no versions present"):
        self.course_id = course_id
        super().__init__(f"Course {course_id}: {reason}")
