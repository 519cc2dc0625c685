# reconciliation/ledger.py
"""
Materials version ledger.

A Course holds an append-only list of MaterialsVersion entries. Only the
latest entry (versions[-1]) is ever examined or mutated; earlier entries are
history. Every function takes the aggregate by value and returns a new one.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .contracts import Course, ItemRef, MaterialsVersion, ReviewState, SupplyItem
from .errors import EmptyLedger, ItemNotFound


def _now(now: Optional[datetime] = None) -> datetime:
    return now or datetime.now(timezone.utc)


def new_version_id() -> str:
    return f"version-{uuid.uuid4()}"


def is_fully_approved(version: Optional[MaterialsVersion]) -> bool:
    return bool(version and version.items) and all(i.approved for i in version.items)


def recompute_review_state(course: Course, now: Optional[datetime] = None) -> Course:
    """
    Reviewed iff the latest version is non-empty and every item is approved.
    Draft->Reviewed stamps reviewed_at, Reviewed->Draft clears it. Calling it
    again without item changes returns an equal course.
    """
    target = ReviewState.REVIEWED if is_fully_approved(course.latest_version) else ReviewState.DRAFT
    if target == course.review_state:
        return course
    if target == ReviewState.REVIEWED:
        return course.model_copy(update={"review_state": target, "reviewed_at": _now(now)})
    return course.model_copy(update={"review_state": target, "reviewed_at": None})


def append_version(course: Course, version: MaterialsVersion, now: Optional[datetime] = None) -> Course:
    """
    Push `version` to the end of the ledger. Earlier entries are carried over
    as the same objects.

    An empty version becomes the latest one like any other, so the course
    falls back to Draft.
    """
    versions = list(course.versions) + [version]
    return recompute_review_state(course.model_copy(update={"versions": versions}), now=now)


def new_version(
    source_file_name: str,
    items: List[SupplyItem],
    source_pdf_ref: Optional[str] = None,
    ai_processed: bool = False,
    now: Optional[datetime] = None,
) -> MaterialsVersion:
    """Fresh version with every item unapproved."""
    ts = _now(now)
    return MaterialsVersion(
        id=new_version_id(),
        uploaded_at=ts,
        updated_at=ts,
        source_file_name=source_file_name,
        source_pdf_ref=source_pdf_ref,
        items=[i.model_copy(update={"approved": False, "approved_at": None}) for i in items],
        ai_processed=ai_processed,
    )


def _require_latest(course: Course) -> MaterialsVersion:
    latest = course.latest_version
    if latest is None:
        raise EmptyLedger(course.id)
    return latest


def find_item_index(course: Course, ref: ItemRef) -> int:
    """
    Position of `ref` inside the latest version. An explicit id wins;
    otherwise the index must be in range and, when a name is given, the item
    at that index must carry it.
    """
    latest = _require_latest(course)
    items = latest.items

    if ref.id is not None:
        for i, item in enumerate(items):
            if item.id is not None and str(item.id) == str(ref.id):
                return i
        raise ItemNotFound(course.id, ref)

    if ref.index is None or not 0 <= ref.index < len(items):
        raise ItemNotFound(course.id, ref)

    if ref.name is not None:
        want = ref.name.strip().lower()
        if items[ref.index].name.strip().lower() != want:
            raise ItemNotFound(course.id, ref)

    return ref.index


def _replace_latest(course: Course, items: List[SupplyItem], now: Optional[datetime]) -> Course:
    latest = _require_latest(course)
    updated = latest.model_copy(update={"items": items, "updated_at": _now(now)})
    versions = list(course.versions[:-1]) + [updated]
    return course.model_copy(update={"versions": versions})


def set_item_approval(
    course: Course,
    ref: ItemRef,
    approved: bool,
    now: Optional[datetime] = None,
) -> Course:
    """
    Toggle one item of the latest version and recompute the review state.
    Setting a flag to the value it already has returns the course unchanged.
    """
    idx = find_item_index(course, ref)
    latest = _require_latest(course)
    item = latest.items[idx]

    if item.approved == approved:
        return recompute_review_state(course, now=now)

    ts = _now(now)
    changed = item.model_copy(update={"approved": approved, "approved_at": ts if approved else None})
    items = list(latest.items)
    items[idx] = changed
    return recompute_review_state(_replace_latest(course, items, ts), now=ts)


def approve_all(course: Course, now: Optional[datetime] = None) -> Course:
    """Approve every item of the latest version, keeping existing approval stamps."""
    latest = _require_latest(course)
    if not latest.items:
        raise EmptyLedger(course.id, "latest version has no items to approve")
    if all(i.approved for i in latest.items):
        return recompute_review_state(course, now=now)

    ts = _now(now)
    items = [
        i if i.approved else i.model_copy(update={"approved": True, "approved_at": ts})
        for i in latest.items
    ]
    return recompute_review_state(_replace_latest(course, items, ts), now=ts)


def duplicate_latest(
    course: Course,
    copy_pdf_ref: bool = False,
    now: Optional[datetime] = None,
) -> List[MaterialsVersion]:
    """
    Versions for a duplicated course: one copy of the latest version with a
    new id and timestamps, item ids cleared and approvals reset. Empty when
    the source has no versions.
    """
    latest = course.latest_version
    if latest is None:
        return []
    ts = _now(now)
    items = [i.model_copy(update={"id": None, "approved": False, "approved_at": None}) for i in latest.items]
    return [
        MaterialsVersion(
            id=new_version_id(),
            uploaded_at=ts,
            updated_at=ts,
            source_file_name=latest.source_file_name,
            source_pdf_ref=latest.source_pdf_ref if copy_pdf_ref else None,
            items=items,
            ai_processed=latest.ai_processed,
        )
    ]


def approval_summary(course: Course) -> Dict[str, object]:
    latest = course.latest_version
    items = latest.items if latest else []
    approved = sum(1 for i in items if i.approved)
    return {
        "versionId": latest.id if latest else None,
        "totalItems": len(items),
        "approvedItems": approved,
        "allApproved": bool(items) and approved == len(items),
        "reviewState": course.review_state.value,
        "reviewedAt": course.reviewed_at,
    }
