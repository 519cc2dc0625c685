from datetime import timedelta

import pytest

from reconciliation.contracts import ItemRef, ReviewState
from reconciliation.errors import EmptyLedger, ItemNotFound
from reconciliation.ledger import (
    append_version,
    approval_summary,
    approve_all,
    duplicate_latest,
    find_item_index,
    new_version,
    recompute_review_state,
    set_item_approval,
)

from conftest import T0, make_course, make_item, make_version

T1 = T0 + timedelta(hours=1)


def test_aggregate_invariant_follows_latest_items():
    course = make_course([make_version(["Lápiz", "Goma", "Regla"])])

    course = set_item_approval(course, ItemRef(index=0), True, now=T1)
    course = set_item_approval(course, ItemRef(index=1), True, now=T1)
    assert course.review_state == ReviewState.DRAFT
    assert course.reviewed_at is None

    course = set_item_approval(course, ItemRef(index=2), True, now=T1)
    assert course.review_state == ReviewState.REVIEWED
    assert course.reviewed_at == T1

    course = set_item_approval(course, ItemRef(index=1), False, now=T1)
    assert course.review_state == ReviewState.DRAFT
    assert course.reviewed_at is None
    assert course.latest_version.items[1].approved_at is None


def test_set_item_approval_is_idempotent():
    course = make_course([make_version(["Lápiz", "Goma"])])
    once = set_item_approval(course, ItemRef(index=0), True, now=T1)
    twice = set_item_approval(once, ItemRef(index=0), True, now=T1 + timedelta(minutes=5))
    assert twice == once
    assert twice.latest_version.items[0].approved_at == T1


def test_set_item_approval_does_not_touch_input():
    course = make_course([make_version(["Lápiz"])])
    set_item_approval(course, ItemRef(index=0), True, now=T1)
    assert course.latest_version.items[0].approved is False
    assert course.review_state == ReviewState.DRAFT


def test_item_lookup_by_id_wins_over_index():
    version = make_version(["Lápiz", "Goma"])
    version = version.model_copy(
        update={"items": [make_item("Lápiz", item_id="a1"), make_item("Goma", item_id="b2")]}
    )
    course = make_course([version])
    assert find_item_index(course, ItemRef(id="b2", index=0)) == 1
    with pytest.raises(ItemNotFound):
        find_item_index(course, ItemRef(id="zz", index=0))


def test_item_lookup_by_name_and_index():
    course = make_course([make_version(["Lápiz", "Goma"])])
    assert find_item_index(course, ItemRef(name=" goma ", index=1)) == 1
    with pytest.raises(ItemNotFound):
        find_item_index(course, ItemRef(name="Lápiz", index=1))
    with pytest.raises(ItemNotFound):
        set_item_approval(course, ItemRef(index=5), True)
    with pytest.raises(ItemNotFound):
        set_item_approval(course, ItemRef(), True)


def test_empty_ledger():
    course = make_course([])
    with pytest.raises(EmptyLedger):
        set_item_approval(course, ItemRef(index=0), True)
    with pytest.raises(EmptyLedger):
        approve_all(course)


def test_only_latest_version_is_mutated():
    v1 = make_version(["Lápiz"], version_id="version-1")
    v2 = make_version(["Lápiz"], version_id="version-2")
    course = make_course([v1, v2])
    course = set_item_approval(course, ItemRef(index=0), True, now=T1)
    assert course.versions[0] == v1
    assert course.versions[1].items[0].approved is True
    assert course.versions[1].updated_at == T1


def test_append_version_keeps_history():
    v1 = make_version(["Lápiz"], version_id="version-1")
    course = make_course([v1])
    v2 = make_version(["Goma", "Regla"], version_id="version-2")

    after = append_version(course, v2)
    assert len(after.versions) == 2
    assert after.versions[0] is v1
    assert after.versions[0] == course.versions[0]
    assert after.latest_version.id == "version-2"
    assert len(course.versions) == 1


def test_appending_unreviewed_version_resets_review():
    course = make_course([make_version(["Lápiz"], approved=True)])
    course = recompute_review_state(course, now=T0)
    assert course.review_state == ReviewState.REVIEWED

    after = append_version(course, make_version(["Goma"], version_id="version-2"))
    assert after.review_state == ReviewState.DRAFT
    assert after.reviewed_at is None


def test_appending_empty_version_resets_review():
    course = recompute_review_state(make_course([make_version(["Lápiz"], approved=True)]), now=T0)
    after = append_version(course, make_version([], version_id="version-2"))
    assert after.review_state == ReviewState.DRAFT


def test_recompute_review_state_is_idempotent():
    course = make_course([make_version(["Lápiz"], approved=True)])
    first = recompute_review_state(course, now=T0)
    second = recompute_review_state(first, now=T1)
    assert first == second
    assert second.reviewed_at == T0


def test_new_version_starts_unapproved():
    v = new_version("lista.pdf", [make_item("Lápiz", approved=True)], ai_processed=True, now=T0)
    assert v.id.startswith("version-")
    assert v.items[0].approved is False
    assert v.items[0].approved_at is None
    assert v.uploaded_at == v.updated_at == T0


def test_approve_all_keeps_existing_stamps():
    version = make_version(["Lápiz", "Goma"])
    version = version.model_copy(update={"items": [make_item("Lápiz", approved=True), make_item("Goma")]})
    course = approve_all(make_course([version]), now=T1)
    items = course.latest_version.items
    assert [i.approved for i in items] == [True, True]
    assert items[0].approved_at == T0
    assert items[1].approved_at == T1
    assert course.review_state == ReviewState.REVIEWED


def test_approve_all_on_empty_version():
    with pytest.raises(EmptyLedger):
        approve_all(make_course([make_version([])]))


def test_duplicate_latest_resets_approvals():
    version = make_version(["Lápiz"], approved=True).model_copy(update={"source_pdf_ref": "pdf-9"})
    version = version.model_copy(update={"items": [make_item("Lápiz", approved=True, item_id="a1")]})
    course = make_course([make_version(["Viejo"], version_id="version-0"), version])

    [copy] = duplicate_latest(course, now=T1)
    assert copy.id != version.id
    assert copy.uploaded_at == T1
    assert copy.source_pdf_ref is None
    assert [i.name for i in copy.items] == ["Lápiz"]
    assert copy.items[0].id is None
    assert copy.items[0].approved is False

    [with_pdf] = duplicate_latest(course, copy_pdf_ref=True)
    assert with_pdf.source_pdf_ref == "pdf-9"
    assert duplicate_latest(make_course([])) == []


def test_approval_summary():
    course = set_item_approval(make_course([make_version(["Lápiz", "Goma"])]), ItemRef(index=0), True)
    summary = approval_summary(course)
    assert summary["totalItems"] == 2
    assert summary["approvedItems"] == 1
    assert summary["allApproved"] is False
    assert summary["reviewState"] == "Draft"
