import json
from pathlib import Path

import httpx
import pytest

from listas.extraction.pipeline import assign_pdfs, build_version, import_pdfs, resolve_course
from reconciliation.contracts import ReviewState
from reconciliation.errors import InferenceFailed, NoConfidentMatch

from conftest import fake_extractor, fake_text_reader


@pytest.fixture
def catalog(store):
    exact = store.create({"school_id": "c1", "level": "Basic", "grade": 3, "section": "B", "year": 2026})
    loose = store.create({"school_id": "c1", "level": "Basic", "grade": 5})
    return store, exact, loose


def test_resolve_course(catalog):
    store, exact, _ = catalog
    descriptor, best = resolve_course("3° Básico B 2026.pdf", store.find())
    assert best.record.id == exact.id
    assert best.score == 100
    assert descriptor.grade == 3

    with pytest.raises(InferenceFailed):
        resolve_course("Algebra.pdf", store.find())
    with pytest.raises(NoConfidentMatch):
        resolve_course("2° Medio.pdf", store.find())


def test_assign_pdfs_reports_every_file(catalog):
    store, exact, loose = catalog
    batch = assign_pdfs(["3° Básico B 2026.pdf", "5 basico A.pdf", "Algebra.pdf", "2° Medio.pdf"], store.find())

    statuses = [(r["filename"], r["status"]) for r in batch["results"]]
    assert statuses == [
        ("3° Básico B 2026.pdf", "matched"),
        ("5 basico A.pdf", "ambiguous"),
        ("Algebra.pdf", "not_found"),
        ("2° Medio.pdf", "not_found"),
    ]
    assert batch["results"][1]["record"].id == loose.id
    assert batch["results"][3]["descriptor"].grade == 2
    assert batch["results"][2]["reason"]
    assert batch["summary"] == {"total": 4, "matched": 1, "ambiguous": 1, "not_found": 2}


def test_build_version_locates_items():
    version, warnings = build_version(
        "lista.pdf", b"%PDF", extractor=fake_extractor, text_reader=fake_text_reader, pdf_ref="ref-1"
    )
    assert version.ai_processed is True
    assert version.source_pdf_ref == "ref-1"
    assert [i.name for i in version.items] == ["Cuaderno universitario", "Plasticina"]
    assert version.items[0].quantity == 2
    assert version.items[0].coordinates.page == 1
    assert version.items[1].coordinates is None
    assert any("Plasticina" in w for w in warnings)
    assert all(not i.approved for i in version.items)


def test_build_version_warns_on_image_only_pdf():
    _, warnings = build_version("scan.pdf", b"%PDF", extractor=fake_extractor, text_reader=lambda b: [])
    assert any("no usable text layer" in w for w in warnings)


def test_import_pdfs(catalog, tmp_path):
    store, exact, loose = catalog
    files = [
        ("3° Básico B 2026.pdf", b"%PDF-a"),
        ("5 basico A.pdf", b"%PDF-b"),
        ("2° Medio A.pdf", b"%PDF-c"),
        ("Algebra.pdf", b"%PDF-d"),
    ]
    manifest = import_pdfs(
        store,
        files,
        school_id="c1",
        extractor=fake_extractor,
        text_reader=fake_text_reader,
        output_dir=str(tmp_path),
    )
    docs = {d["filename"]: d for d in manifest["documents"]}

    matched = docs["3° Básico B 2026.pdf"]
    assert matched["course_id"] == exact.id
    assert matched["items_written"] == 2
    assert matched["items_located"] == 1
    course = store.get(exact.id)
    assert len(course.versions) == 1
    assert course.review_state == ReviewState.DRAFT

    # 80..94 needs confirmation
    assert docs["5 basico A.pdf"]["status"] == "ambiguous"
    assert docs["5 basico A.pdf"]["course_id"] is None
    assert store.get(loose.id).versions == []

    created = docs["2° Medio A.pdf"]
    assert created["created_course"] is True
    new_course = store.get(created["course_id"])
    assert (new_course.record.grade, new_course.record.section, new_course.record.school_id) == (2, "A", "c1")
    assert len(new_course.versions) == 1

    assert docs["Algebra.pdf"]["course_id"] is None
    assert any("Algebra.pdf" in w for w in manifest["warnings"])

    path = Path(manifest["manifest_uri"])
    assert path.parent == tmp_path
    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert len(on_disk["documents"]) == 4


def test_import_pdfs_accept_ambiguous_and_assignments(catalog):
    store, exact, loose = catalog
    manifest = import_pdfs(
        store,
        [("5 basico A.pdf", b"%PDF-b"), ("sin nombre.pdf", b"%PDF-x"), ("otro.pdf", b"%PDF-y")],
        school_id="c1",
        assignments={"sin nombre.pdf": exact.id, "otro.pdf": "missing-id"},
        accept_ambiguous=True,
        extractor=fake_extractor,
        text_reader=fake_text_reader,
        output_dir=None,
    )
    docs = {d["filename"]: d for d in manifest["documents"]}
    assert docs["5 basico A.pdf"]["course_id"] == loose.id
    assert docs["sin nombre.pdf"]["status"] == "assigned"
    assert docs["sin nombre.pdf"]["course_id"] == exact.id
    assert docs["otro.pdf"]["course_id"] is None
    assert "manifest_uri" not in manifest


def test_import_appends_new_version_on_reupload(catalog):
    store, exact, _ = catalog
    for _ in range(2):
        import_pdfs(
            store,
            [("3° Básico B 2026.pdf", b"%PDF-a")],
            school_id="c1",
            extractor=fake_extractor,
            text_reader=fake_text_reader,
            output_dir=None,
        )
    versions = store.get(exact.id).versions
    assert len(versions) == 2
    assert versions[0].id != versions[1].id


def test_import_writes_workflow_log(catalog, workflow_log_dir):
    store, exact, _ = catalog
    import_pdfs(
        store,
        [("3° Básico B 2026.pdf", b"%PDF-a")],
        school_id="c1",
        extractor=fake_extractor,
        text_reader=fake_text_reader,
        output_dir=None,
    )
    [log_file] = list(workflow_log_dir.glob("run_*.log"))
    content = log_file.read_text(encoding="utf-8")
    assert f"course_id={exact.id}" in content
    assert "VersionAppended" in content


def test_import_continues_after_extractor_failure(catalog, tmp_path, workflow_log_dir):
    store, exact, loose = catalog

    def flaky_extractor(pdf_bytes, filename):
        if pdf_bytes == b"%PDF-a":
            raise httpx.ConnectError("extractor unreachable")
        return fake_extractor(pdf_bytes, filename)

    manifest = import_pdfs(
        store,
        [("3° Básico B 2026.pdf", b"%PDF-a"), ("5 basico A.pdf", b"%PDF-b")],
        school_id="c1",
        accept_ambiguous=True,
        extractor=flaky_extractor,
        text_reader=fake_text_reader,
        output_dir=str(tmp_path),
    )
    docs = {d["filename"]: d for d in manifest["documents"]}

    failed = docs["3° Básico B 2026.pdf"]
    assert failed["status"] == "error"
    assert "ConnectError" in failed["error"]
    assert failed["course_id"] is None
    assert store.get(exact.id).versions == []
    assert any("3° Básico B 2026.pdf" in w and "import failed" in w for w in manifest["warnings"])

    assert docs["5 basico A.pdf"]["course_id"] == loose.id
    assert len(store.get(loose.id).versions) == 1

    on_disk = json.loads(Path(manifest["manifest_uri"]).read_text(encoding="utf-8"))
    assert [d["status"] for d in on_disk["documents"]] == ["error", "ambiguous"]
    [log_file] = list(workflow_log_dir.glob("run_*.log"))
    assert "ImportFailed" in log_file.read_text(encoding="utf-8")
