from __future__ import annotations

import hashlib
import os
import uuid
from typing import Any, Dict, List, Optional

from fastapi import (
    FastAPI,
    Depends,
    UploadFile,
    File,
    Form,
    HTTPException,
)

from listas import config
from listas.workflow_logger import log_event
from listas.schemas import (
    ApprovalIn,
    CourseOut,
    DuplicateIn,
    InferIn,
    InferOut,
    InferResultOut,
)
from listas.store import CourseNotFound, CourseStore, VersionConflict
from listas.extraction.item_extractor import extract_items
from listas.extraction.pdf_text import read_pdf_text_layer
from listas.extraction.pipeline import assign_pdfs, build_version, import_pdfs

from reconciliation.contracts import Course, ItemRef
from reconciliation.errors import EmptyLedger, ItemNotFound
from reconciliation.ledger import (
    append_version,
    approval_summary,
    approve_all,
    duplicate_latest,
    set_item_approval,
)


app = FastAPI(title="Supply List Reconciliation Backend")

_store: Optional[CourseStore] = None


def get_store() -> CourseStore:
    global _store
    if _store is None:
        _store = CourseStore.from_url(config.DATABASE_URL, create_tables=True)
    return _store


def get_extractor():
    return extract_items


def get_text_reader():
    return read_pdf_text_layer


def compute_sha256(data: bytes) -> str:
    h = hashlib.sha256()
    h.update(data)
    return h.hexdigest()


def save_upload(filename: str, raw: bytes) -> Dict[str, Any]:
    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    safe_name = f"{uuid.uuid4()}_{os.path.basename(filename)}"
    path = os.path.join(config.UPLOAD_DIR, safe_name)
    with open(path, "wb") as f:
        f.write(raw)
    return {
        "filename": filename,
        "sha256": compute_sha256(raw),
        "storage_uri": path,
        "size_bytes": len(raw),
    }


def course_to_out(c: Course) -> CourseOut:
    latest = c.latest_version
    return CourseOut(
        courseId=c.id,
        schoolId=c.record.school_id,
        name=c.record.name,
        level=c.record.level.value,
        grade=c.record.grade,
        section=c.record.section,
        year=c.record.year,
        reviewState=c.review_state.value,
        reviewedAt=c.reviewed_at,
        revision=c.revision,
        versionCount=len(c.versions),
        latestVersion=latest.model_dump(mode="json") if latest else None,
        approval=approval_summary(c),
    )


def _mutate(store: CourseStore, course_id: str, fn) -> Course:
    try:
        return store.update_with_retry(course_id, fn)
    except CourseNotFound:
        raise HTTPException(status_code=404, detail="Course not found")
    except ItemNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except EmptyLedger as e:
        raise HTTPException(status_code=409, detail=str(e))
    except VersionConflict as e:
        raise HTTPException(status_code=409, detail=f"{e}; reload and retry")


@app.get("/health/db")
def health_db(store: CourseStore = Depends(get_store)):
    store.ping()
    return {"ok": True}


@app.post("/api/cursos/infer", response_model=InferOut)
def infer_courses(body: InferIn, store: CourseStore = Depends(get_store)):
    catalog = store.find({"school_id": body.schoolId} if body.schoolId else {})
    batch = assign_pdfs(body.filenames, catalog)
    results = [
        InferResultOut(
            filename=r["filename"],
            descriptor=r["descriptor"].model_dump(mode="json") if r["descriptor"] else None,
            courseId=r["record"].id if r["record"] else None,
            score=r["score"],
            status=r["status"],
            reason=r["reason"],
        )
        for r in batch["results"]
    ]
    return InferOut(results=results, summary=batch["summary"])


@app.post("/api/cursos/import")
def import_courses(
    schoolId: Optional[str] = Form(None),
    acceptAmbiguous: bool = Form(False),
    files: List[UploadFile] = File(...),
    store: CourseStore = Depends(get_store),
    extractor=Depends(get_extractor),
    text_reader=Depends(get_text_reader),
):
    payload = [(f.filename, f.file.read()) for f in files]
    manifest = import_pdfs(
        store,
        payload,
        school_id=schoolId,
        accept_ambiguous=acceptAmbiguous,
        extractor=extractor,
        text_reader=text_reader,
        output_dir=config.MANIFEST_DIR,
    )
    return manifest


@app.get("/api/cursos/{courseId}", response_model=CourseOut)
def get_course(courseId: str, store: CourseStore = Depends(get_store)):
    try:
        return course_to_out(store.get(courseId))
    except CourseNotFound:
        raise HTTPException(status_code=404, detail="Course not found")


@app.post("/api/cursos/{courseId}/versions", response_model=CourseOut)
def upload_version(
    courseId: str,
    file: UploadFile = File(...),
    store: CourseStore = Depends(get_store),
    extractor=Depends(get_extractor),
    text_reader=Depends(get_text_reader),
):
    try:
        store.get(courseId)
    except CourseNotFound:
        raise HTTPException(status_code=404, detail="Course not found")

    raw = file.file.read()
    if not raw:
        raise HTTPException(status_code=422, detail="Empty upload")
    meta = save_upload(file.filename or "lista.pdf", raw)

    version, warnings = build_version(
        meta["filename"],
        raw,
        extractor=extractor,
        text_reader=text_reader,
        pdf_ref=meta["storage_uri"],
    )
    course = _mutate(store, courseId, lambda c: append_version(c, version))

    log_event(
        course_id=courseId,
        status=course.review_state.value,
        actor="reviewer",
        event="VersionUploaded",
        extra={"filename": meta["filename"], "version_id": version.id, "warnings": warnings},
    )
    return course_to_out(course)


@app.post("/api/cursos/{courseId}/approval", response_model=CourseOut)
def set_approval(courseId: str, body: ApprovalIn, store: CourseStore = Depends(get_store)):
    if body.itemId is None and body.itemIndex is None:
        raise HTTPException(status_code=422, detail="itemId or itemIndex is required")

    ref = ItemRef(id=body.itemId, name=body.itemName, index=body.itemIndex)
    course = _mutate(store, courseId, lambda c: set_item_approval(c, ref, body.approved))

    log_event(
        course_id=courseId,
        status=course.review_state.value,
        actor="reviewer",
        event="ItemApproval",
        extra={"item": ref.model_dump(), "approved": body.approved},
    )
    return course_to_out(course)


@app.post("/api/cursos/{courseId}/approve-all", response_model=CourseOut)
def approve_course(courseId: str, store: CourseStore = Depends(get_store)):
    course = _mutate(store, courseId, approve_all)

    log_event(
        course_id=courseId,
        status=course.review_state.value,
        actor="reviewer",
        event="ListApproved",
        extra=approval_summary(course),
    )
    return course_to_out(course)


@app.post("/api/cursos/{courseId}/duplicate", response_model=CourseOut)
def duplicate_course(courseId: str, body: DuplicateIn, store: CourseStore = Depends(get_store)):
    try:
        source = store.get(courseId)
    except CourseNotFound:
        raise HTTPException(status_code=404, detail="Course not found")

    versions = duplicate_latest(source, copy_pdf_ref=body.copyPdf) if body.copyMaterials else []
    rec = source.record
    created = store.create(
        {
            "school_id": rec.school_id,
            "name": body.name or rec.name,
            "level": rec.level,
            "grade": rec.grade,
            "section": body.section if body.section is not None else rec.section,
            "year": body.year if body.year is not None else rec.year,
        },
        versions=versions,
    )

    log_event(
        course_id=created.id,
        status="Draft",
        actor="reviewer",
        event="CourseDuplicated",
        extra={"source_course_id": courseId, "copied_versions": len(versions)},
    )
    return course_to_out(store.get(created.id))
