# listas/extraction/pipeline.py
# orchestrates: filename -> course, PDF -> items + coordinates -> new version, writes manifest
from __future__ import annotations

import json
import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from reconciliation.contracts import (
    CourseDescriptor,
    CourseRecord,
    MatchResult,
    MatchStatus,
    MaterialsVersion,
    PageText,
    RawItem,
    SupplyItem,
)
from reconciliation.course_inferencer import describe, infer
from reconciliation.course_matcher import best_candidate, classify
from reconciliation.errors import InferenceFailed, LocatorMiss, NoConfidentMatch
from reconciliation.ledger import append_version, new_version
from reconciliation.pdf_locator import locate

from ..config import MANIFEST_DIR, MATCH_AUTO_APPLY_SCORE, MATCH_MIN_SCORE
from ..store import CourseNotFound, CourseStore
from ..workflow_logger import log_event
from .item_extractor import extract_items, to_supply_item
from .pdf_text import looks_like_image_only, read_pdf_text_layer

Extractor = Callable[[bytes, str], Tuple[List[RawItem], List[str]]]
TextReader = Callable[[bytes], List[PageText]]


def _log(message: str) -> None:
    print(f"[importacion] {message}")


def _now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _sha256_file(path: str) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


# ----------------------------
# Course resolution
# ----------------------------
def resolve_course(filename: str, catalog: Sequence[CourseRecord]) -> Tuple[CourseDescriptor, MatchResult]:
    """
    Infer the course from `filename` and match it against `catalog`.

    Raises:
      InferenceFailed   - no level/grade recognizable in the filename
      NoConfidentMatch  - nothing in the catalog reaches MATCH_MIN_SCORE
    """
    descriptor = infer(filename)
    if descriptor is None:
        raise InferenceFailed(filename)

    best = best_candidate(descriptor, catalog)
    if best is None or best.score < MATCH_MIN_SCORE:
        raise NoConfidentMatch(filename, best.score if best else None)
    return descriptor, best


def assign_pdfs(filenames: Sequence[str], catalog: Sequence[CourseRecord]) -> Dict[str, Any]:
    """
    Batch assignment of PDFs to catalog courses by filename. Failures are
    reported per file as not_found; the batch never aborts.
    """
    results: List[Dict[str, Any]] = []
    for filename in filenames:
        entry: Dict[str, Any] = {
            "filename": filename,
            "descriptor": None,
            "record": None,
            "score": 0,
            "status": MatchStatus.NOT_FOUND.value,
            "reason": None,
        }
        try:
            descriptor, best = resolve_course(filename, catalog)
            entry["descriptor"] = descriptor
            entry["record"] = best.record
            entry["score"] = best.score
            entry["status"] = classify(best, MATCH_MIN_SCORE, MATCH_AUTO_APPLY_SCORE).value
        except NoConfidentMatch as e:
            entry["descriptor"] = infer(filename)
            entry["reason"] = str(e)
        except InferenceFailed as e:
            entry["reason"] = str(e)
        results.append(entry)

    summary = {
        "total": len(results),
        "matched": sum(1 for r in results if r["status"] == MatchStatus.MATCHED.value),
        "ambiguous": sum(1 for r in results if r["status"] == MatchStatus.AMBIGUOUS.value),
        "not_found": sum(1 for r in results if r["status"] == MatchStatus.NOT_FOUND.value),
    }
    _log(f"Assigned {summary['total']} files: {summary}")
    return {"results": results, "summary": summary}


# ----------------------------
# Items + coordinates
# ----------------------------
def build_items(raw_items: List[RawItem], page_texts: List[PageText]) -> Tuple[List[SupplyItem], List[str]]:
    """Supply items with coordinates where the text layer allows it."""
    items: List[SupplyItem] = []
    warnings: List[str] = []
    for raw in raw_items:
        coords = locate(page_texts, raw.nombre)
        if coords is None:
            warnings.append(str(LocatorMiss(raw.nombre)))
        items.append(to_supply_item(raw, coords))
    return items, warnings


def build_version(
    filename: str,
    pdf_bytes: bytes,
    extractor: Extractor = extract_items,
    text_reader: TextReader = read_pdf_text_layer,
    pdf_ref: Optional[str] = None,
) -> Tuple[MaterialsVersion, List[str]]:
    raw_items, warnings = extractor(pdf_bytes, filename)
    page_texts = text_reader(pdf_bytes)
    if looks_like_image_only(page_texts):
        warnings.append(f"{filename}: PDF has no usable text layer; items stored without coordinates.")

    items, misses = build_items(raw_items, page_texts)
    warnings.extend(misses)
    version = new_version(
        source_file_name=filename,
        items=items,
        source_pdf_ref=pdf_ref,
        ai_processed=True,
    )
    return version, warnings


def _create_course(store: CourseStore, school_id: Optional[str], descriptor: CourseDescriptor) -> CourseRecord:
    name = f"{descriptor.grade}° {descriptor.level.value}"
    if descriptor.section:
        name += f" {descriptor.section}"
    return store.create(
        {
            "school_id": school_id,
            "name": name,
            "level": descriptor.level,
            "grade": descriptor.grade,
            "section": descriptor.section,
            "year": descriptor.year,
        }
    )


# ----------------------------
# Public API
# ----------------------------
def import_pdfs(
    store: CourseStore,
    files: Sequence[Tuple[str, bytes]],
    school_id: Optional[str] = None,
    assignments: Optional[Dict[str, str]] = None,
    accept_ambiguous: bool = False,
    create_missing: bool = True,
    extractor: Extractor = extract_items,
    text_reader: TextReader = read_pdf_text_layer,
    output_dir: Optional[str] = MANIFEST_DIR,
) -> Dict[str, Any]:
    """
    Bulk import of supply-list PDFs for one school.

    Per file: resolve the course (explicit `assignments` first, then filename
    inference + matching), extract items, locate them in the PDF and append a
    new materials version. Files that cannot be assigned, or whose
    extraction or write fails, are reported and skipped; the batch carries on.

    Returns the run manifest (also written to `output_dir` when given).
    """
    assignments = assignments or {}
    catalog = store.find({"school_id": school_id} if school_id is not None else {})

    manifest: Dict[str, Any] = {
        "school_id": school_id,
        "started_at": _now_utc_iso(),
        "documents": [],
        "warnings": [],
    }

    for filename, pdf_bytes in files:
        doc: Dict[str, Any] = {
            "filename": filename,
            "sha256": _sha256_bytes(pdf_bytes),
            "course_id": None,
            "score": None,
            "status": MatchStatus.NOT_FOUND.value,
            "created_course": False,
            "items_written": 0,
            "items_located": 0,
        }
        _log(f"Processing {filename}")

        record: Optional[CourseRecord] = None
        if filename in assignments:
            try:
                record = store.get(assignments[filename]).record
                doc["status"] = "assigned"
            except CourseNotFound as e:
                manifest["warnings"].append(f"{filename}: {e}")
        else:
            try:
                descriptor, best = resolve_course(filename, catalog)
                doc["score"] = best.score
                doc["status"] = classify(best, MATCH_MIN_SCORE, MATCH_AUTO_APPLY_SCORE).value
                doc["descriptor"] = describe(descriptor)
                if doc["status"] == MatchStatus.MATCHED.value or accept_ambiguous:
                    record = best.record
                else:
                    manifest["warnings"].append(
                        f"{filename}: ambiguous match (score {best.score}) with course {best.record.id}; needs confirmation."
                    )
            except NoConfidentMatch as e:
                descriptor = infer(filename)
                doc["descriptor"] = describe(descriptor) if descriptor else None
                if create_missing and descriptor is not None:
                    record = _create_course(store, school_id, descriptor)
                    catalog = list(catalog) + [record]
                    doc["created_course"] = True
                    log_event(
                        course_id=record.id,
                        status="Draft",
                        actor="system",
                        event="CourseCreated",
                        extra={"filename": filename, "descriptor": doc["descriptor"]},
                    )
                else:
                    manifest["warnings"].append(f"{filename}: {e}")
            except InferenceFailed as e:
                manifest["warnings"].append(f"{filename}: {e}; assign the course manually.")

        if record is None:
            manifest["documents"].append(doc)
            continue

        try:
            version, warnings = build_version(
                filename,
                pdf_bytes,
                extractor=extractor,
                text_reader=text_reader,
                pdf_ref=doc["sha256"],
            )
            course = store.update_with_retry(record.id, lambda c: append_version(c, version))
        except Exception as e:
            # recorded per file; later files still run
            doc["status"] = "error"
            doc["error"] = f"{type(e).__name__}: {e}"
            manifest["warnings"].append(f"{filename}: import failed ({doc['error']}); nothing written.")
            manifest["documents"].append(doc)
            log_event(
                course_id=record.id,
                status="error",
                actor="system",
                event="ImportFailed",
                extra={"filename": filename, "error": doc["error"]},
            )
            continue
        manifest["warnings"].extend(warnings)

        doc["course_id"] = record.id
        doc["version_id"] = version.id
        doc["items_written"] = len(version.items)
        doc["items_located"] = sum(1 for i in version.items if i.coordinates is not None)
        manifest["documents"].append(doc)

        log_event(
            course_id=record.id,
            status=course.review_state.value,
            actor="system",
            event="VersionAppended",
            extra={
                "filename": filename,
                "version_id": version.id,
                "items": doc["items_written"],
                "located": doc["items_located"],
                "match_status": doc["status"],
            },
        )

    manifest["finished_at"] = _now_utc_iso()

    if output_dir:
        Path(output_dir).mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        manifest_path = str(Path(output_dir) / f"import_manifest_{school_id or 'all'}_{stamp}.json")
        with open(manifest_path, "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=2, ensure_ascii=False)
        manifest["manifest_uri"] = manifest_path
        manifest["manifest_sha256"] = _sha256_file(manifest_path)

    applied = sum(1 for d in manifest["documents"] if d["course_id"])
    _log(f"Import finished: {applied}/{len(files)} files applied, {len(manifest['warnings'])} warnings")
    return manifest
