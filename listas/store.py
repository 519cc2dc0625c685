# listas/store.py
"""
Course document store.

Rows in `cursos` hold the catalog fields plus the materials versions as a
JSON document. Reads validate that document into typed MaterialsVersion
lists (legacy Spanish field names included); writes compare-and-swap on the
`revision` column so two racing approvals cannot silently overwrite each
other.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import create_engine, select, text, update
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func
from pydantic import TypeAdapter

from reconciliation.contracts import (
    Coordinates,
    Course,
    CourseRecord,
    Level,
    MaterialsVersion,
    ReviewState,
    SupplyItem,
)
from reconciliation.ledger import recompute_review_state
from reconciliation.text_normalizer import normalize

from .config import STORE_RETRY_ATTEMPTS, require_database_url
from .models import Base, Curso

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_DATETIME = TypeAdapter(datetime)


class CourseNotFound(Exception):
    def __init__(self, course_id: str):
        self.course_id = course_id
        super().__init__(f"Course not found: {course_id}")


class VersionConflict(Exception):
    """Another writer updated the course since it was read. Re-read and retry."""

    def __init__(self, course_id: str, expected_revision: int):
        self.course_id = course_id
        self.expected_revision = expected_revision
        super().__init__(f"Course {course_id} changed since revision {expected_revision}")


def make_session_factory(database_url: Optional[str] = None) -> sessionmaker:
    url = database_url or require_database_url()
    kwargs: Dict[str, Any] = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # one shared in-memory database for every session
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


# ----------------------------
# Store boundary coercion
# ----------------------------
def _first(d: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if d.get(k) is not None:
            return d[k]
    return default


def coerce_level(value: Any) -> Level:
    if isinstance(value, Level):
        return value
    s = normalize(str(value or ""))
    if "basic" in s:
        return Level.BASIC
    if "medi" in s or "secund" in s or "second" in s:
        return Level.SECONDARY
    raise ValueError(f"Unknown course level: {value!r}")


def _clamp_pct(value: Any) -> float:
    return min(max(float(value or 0), 0.0), 100.0)


def coerce_coordinates(raw: Optional[Dict[str, Any]]) -> Optional[Coordinates]:
    if not raw:
        return None
    page = _first(raw, "page", "pagina", default=1)
    return Coordinates(
        page=max(int(page), 1),
        x=_clamp_pct(_first(raw, "x", "posicion_x")),
        y=_clamp_pct(_first(raw, "y", "posicion_y")),
        width=_first(raw, "width", "ancho"),
        height=_first(raw, "height", "alto"),
        region=raw.get("region"),
    )


def coerce_item(raw: Dict[str, Any]) -> SupplyItem:
    quantity = _first(raw, "quantity", "cantidad", default=1)
    try:
        quantity = max(int(quantity), 1)
    except (TypeError, ValueError):
        quantity = 1
    price = _first(raw, "price", "precio", default=0)
    try:
        price = max(float(price), 0.0)
    except (TypeError, ValueError):
        price = 0.0

    item_id = raw.get("id")
    return SupplyItem(
        id=str(item_id) if item_id is not None else None,
        name=str(_first(raw, "name", "nombre", default="")),
        quantity=quantity,
        isbn=raw.get("isbn") or None,
        brand=_first(raw, "brand", "marca"),
        to_purchase=bool(_first(raw, "to_purchase", "comprar", default=True)),
        price=price,
        subject=_first(raw, "subject", "asignatura"),
        description=_first(raw, "description", "descripcion"),
        coordinates=coerce_coordinates(_first(raw, "coordinates", "coordenadas")),
        approved=_first(raw, "approved", "aprobado", default=False) is True,
        approved_at=as_utc(_first(raw, "approved_at", "fecha_aprobacion")),
    )


def as_utc(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp; values without an offset are taken as UTC."""
    if value is None or value == "":
        return None
    dt = _DATETIME.validate_python(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def coerce_version(raw: Dict[str, Any], position: int) -> MaterialsVersion:
    uploaded = as_utc(_first(raw, "uploaded_at", "fecha_subida"))
    updated = as_utc(_first(raw, "updated_at", "fecha_actualizacion")) or uploaded
    pdf_ref = _first(raw, "source_pdf_ref", "pdf_id")
    return MaterialsVersion(
        id=str(_first(raw, "id", default=f"version-legacy-{position}")),
        uploaded_at=uploaded or updated or _EPOCH,
        updated_at=updated or _EPOCH,
        source_file_name=str(_first(raw, "source_file_name", "nombre_archivo", default="")),
        source_pdf_ref=str(pdf_ref) if pdf_ref is not None else None,
        items=[coerce_item(m) for m in (_first(raw, "items", "materiales", default=[]) or [])],
        ai_processed=bool(_first(raw, "ai_processed", "procesado_con_ia", default=False)),
    )


def coerce_versions(raw_versions: Optional[List[Dict[str, Any]]]) -> List[MaterialsVersion]:
    """
    Validate a stored versions document. Versions are put in update-time
    order once here (stable, so ties keep stored order); from then on
    versions[-1] is the latest.
    """
    versions = [coerce_version(v, i) for i, v in enumerate(raw_versions or [])]
    return sorted(versions, key=lambda v: v.updated_at)


def record_from_row(row: Curso) -> CourseRecord:
    return CourseRecord(
        id=row.id,
        level=coerce_level(row.level),
        grade=int(row.grade),
        section=row.section or None,
        year=row.year,
        name=row.name,
        school_id=row.school_id,
    )


def course_from_row(row: Curso) -> Course:
    """Rebuild the aggregate. The review state is derived again from the
    latest version, so documents written by older clients load consistently."""
    course = Course(
        record=record_from_row(row),
        versions=coerce_versions(row.versions),
        review_state=ReviewState(row.review_state or ReviewState.DRAFT.value),
        reviewed_at=as_utc(row.reviewed_at),
        revision=row.revision or 0,
    )
    return recompute_review_state(course)


def dump_versions(versions: List[MaterialsVersion]) -> List[Dict[str, Any]]:
    return [v.model_dump(mode="json") for v in versions]


# ----------------------------
# Store
# ----------------------------
class CourseStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: Optional[str] = None, create_tables: bool = False) -> "CourseStore":
        factory = make_session_factory(database_url)
        if create_tables:
            Base.metadata.create_all(factory.kw["bind"])
        return cls(factory)

    def _session(self) -> Session:
        return self._session_factory()

    def ping(self) -> None:
        with self._session() as db:
            db.execute(text("SELECT 1"))

    def get(self, course_id: str) -> Course:
        with self._session() as db:
            row = db.get(Curso, course_id)
            if row is None:
                raise CourseNotFound(course_id)
            return course_from_row(row)

    def find(self, filter: Optional[Dict[str, Any]] = None) -> List[CourseRecord]:
        filter = filter or {}
        stmt = select(Curso).order_by(Curso.created_at.asc(), Curso.id.asc())
        if filter.get("school_id") is not None:
            stmt = stmt.where(Curso.school_id == str(filter["school_id"]))
        if filter.get("level") is not None:
            stmt = stmt.where(Curso.level == coerce_level(filter["level"]).value)
        if filter.get("grade") is not None:
            stmt = stmt.where(Curso.grade == int(filter["grade"]))
        if filter.get("year") is not None:
            stmt = stmt.where(Curso.year == int(filter["year"]))
        with self._session() as db:
            return [record_from_row(r) for r in db.execute(stmt).scalars().all()]

    def create(self, data: Dict[str, Any], versions: Optional[List[MaterialsVersion]] = None) -> CourseRecord:
        row = Curso(
            school_id=str(data["school_id"]) if data.get("school_id") is not None else None,
            name=data.get("name"),
            level=coerce_level(data["level"]).value,
            grade=int(data["grade"]),
            section=(data.get("section") or None),
            year=data.get("year"),
            review_state=ReviewState.DRAFT.value,
            versions=dump_versions(versions or []),
            revision=0,
        )
        if data.get("id"):
            row.id = str(data["id"])
        with self._session() as db:
            db.add(row)
            db.commit()
            db.refresh(row)
            return record_from_row(row)

    def update(self, course_id: str, patch: Dict[str, Any], expected_revision: int) -> int:
        """
        Apply `patch` only if the stored revision still equals
        `expected_revision`. Returns the new revision.
        """
        with self._session() as db:
            res = db.execute(
                update(Curso)
                .where(Curso.id == course_id, Curso.revision == expected_revision)
                .values(**patch, revision=Curso.revision + 1, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 0:
                db.rollback()
                if db.get(Curso, course_id) is None:
                    raise CourseNotFound(course_id)
                raise VersionConflict(course_id, expected_revision)
            db.commit()
        return expected_revision + 1

    def save(self, course: Course) -> Course:
        """Persist ledger state of an aggregate read at `course.revision`."""
        new_rev = self.update(
            course.id,
            {
                "versions": dump_versions(course.versions),
                "review_state": course.review_state.value,
                "reviewed_at": course.reviewed_at,
            },
            expected_revision=course.revision,
        )
        return course.model_copy(update={"revision": new_rev})

    def update_with_retry(
        self,
        course_id: str,
        mutate: Callable[[Course], Course],
        attempts: int = STORE_RETRY_ATTEMPTS,
    ) -> Course:
        """
        Read, apply a pure mutation, write. On a concurrent write the whole
        cycle is repeated with a fresh read; the last conflict propagates.
        """
        for attempt in range(1, attempts + 1):
            current = self.get(course_id)
            changed = mutate(current)
            if changed == current:
                return current
            try:
                return self.save(changed)
            except VersionConflict:
                if attempt == attempts:
                    raise
        raise VersionConflict(course_id, -1)
