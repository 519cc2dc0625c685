from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

import pytest

from listas import workflow_logger
from listas.store import CourseStore
from reconciliation.contracts import (
    Course,
    CourseRecord,
    Level,
    MaterialsVersion,
    PageText,
    RawItem,
    SupplyItem,
    TextRun,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def workflow_log_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("WORKFLOW_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr(workflow_logger, "_LOG_PATH", None)
    return tmp_path / "logs"


@pytest.fixture
def store() -> CourseStore:
    return CourseStore.from_url("sqlite://", create_tables=True)


def make_item(name: str, approved: bool = False, item_id: Optional[str] = None) -> SupplyItem:
    return SupplyItem(
        id=item_id,
        name=name,
        quantity=1,
        approved=approved,
        approved_at=T0 if approved else None,
    )


def make_version(names: List[str], version_id: str = "version-1", approved: bool = False) -> MaterialsVersion:
    return MaterialsVersion(
        id=version_id,
        uploaded_at=T0,
        updated_at=T0,
        source_file_name="lista.pdf",
        items=[make_item(n, approved=approved) for n in names],
    )


def make_course(versions: Optional[List[MaterialsVersion]] = None, course_id: str = "curso-1") -> Course:
    return Course(
        record=CourseRecord(id=course_id, level=Level.BASIC, grade=3, section="B", year=2026),
        versions=versions or [],
    )


def make_page(lines, page_number: int = 1, width: float = 600.0, height: float = 800.0) -> PageText:
    """`lines` is a list of (y, [(x, text), ...]) in PDF space."""
    runs = []
    for y, words in lines:
        for x, text in words:
            runs.append(TextRun(text=text, x=x, y=y, width=len(text) * 5.0, height=10.0))
    return PageText(page_number=page_number, page_width=width, page_height=height, text_runs=runs)


def fake_extractor(pdf_bytes, filename):
    return [RawItem(nombre="Cuaderno universitario", cantidad="2"), RawItem(nombre="Plasticina")], []


def fake_text_reader(pdf_bytes):
    lines = [(600.0, [(50.0, "2"), (60.0, "Cuadernos"), (120.0, "universitarios"), (200.0, "100"), (220.0, "hojas")])]
    lines += [(500.0 - i * 20, [(50.0, f"Linea {i}")]) for i in range(5)]
    return [make_page(lines)]
