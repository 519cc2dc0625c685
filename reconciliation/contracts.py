from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Level(str, Enum):
    BASIC = "Basic"
    SECONDARY = "Secondary"


class ReviewState(str, Enum):
    DRAFT = "Draft"
    REVIEWED = "Reviewed"


class MatchStatus(str, Enum):
    MATCHED = "matched"
    AMBIGUOUS = "ambiguous"
    NOT_FOUND = "not_found"


class CourseDescriptor(BaseModel):
    """
    Course data inferred from a free-text label (usually a filename).
    Built fresh per label and never persisted as-is.
    """
    level: Level
    grade: int = Field(ge=1)
    section: Optional[str] = None
    year: Optional[int] = None
    confidence: int = Field(ge=0, le=100)
    method: str


class CourseRecord(BaseModel):
    id: str
    level: Level
    grade: int
    section: Optional[str] = None
    year: Optional[int] = None
    name: Optional[str] = None
    school_id: Optional[str] = None


class MatchResult(BaseModel):
    record: CourseRecord
    score: int


class Coordinates(BaseModel):
    """Page-relative percentages, y measured from the page top."""
    page: int = Field(ge=1)
    x: float = Field(ge=0, le=100)
    y: float = Field(ge=0, le=100)
    width: Optional[float] = None
    height: Optional[float] = None
    region: Optional[str] = None


class SupplyItem(BaseModel):
    id: Optional[str] = None
    name: str
    quantity: int = Field(default=1, ge=1)
    isbn: Optional[str] = None
    brand: Optional[str] = None
    to_purchase: bool = True
    price: float = Field(default=0, ge=0)
    subject: Optional[str] = None
    description: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    approved: bool = False
    approved_at: Optional[datetime] = None


class MaterialsVersion(BaseModel):
    id: str
    uploaded_at: datetime
    updated_at: datetime
    source_file_name: str
    source_pdf_ref: Optional[str] = None
    items: List[SupplyItem] = Field(default_factory=list)
    ai_processed: bool = False


class Course(BaseModel):
    """
    Aggregate root for one class. `versions` is append-only and
    versions[-1] is always the latest one.
    """
    model_config = ConfigDict(frozen=True)

    record: CourseRecord
    versions: List[MaterialsVersion] = Field(default_factory=list)
    review_state: ReviewState = ReviewState.DRAFT
    reviewed_at: Optional[datetime] = None
    revision: int = 0

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def latest_version(self) -> Optional[MaterialsVersion]:
        return self.versions[-1] if self.versions else None


class ItemRef(BaseModel):
    """
    Reference to an item of the latest version: by explicit id when present,
    otherwise by its (name, index) position.
    """
    id: Optional[str] = None
    name: Optional[str] = None
    index: Optional[int] = None


# ----------------------------
# PDF text layer
# ----------------------------
class TextRun(BaseModel):
    text: str
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0


class PageText(BaseModel):
    """One page of positioned text in PDF space (origin bottom-left)."""
    page_number: int
    page_width: float
    page_height: float
    text_runs: List[TextRun] = Field(default_factory=list)


# ----------------------------
# AI extractor output
# ----------------------------
SPANISH_QUANTITY_WORDS = {
    "un": 1, "una": 1, "uno": 1,
    "dos": 2,
    "tres": 3,
    "cuatro": 4,
    "cinco": 5,
    "seis": 6,
    "siete": 7,
    "ocho": 8,
    "nueve": 9,
    "diez": 10,
    "par": 2,
}


class RawItem(BaseModel):
    """
    Loosely-typed item as returned by the extraction service.
    Field names follow the service payload (Spanish).
    """
    cantidad: int = 1
    nombre: str = Field(min_length=1)
    isbn: Optional[str] = None
    marca: Optional[str] = None
    comprar: bool = True
    precio: float = 0
    asignatura: Optional[str] = None
    descripcion: Optional[str] = None

    @field_validator("cantidad", mode="before")
    @classmethod
    def _coerce_cantidad(cls, v):
        if v is None:
            return 1
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return int(v) if v >= 1 else 1
        s = str(v).lower().strip()
        # first integer token: "2 cuadernos de 100 hojas" -> 2
        m = re.search(r"\d+", s)
        if m:
            return max(int(m.group(0)), 1)
        for word, num in SPANISH_QUANTITY_WORDS.items():
            if re.search(rf"\b{word}\b", s):
                return num
        return 1

    @field_validator("isbn", mode="before")
    @classmethod
    def _clean_isbn(cls, v):
        # "ISBN: 978-84-376-0494-7" -> "9788437604947"
        if not v:
            return None
        cleaned = re.sub(r"[^\dXx]", "", str(v)).upper()
        return cleaned if len(cleaned) >= 10 else None

    @field_validator("precio", mode="before")
    @classmethod
    def _coerce_precio(cls, v):
        if v is None:
            return 0
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return max(float(v), 0.0)
        s = str(v).lower()
        if "gratis" in s or "sin costo" in s:
            return 0
        # Chilean pesos use '.' as thousands separator: "$5.000" -> 5000
        s = re.sub(r"[^\d.,]", "", s)
        if re.fullmatch(r"\d{1,3}(\.\d{3})+", s):
            s = s.replace(".", "")
        s = s.replace(",", ".")
        try:
            return float(s)
        except ValueError:
            return 0

    @field_validator("marca", "asignatura", "descripcion", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        return v or None

    @field_validator("comprar", mode="before")
    @classmethod
    def _default_comprar(cls, v):
        return True if v is None else v
