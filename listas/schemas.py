from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class InferIn(BaseModel):
    filenames: List[str] = Field(min_length=1)
    schoolId: Optional[str] = None


class InferResultOut(BaseModel):
    filename: str
    descriptor: Optional[Dict[str, Any]] = None
    courseId: Optional[str] = None
    score: int = 0
    status: str
    reason: Optional[str] = None


class InferOut(BaseModel):
    results: List[InferResultOut]
    summary: Dict[str, int]


class ApprovalIn(BaseModel):
    approved: bool
    itemId: Optional[str] = None
    itemName: Optional[str] = None
    itemIndex: Optional[int] = Field(default=None, ge=0)


class DuplicateIn(BaseModel):
    section: Optional[str] = None
    year: Optional[int] = None
    name: Optional[str] = None
    copyMaterials: bool = True
    copyPdf: bool = False


class CourseOut(BaseModel):
    courseId: str
    schoolId: Optional[str]
    name: Optional[str]
    level: str
    grade: int
    section: Optional[str]
    year: Optional[int]
    reviewState: str
    reviewedAt: Optional[datetime]
    revision: int
    versionCount: int
    latestVersion: Optional[Dict[str, Any]] = None
    approval: Dict[str, Any]
