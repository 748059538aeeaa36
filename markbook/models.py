"""
Markbook Records
================
Structured records exchanged with the markbook API and produced by the
paste/roster parsers.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class Assessment(BaseModel):
    id: int
    title: str
    type: str  # Quiz, Homework, Project, Test, Exam
    total_marks: int = Field(gt=0)
    date_assigned: str
    date_due: Optional[str] = None
    class_id: Optional[int] = None


class Student(BaseModel):
    id: int
    first_name: str
    last_name: str = ""
    grade: str = ""
    gender: Optional[str] = None
    parent_contact: Optional[str] = None

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


class Score(BaseModel):
    id: Optional[int] = None  # None until persisted
    student_id: int
    assessment_id: int
    score: float
    comment: Optional[str] = None


class StudentScoreView(BaseModel):
    """One row of the students-with-scores view for an assessment."""
    student_id: int
    student_name: str
    score_id: Optional[int] = None
    score: Optional[float] = None
    comment: Optional[str] = None


class PastedScoreRow(BaseModel):
    student_name: str
    score: float


class ParseResult(BaseModel):
    rows: List[PastedScoreRow] = []
    skipped: int = 0


class PastedCell(BaseModel):
    """One positional line of a live-grid paste."""
    kind: str  # "value", "clear" or "invalid"
    raw: str = ""
    value: Optional[float] = None


class RosterRow(BaseModel):
    raw_name: str
    grade: Optional[str] = None
    gender: Optional[str] = None  # "Male" or "Female"

    @property
    def first_name(self):
        return self.raw_name.split(" ", 1)[0]

    @property
    def last_name(self):
        parts = self.raw_name.split(" ", 1)
        return parts[1] if len(parts) > 1 else ""


class ImportConflict(BaseModel):
    student_name: str
    error: str


class BulkImportResult(BaseModel):
    created: int = 0
    updated: int = 0
    conflicts: List[ImportConflict] = []
