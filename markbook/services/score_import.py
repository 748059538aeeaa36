"""
Bulk score import: paste "name <delimiter> score" rows, preview, submit.

Rows are matched to students by name on the server; names that match no one
(or more than one student) come back as per-row conflicts while the rest
still commit.
"""
import logging
from typing import List

from pydantic import BaseModel

from markbook.errors import ValidationError
from markbook.models import ImportConflict, PastedScoreRow
from markbook.services.paste_parser import parse_rows

logger = logging.getLogger(__name__)


class PreviewRow(BaseModel):
    student_name: str
    score: float
    valid: bool


class ImportSummary(BaseModel):
    created: int = 0
    updated: int = 0
    conflicts: List[ImportConflict] = []
    skipped: int = 0    # lines the parser could not read
    rejected: int = 0   # parsed but outside [0, total_marks]

    @property
    def imported(self):
        return self.created + self.updated

    def message(self):
        text = f"{self.imported} rows imported, {self.skipped + self.rejected} skipped"
        if self.conflicts:
            text += f", {len(self.conflicts)} conflicts"
        return text


class BulkScoreImport:
    def __init__(self, client, assessment_id, total_marks):
        self.client = client
        self.assessment_id = assessment_id
        self.total_marks = total_marks
        self.preview_rows = None
        self.skipped = 0
        self.result = None

    def preview(self, text):
        """Parse pasted text and flag rows whose score is out of range."""
        if not text or not text.strip():
            raise ValidationError("Please paste student names and scores")
        parsed = parse_rows(text)
        self.skipped = parsed.skipped
        self.result = None
        self.preview_rows = [
            PreviewRow(student_name=r.student_name, score=r.score, valid=self._in_range(r.score))
            for r in parsed.rows
        ]
        return self.preview_rows

    def _in_range(self, score):
        return score >= 0 and (not self.total_marks or score <= self.total_marks)

    def submit(self):
        """Send the valid preview rows in one bulk-import call."""
        if not self.preview_rows:
            raise ValidationError("Please preview the data first")

        rows = [PastedScoreRow(student_name=r.student_name, score=r.score)
                for r in self.preview_rows if r.valid]
        rejected = len(self.preview_rows) - len(rows)
        if not rows:
            raise ValidationError(f"No scores within 0-{self.total_marks} to import")

        response = self.client.bulk_import_scores(self.assessment_id, rows)
        self.result = ImportSummary(
            created=response.created,
            updated=response.updated,
            conflicts=response.conflicts,
            skipped=self.skipped,
            rejected=rejected,
        )
        if response.conflicts:
            logger.info("Score import for assessment %s: %d conflicts",
                        self.assessment_id, len(response.conflicts))
        return self.result
