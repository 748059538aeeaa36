"""
Bulk Student Importer
=====================
One student per line: "John Brown", "John Brown, M, 10-9" or
"John Brown, Female, 10-9". Pasting a column from Excel works too.

The server links an existing student (same normalised name and grade)
instead of creating a duplicate.
"""
import re
import logging

from markbook.errors import ValidationError
from markbook.models import RosterRow
from markbook.services.paste_parser import split_lines

logger = logging.getLogger(__name__)

GENDER_ALIASES = {
    'm': 'Male',
    'male': 'Male',
    'f': 'Female',
    'female': 'Female',
}


def normalize_gender(value):
    """Return 'Male'/'Female' for a recognised token, else None."""
    if not value:
        return None
    return GENDER_ALIASES.get(value.strip().lower())


def normalize_name(name):
    """Case-fold and collapse whitespace, for duplicate matching."""
    return re.sub(r'\s+', ' ', name or '').strip().lower()


def parse_roster_line(line, default_grade=None, default_gender=None):
    tokens = [t.strip() for t in line.split(',')]
    name = re.sub(r'\s+', ' ', tokens[0]).strip()
    grade = None
    gender = None

    if len(tokens) > 1 and tokens[1]:
        gender = normalize_gender(tokens[1])
        if gender is None:
            grade = tokens[1]
    if len(tokens) > 2 and tokens[2]:
        grade = tokens[2]

    return RosterRow(
        raw_name=name,
        grade=grade or default_grade or None,
        gender=gender or normalize_gender(default_gender),
    )


def parse_roster_text(text, default_grade=None, default_gender=None):
    """Parse freeform roster text into one RosterRow per non-blank line."""
    return [
        parse_roster_line(line, default_grade, default_gender)
        for line in split_lines(text)
    ]


def import_roster(client, class_id, text, default_grade=None, default_gender=None):
    """Validate roster text locally, then submit it in one bulk request."""
    if not text or not text.strip():
        raise ValidationError("Please enter student names")
    lines = [line.strip() for line in split_lines(text)]
    rows = parse_roster_text(text, default_grade, default_gender)
    if not rows or not any(r.raw_name for r in rows):
        raise ValidationError("Please enter at least one student name")

    result = client.bulk_add_students(class_id, lines, default_grade, default_gender)
    logger.info("Bulk added %d lines to class %s: %s created, %s linked",
                len(lines), class_id, result.get('created'), result.get('linked'))
    return result


def add_existing_student(client, class_id, student_id):
    return client.add_student_to_class(class_id, student_id)


def create_and_add_student(client, class_id, first_name, last_name, grade, gender=None, parent_contact=None):
    """Create a student record and put it on the class roster."""
    if not first_name or not first_name.strip():
        raise ValidationError("First name is required")
    if not grade or not grade.strip():
        raise ValidationError("Grade is required")
    student = client.create_student(
        first_name.strip(),
        (last_name or '').strip(),
        grade.strip(),
        gender=normalize_gender(gender),
        parent_contact=parent_contact or None,
    )
    client.add_student_to_class(class_id, student.id)
    return student
