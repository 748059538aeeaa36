"""
Markbook Store
==============
Classes, students, rosters, assessments and scores kept in one JSON file.

The whole document is rewritten on every change. With path=None the store
lives in memory only.
"""
import os
import json
import threading
import logging
from datetime import datetime

from markbook.errors import ConflictError, NotFoundError, ValidationError
from markbook.services.roster_import import normalize_gender, normalize_name, parse_roster_text

logger = logging.getLogger(__name__)


def _empty():
    return {
        "next_id": 1,
        "classes": [],
        "students": [],
        "enrollments": [],
        "assessments": [],
        "scores": [],
    }


def _full_name(student):
    return f"{student['first_name']} {student['last_name']}".strip()


class MarkbookStore:
    def __init__(self, path=None):
        self.path = path
        self._lock = threading.RLock()
        self.data = self._load()

    def _load(self):
        if self.path and os.path.exists(self.path):
            try:
                with open(self.path, 'r') as f:
                    return {**_empty(), **json.load(f)}
            except json.JSONDecodeError as e:
                logger.error("Corrupt markbook data file %s: %s", self.path, e)
                raise
        return _empty()

    def _save(self):
        if not self.path:
            return
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, 'w') as f:
            json.dump(self.data, f, indent=2)
        os.replace(tmp, self.path)

    def _next_id(self):
        new_id = self.data["next_id"]
        self.data["next_id"] += 1
        return new_id

    @staticmethod
    def _find(items, item_id, label):
        for item in items:
            if item["id"] == item_id:
                return item
        raise NotFoundError(f"{label} not found")

    # ── classes ────────────────────────────────────────────────

    def list_classes(self):
        with self._lock:
            return [dict(c) for c in self.data["classes"]]

    def create_class(self, name, grade=""):
        if not name or not name.strip():
            raise ValidationError("Class name is required")
        with self._lock:
            cls = {"id": self._next_id(), "name": name.strip(), "grade": grade or ""}
            self.data["classes"].append(cls)
            self._save()
            return dict(cls)

    def get_class(self, class_id):
        with self._lock:
            return dict(self._find(self.data["classes"], class_id, "Class"))

    # ── students & rosters ─────────────────────────────────────

    def create_student(self, first_name, last_name="", grade="", gender=None, parent_contact=None):
        if not first_name or not first_name.strip():
            raise ValidationError("First name is required")
        with self._lock:
            student = self._insert_student(first_name, last_name, grade, gender, parent_contact)
            self._save()
            return dict(student)

    def _insert_student(self, first_name, last_name, grade, gender=None, parent_contact=None):
        student = {
            "id": self._next_id(),
            "first_name": first_name.strip(),
            "last_name": (last_name or "").strip(),
            "grade": grade or "",
            "gender": normalize_gender(gender),
            "parent_contact": parent_contact or None,
        }
        self.data["students"].append(student)
        return student

    def get_student(self, student_id):
        with self._lock:
            return dict(self._find(self.data["students"], student_id, "Student"))

    def _roster_ids(self, class_id):
        return [sid for cid, sid in self.data["enrollments"] if cid == class_id]

    def class_students(self, class_id):
        with self._lock:
            self._find(self.data["classes"], class_id, "Class")
            ids = self._roster_ids(class_id)
            return [dict(s) for s in self.data["students"] if s["id"] in ids]

    def _enroll(self, class_id, student_id):
        if student_id in self._roster_ids(class_id):
            return False
        self.data["enrollments"].append([class_id, student_id])
        return True

    def add_to_class(self, class_id, student_id):
        with self._lock:
            self._find(self.data["classes"], class_id, "Class")
            self._find(self.data["students"], student_id, "Student")
            added = self._enroll(class_id, student_id)
            self._save()
            return added

    def remove_from_class(self, class_id, student_id):
        with self._lock:
            before = len(self.data["enrollments"])
            self.data["enrollments"] = [
                e for e in self.data["enrollments"] if e != [class_id, student_id]
            ]
            if len(self.data["enrollments"]) == before:
                raise NotFoundError("Student is not in this class")
            self._save()

    def find_matching_student(self, full_name, grade):
        """Existing student with the same normalised full name AND grade, if any."""
        key = normalize_name(full_name)
        for student in self.data["students"]:
            if normalize_name(_full_name(student)) == key and (student["grade"] or "") == (grade or ""):
                return student
        return None

    def bulk_add_students(self, class_id, lines, default_grade=None, default_gender=None):
        """Create or match each roster line, then link it to the class."""
        with self._lock:
            self._find(self.data["classes"], class_id, "Class")
            rows = parse_roster_text("\n".join(lines), default_grade, default_gender)
            created, linked, already = 0, 0, 0
            students = []
            for row in rows:
                if not row.raw_name:
                    continue
                student = self.find_matching_student(row.raw_name, row.grade)
                if student is None:
                    student = self._insert_student(row.first_name, row.last_name, row.grade or "", row.gender)
                    created += 1
                if self._enroll(class_id, student["id"]):
                    linked += 1
                else:
                    already += 1
                students.append(dict(student))
            self._save()
        logger.info("Class %s bulk add: %d created, %d linked, %d already enrolled",
                    class_id, created, linked, already)
        return {"created": created, "linked": linked, "already_enrolled": already, "students": students}

    # ── assessments ────────────────────────────────────────────

    def list_assessments(self, class_id=None):
        with self._lock:
            return [dict(a) for a in self.data["assessments"]
                    if class_id is None or a["class_id"] == class_id]

    def create_assessment(self, class_id, title, type, total_marks, date_assigned=None, date_due=None):
        if not title or not title.strip():
            raise ValidationError("Title is required")
        try:
            total_marks = int(total_marks)
        except (TypeError, ValueError):
            raise ValidationError("Total marks must be a whole number")
        if total_marks <= 0:
            raise ValidationError("Total marks must be positive")
        with self._lock:
            self._find(self.data["classes"], class_id, "Class")
            assessment = {
                "id": self._next_id(),
                "class_id": class_id,
                "title": title.strip(),
                "type": type,
                "total_marks": total_marks,
                "date_assigned": date_assigned or datetime.now().strftime("%Y-%m-%d"),
                "date_due": date_due,
            }
            self.data["assessments"].append(assessment)
            self._save()
            return dict(assessment)

    def get_assessment(self, assessment_id):
        with self._lock:
            return dict(self._find(self.data["assessments"], assessment_id, "Assessment"))

    # ── scores ─────────────────────────────────────────────────

    def _score_for(self, student_id, assessment_id):
        for score in self.data["scores"]:
            if score["student_id"] == student_id and score["assessment_id"] == assessment_id:
                return score
        return None

    @staticmethod
    def _check_range(value, assessment):
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise ValidationError("Score must be a number")
        if value < 0 or value > assessment["total_marks"]:
            raise ValidationError(f"Score must be between 0 and {assessment['total_marks']}")
        return value

    def students_with_scores(self, assessment_id, class_id):
        with self._lock:
            self._find(self.data["assessments"], assessment_id, "Assessment")
            ids = self._roster_ids(class_id)
            rows = []
            for student in self.data["students"]:
                if student["id"] not in ids:
                    continue
                score = self._score_for(student["id"], assessment_id)
                rows.append({
                    "student_id": student["id"],
                    "student_name": _full_name(student),
                    "score_id": score["id"] if score else None,
                    "score": score["score"] if score else None,
                    "comment": score["comment"] if score else None,
                })
            return rows

    def scores_by_assessment(self, assessment_id, class_id=None):
        with self._lock:
            ids = self._roster_ids(class_id) if class_id is not None else None
            return [dict(s) for s in self.data["scores"]
                    if s["assessment_id"] == assessment_id and (ids is None or s["student_id"] in ids)]

    def create_scores(self, assessment_id, rows):
        """Create-only: every row is checked before any is written."""
        with self._lock:
            assessment = self._find(self.data["assessments"], assessment_id, "Assessment")
            seen = set()
            checked = []
            for row in rows:
                student_id = row.get("student_id")
                self._find(self.data["students"], student_id, "Student")
                value = self._check_range(row.get("score"), assessment)
                if student_id in seen or self._score_for(student_id, assessment_id):
                    raise ConflictError(f"Score already exists for student {student_id}")
                seen.add(student_id)
                checked.append((student_id, value, row.get("comment") or None))

            created = []
            for student_id, value, comment in checked:
                score = {
                    "id": self._next_id(),
                    "student_id": student_id,
                    "assessment_id": assessment_id,
                    "score": value,
                    "comment": comment,
                }
                self.data["scores"].append(score)
                created.append(dict(score))
            self._save()
            return created

    def bulk_import_scores(self, assessment_id, rows):
        """Match rows to the class roster by name; report misses per row."""
        with self._lock:
            assessment = self._find(self.data["assessments"], assessment_id, "Assessment")
            ids = self._roster_ids(assessment["class_id"])
            roster = [s for s in self.data["students"] if s["id"] in ids]
            created, updated, conflicts = 0, 0, []

            for row in rows:
                name = (row.get("student_name") or "").strip()
                matches = [s for s in roster if normalize_name(_full_name(s)) == normalize_name(name)]
                if not matches:
                    conflicts.append({"student_name": name, "error": "Student not found in class"})
                    continue
                if len(matches) > 1:
                    conflicts.append({"student_name": name,
                                      "error": f"Ambiguous name ({len(matches)} students match)"})
                    continue
                try:
                    value = self._check_range(row.get("score"), assessment)
                except ValidationError as e:
                    conflicts.append({"student_name": name, "error": str(e)})
                    continue

                existing = self._score_for(matches[0]["id"], assessment_id)
                if existing:
                    existing["score"] = value
                    updated += 1
                else:
                    self.data["scores"].append({
                        "id": self._next_id(),
                        "student_id": matches[0]["id"],
                        "assessment_id": assessment_id,
                        "score": value,
                        "comment": None,
                    })
                    created += 1
            self._save()
        return {"created": created, "updated": updated, "conflicts": conflicts}

    def update_score(self, score_id, value, comment=None):
        with self._lock:
            score = self._find(self.data["scores"], score_id, "Score")
            assessment = self._find(self.data["assessments"], score["assessment_id"], "Assessment")
            score["score"] = self._check_range(value, assessment)
            score["comment"] = comment or None
            self._save()
            return dict(score)

    def delete_score(self, score_id):
        with self._lock:
            score = self._find(self.data["scores"], score_id, "Score")
            self.data["scores"].remove(score)
            self._save()
