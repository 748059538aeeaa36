"""
Score Grid Reconciler
=====================
Live-editable markbook grid of (student x assessment) cells.

Keystrokes only touch local state. A commit (blur) or a paste flushes local
state to the API with a create-or-update policy, then the authoritative score
set is invalidated and refetched.

A cell has at most one save in flight; a commit made meanwhile is deferred
and replayed when that save resolves, so a create is never issued twice for
one cell. Each cell also carries an edit sequence number, and a save
response only updates the cell's display state if no newer edit has been
made since the save was issued (last edit wins).

Usage:
    grid = ScoreGrid(client, class_id, students, assessments)
    grid.load()
    grid.on_cell_input(student_id, assessment_id, "18")
    grid.on_cell_commit(student_id, assessment_id)
"""
import threading
import logging
from typing import List

from pydantic import BaseModel

from markbook.errors import AuthError, ConflictError, MarkbookError, ValidationError
from markbook.services.paste_parser import parse_number, parse_paste_column
from markbook.services.query_cache import QueryCache

logger = logging.getLogger(__name__)

SYNCED = "synced"
DIRTY = "dirty"
SAVING = "saving"


def validate_score(raw, total_marks):
    """Return raw as a float in [0, total_marks], None for empty input.

    Raises ValidationError for anything else.
    """
    raw = '' if raw is None else str(raw).strip()
    if raw == '':
        return None
    value = parse_number(raw)
    if value is None:
        raise ValidationError(f"'{raw}' is not a valid score")
    if value < 0:
        raise ValidationError("Score cannot be negative")
    if total_marks and value > total_marks:
        raise ValidationError(f"Score cannot exceed {total_marks}")
    return value


def format_score(value):
    if value is None:
        return ''
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return str(value)


class Cell:
    """Local and last-known server state of one grid cell."""

    def __init__(self, student_id, assessment_id):
        self.student_id = student_id
        self.assessment_id = assessment_id
        self.value = ''
        self.comment = ''
        self.comment_dirty = False
        self.score_id = None
        self.server_value = None
        self.server_comment = None
        self.status = SYNCED
        self.error = None
        self.seq = 0
        self.applied_seq = 0
        self.inflight = 0
        self.create_in_flight = False
        self.deferred = False

    def differs_from_server(self):
        if self.value == '':
            return self.server_value is not None
        return parse_number(self.value) != self.server_value

    def __repr__(self):
        return (f"Cell(student={self.student_id}, assessment={self.assessment_id}, "
                f"value={self.value!r}, status={self.status}, score_id={self.score_id})")


class PasteOutcome(BaseModel):
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0    # non-numeric or out of range
    unchanged: int = 0
    ignored: int = 0    # lines past the last row
    errors: List[str] = []

    def message(self):
        saved = self.created + self.updated + self.deleted
        text = f"{saved} cells saved, {self.skipped} skipped"
        if self.errors:
            text += f", {len(self.errors)} failed"
        return text


class ScoreGrid:
    """Markbook grid for one class.

    Saves run inline unless an executor is given, in which case
    on_cell_commit() returns the future of the save. on_error receives a
    user-facing message for every failed remote call.
    """

    def __init__(self, client, class_id, students, assessments, executor=None, on_error=None, cache=None):
        self.client = client
        self.class_id = class_id
        self.students = list(students)
        self.assessments = {a.id: a for a in assessments}
        self.executor = executor
        self.on_error = on_error
        self.cache = cache or QueryCache()
        self._cells = {}
        self._lock = threading.Lock()
        self._closed = False

    # ── lifecycle ──────────────────────────────────────────────

    def load(self):
        self.refresh()

    def close(self):
        """Stop applying responses; anything still in flight is ignored."""
        self._closed = True

    @property
    def closed(self):
        return self._closed

    def set_rows(self, students):
        """Replace the row order (e.g. after filtering); cells are kept."""
        self.students = list(students)

    def refresh(self, assessment_id=None):
        """Invalidate and refetch the server score set, then merge it in."""
        if self._closed:
            return
        ids = [assessment_id] if assessment_id is not None else list(self.assessments)
        for aid in ids:
            key = ('students-with-scores', aid, self.class_id)
            self.cache.invalidate(key)
            rows = self.cache.get(key, lambda aid=aid: self.client.get_students_with_scores(aid, self.class_id))
            self._merge(aid, rows)

    def _merge(self, assessment_id, rows):
        with self._lock:
            if self._closed:
                return
            for row in rows:
                cell = self._cell(row.student_id, assessment_id)
                if cell.inflight:
                    continue
                cell.score_id = row.score_id
                cell.server_value = row.score
                cell.server_comment = row.comment
                if cell.status == SYNCED:
                    cell.value = format_score(row.score)
                if not cell.comment_dirty:
                    cell.comment = row.comment or ''

    # ── accessors ──────────────────────────────────────────────

    def _cell(self, student_id, assessment_id):
        key = (student_id, assessment_id)
        cell = self._cells.get(key)
        if cell is None:
            cell = self._cells[key] = Cell(student_id, assessment_id)
        return cell

    def cell(self, student_id, assessment_id):
        with self._lock:
            return self._cell(student_id, assessment_id)

    def _assessment(self, assessment_id):
        assessment = self.assessments.get(assessment_id)
        if assessment is None:
            raise ValidationError(f"Assessment {assessment_id} is not in this markbook")
        return assessment

    def percentage(self, student_id, assessment_id):
        """Display-only percentage of the cell's current value."""
        assessment = self._assessment(assessment_id)
        value = parse_number(self.cell(student_id, assessment_id).value)
        if value is None:
            return None
        return round(value / assessment.total_marks * 100, 1)

    def dirty_cells(self):
        with self._lock:
            return [c for c in self._cells.values() if c.status == DIRTY]

    # ── keystrokes & blur ──────────────────────────────────────

    def on_cell_input(self, student_id, assessment_id, raw_value):
        """Record a keystroke edit locally. No network call.

        Raises ValidationError and keeps the previous value if raw_value is
        not empty and not a score in [0, total_marks].
        """
        assessment = self._assessment(assessment_id)
        validate_score(raw_value, assessment.total_marks)
        with self._lock:
            cell = self._cell(student_id, assessment_id)
            cell.value = (raw_value or '').strip()
            cell.seq += 1
            cell.error = None
            if cell.inflight or cell.differs_from_server():
                cell.status = DIRTY
            else:
                cell.status = SYNCED

    def on_cell_commit(self, student_id, assessment_id):
        """Flush a cell on blur: update if a score exists, otherwise create it.

        An empty cell never deletes; it reverts to the server value.
        """
        assessment = self._assessment(assessment_id)
        with self._lock:
            if self._closed:
                return None
            cell = self._cell(student_id, assessment_id)
            if cell.status != DIRTY:
                return None
            if cell.value == '':
                cell.value = format_score(cell.server_value)
                cell.status = SAVING if cell.inflight else SYNCED
                return None
            value = validate_score(cell.value, assessment.total_marks)
            if cell.inflight:
                # One save per cell at a time; replayed when the current one resolves
                cell.deferred = True
                return None
            comment = cell.comment or None
            job = self._begin_save(cell)
        return self._dispatch(self._save_job, cell, job, value, comment)

    def on_comment_input(self, student_id, assessment_id, text):
        with self._lock:
            cell = self._cell(student_id, assessment_id)
            cell.comment = text or ''
            cell.comment_dirty = True

    def on_comment_commit(self, student_id, assessment_id):
        """Save a comment. Only cells with a persisted score can take one."""
        assessment = self._assessment(assessment_id)
        with self._lock:
            if self._closed:
                return None
            cell = self._cell(student_id, assessment_id)
            if not cell.comment_dirty:
                return None
            if cell.score_id is None and not cell.create_in_flight:
                raise ValidationError("Add a score before adding a comment")
            if cell.inflight:
                cell.deferred = True
                return None
            value = validate_score(cell.value, assessment.total_marks)
            if value is None:
                value = cell.server_value
            comment = cell.comment or None
            job = self._begin_save(cell)
        return self._dispatch(self._save_job, cell, job, value, comment)

    # ── paste ──────────────────────────────────────────────────

    def on_paste(self, start_student_id, assessment_id, text):
        """Fill a column downward from the anchor row.

        Blank lines and "-" clear the cell (deleting a persisted score).
        Non-numeric or out-of-range lines leave their cell unchanged.
        New scores go in one bulk-create call; updates and deletes are
        issued one by one; then the score set is refetched.
        """
        assessment = self._assessment(assessment_id)
        outcome = PasteOutcome()
        pasted = parse_paste_column(text)
        if not pasted:
            return outcome

        start = next((i for i, s in enumerate(self.students) if s.id == start_student_id), -1)
        if start == -1:
            raise ValidationError(f"Student {start_student_id} is not in this markbook")

        creates, updates, deletes = [], [], []
        with self._lock:
            if self._closed:
                return outcome
            for offset, item in enumerate(pasted):
                index = start + offset
                if index >= len(self.students):
                    outcome.ignored += 1
                    continue
                cell = self._cell(self.students[index].id, assessment_id)

                if item.kind == "clear":
                    if cell.inflight:
                        logger.debug("Paste clear skipped for busy cell %r", cell)
                        outcome.skipped += 1
                    elif cell.score_id is not None:
                        cell.value = ''
                        deletes.append((cell, self._begin_save(cell), None))
                    else:
                        cell.value = ''
                        cell.seq += 1
                        cell.status = SYNCED
                    continue

                value = item.value
                if item.kind != "value" or value < 0 or value > assessment.total_marks:
                    logger.debug("Paste skipped %r for student %s", item.raw, cell.student_id)
                    outcome.skipped += 1
                    continue
                if cell.status == SYNCED and cell.server_value == value:
                    outcome.unchanged += 1
                    continue

                cell.value = format_score(value)
                if cell.inflight:
                    cell.seq += 1
                    cell.status = DIRTY
                    cell.deferred = True
                    continue
                if cell.score_id is None:
                    creates.append((cell, self._begin_save(cell), value))
                else:
                    updates.append((cell, self._begin_save(cell), value))

        if not (creates or updates or deletes):
            return outcome

        replays = self._run_paste_batch(assessment_id, creates, updates, deletes, outcome)
        self.refresh(assessment_id)
        if outcome.errors and self.on_error:
            self.on_error("Failed to save some scores. Please try again.")
        for cell in replays:
            self._replay(cell)
        return outcome

    def _run_paste_batch(self, assessment_id, creates, updates, deletes, outcome):
        """Issue the batched calls. Returns cells with a commit deferred behind them."""
        pending = {id(job): (cell, job) for cell, job, _ in creates + updates + deletes}
        replays = []
        try:
            if creates:
                try:
                    saved = self.client.create_scores(assessment_id, [
                        {'student_id': cell.student_id, 'score': value, 'comment': None}
                        for cell, _, value in creates
                    ])
                except MarkbookError as e:
                    if isinstance(e, AuthError):
                        raise
                    outcome.errors.append(f"Bulk create failed: {e}")
                    for cell, job, _ in creates:
                        self._save_failed(cell, job, e)
                        pending.pop(id(job))
                else:
                    by_student = {s.student_id: s for s in saved}
                    for cell, job, value in creates:
                        if self._save_succeeded(cell, job, by_student.get(cell.student_id), value, None):
                            replays.append(cell)
                        pending.pop(id(job))
                        outcome.created += 1

            for cell, job, value in updates:
                try:
                    saved = self.client.update_score(job['score_id'], value, cell.server_comment)
                except MarkbookError as e:
                    if isinstance(e, AuthError):
                        raise
                    outcome.errors.append(f"Update of score {job['score_id']} failed: {e}")
                    self._save_failed(cell, job, e)
                else:
                    if self._save_succeeded(cell, job, saved, value, cell.server_comment):
                        replays.append(cell)
                    outcome.updated += 1
                pending.pop(id(job))

            for cell, job, _ in deletes:
                try:
                    self.client.delete_score(job['score_id'])
                except MarkbookError as e:
                    if isinstance(e, AuthError):
                        raise
                    outcome.errors.append(f"Delete of score {job['score_id']} failed: {e}")
                    self._save_failed(cell, job, e)
                else:
                    self._delete_succeeded(cell, job)
                    outcome.deleted += 1
                pending.pop(id(job))
        except AuthError as e:
            for cell, job in pending.values():
                self._save_failed(cell, job, e)
            raise
        return replays

    # ── save bookkeeping ───────────────────────────────────────

    def _begin_save(self, cell):
        """Mark a cell as saving. Caller holds the lock."""
        cell.seq += 1
        cell.status = SAVING
        cell.error = None
        cell.inflight += 1
        is_create = cell.score_id is None
        if is_create:
            cell.create_in_flight = True
        return {'seq': cell.seq, 'score_id': cell.score_id, 'create': is_create}

    def _dispatch(self, fn, *args):
        if self.executor is None:
            return fn(*args)
        return self.executor.submit(fn, *args)

    def _save_job(self, cell, job, value, comment):
        try:
            if job['create']:
                created = self.client.create_scores(cell.assessment_id, [{
                    'student_id': cell.student_id,
                    'score': value,
                    'comment': comment,
                }])
                saved = created[0] if created else None
            else:
                saved = self.client.update_score(job['score_id'], value, comment)
        except MarkbookError as e:
            self._save_failed(cell, job, e)
            if isinstance(e, ConflictError) and job['create']:
                # Someone else scored this pair; pick up its id so the next commit updates
                self.refresh(cell.assessment_id)
            if self.on_error and not self._closed:
                self.on_error(str(e))
            raise

        replay = self._save_succeeded(cell, job, saved, value, comment)
        self.refresh(cell.assessment_id)
        if replay:
            return self._replay(cell)
        return saved

    def _replay(self, cell):
        """Re-issue a commit that was deferred behind an in-flight save."""
        result = self.on_cell_commit(cell.student_id, cell.assessment_id)
        if result is None and cell.comment_dirty and cell.score_id is not None:
            result = self.on_comment_commit(cell.student_id, cell.assessment_id)
        return result

    def _finish(self, cell, job):
        cell.inflight -= 1
        if job['create']:
            cell.create_in_flight = False

    def _save_succeeded(self, cell, job, saved, value, comment):
        """Apply a save response. Returns True if a deferred commit should be replayed."""
        with self._lock:
            if self._closed:
                return False
            self._finish(cell, job)
            if saved is not None and saved.id is not None:
                cell.score_id = saved.id
            if job['seq'] >= cell.applied_seq:
                cell.applied_seq = job['seq']
                cell.server_value = value
                cell.server_comment = comment
            if job['seq'] == cell.seq or (cell.status == SAVING and not cell.inflight):
                cell.status = SYNCED
                cell.error = None
                cell.value = format_score(cell.server_value)
                if cell.comment == (comment or ''):
                    cell.comment_dirty = False
            else:
                logger.debug("Stale save response for %r (seq %s < %s)", cell, job['seq'], cell.seq)
            replay = cell.deferred
            cell.deferred = False
            return replay

    def _delete_succeeded(self, cell, job):
        with self._lock:
            if self._closed:
                return
            self._finish(cell, job)
            if cell.score_id == job['score_id']:
                cell.score_id = None
            if job['seq'] >= cell.applied_seq:
                cell.applied_seq = job['seq']
                cell.server_value = None
                cell.server_comment = None
            if job['seq'] == cell.seq or (cell.status == SAVING and not cell.inflight):
                cell.status = SYNCED
                cell.error = None
                cell.value = format_score(cell.server_value)

    def _save_failed(self, cell, job, error):
        """Keep the local edit so the user can retry by committing again."""
        logger.error("Failed to save score for student %s on assessment %s: %s",
                     cell.student_id, cell.assessment_id, error)
        with self._lock:
            if self._closed:
                return
            self._finish(cell, job)
            cell.error = str(error)
            cell.deferred = False
            if job['seq'] == cell.seq or (cell.status == SAVING and not cell.inflight):
                cell.status = DIRTY
