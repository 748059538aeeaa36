"""
Test: Score grid, keystrokes, blur commits, column paste and save reconciliation.
"""
import pytest
import requests

from markbook.errors import AuthError, ConflictError, NetworkError, ValidationError
from markbook.services.score_grid import (
    DIRTY, SAVING, SYNCED, ScoreGrid, format_score, validate_score,
)


@pytest.fixture
def errors():
    return []


@pytest.fixture
def grid(client, seeded, http, errors):
    grid = ScoreGrid(client, seeded.class_id, seeded.students, [seeded.quiz], on_error=errors.append)
    grid.load()
    http.calls.clear()
    return grid


@pytest.fixture
def async_grid(client, seeded, http, manual_executor):
    grid = ScoreGrid(client, seeded.class_id, seeded.students, [seeded.quiz], executor=manual_executor)
    grid.load()
    http.calls.clear()
    return grid


def _ids(seeded):
    john, kayla, tyrone = seeded.students
    return john.id, kayla.id, tyrone.id, seeded.quiz.id


def _stored(store, student_id, assessment_id):
    return [s for s in store.data["scores"]
            if s["student_id"] == student_id and s["assessment_id"] == assessment_id]


class TestValidateScore:
    def test_empty_is_none(self):
        assert validate_score("  ", 20) is None

    def test_in_range(self):
        assert validate_score("17.5", 20) == 17.5

    def test_bounds_inclusive(self):
        assert validate_score("0", 20) == 0
        assert validate_score("20", 20) == 20

    def test_negative(self):
        with pytest.raises(ValidationError):
            validate_score("-1", 20)

    def test_above_total(self):
        with pytest.raises(ValidationError, match="cannot exceed 20"):
            validate_score("21", 20)

    def test_non_numeric(self):
        with pytest.raises(ValidationError):
            validate_score("abc", 20)

    def test_format_score(self):
        assert format_score(18.0) == "18"
        assert format_score(17.5) == "17.5"
        assert format_score(None) == ""


class TestKeystrokes:
    def test_input_makes_no_network_call(self, grid, seeded, http):
        john, _, _, quiz = _ids(seeded)
        grid.on_cell_input(john, quiz, "1")
        grid.on_cell_input(john, quiz, "18")
        assert http.calls == []
        assert grid.cell(john, quiz).status == DIRTY
        assert grid.cell(john, quiz).value == "18"

    def test_invalid_input_keeps_previous_value(self, grid, seeded):
        john, _, _, quiz = _ids(seeded)
        grid.on_cell_input(john, quiz, "12")
        with pytest.raises(ValidationError):
            grid.on_cell_input(john, quiz, "25")
        assert grid.cell(john, quiz).value == "12"

    def test_percentage(self, grid, seeded):
        john, _, _, quiz = _ids(seeded)
        grid.on_cell_input(john, quiz, "15")
        assert grid.percentage(john, quiz) == 75.0

    def test_percentage_of_empty_cell(self, grid, seeded):
        john, _, _, quiz = _ids(seeded)
        assert grid.percentage(john, quiz) is None

    def test_unknown_assessment(self, grid, seeded):
        john, _, _, _ = _ids(seeded)
        with pytest.raises(ValidationError):
            grid.on_cell_input(john, 999, "5")


class TestCommit:
    def test_first_commit_creates(self, grid, seeded, http, store):
        john, _, _, quiz = _ids(seeded)
        grid.on_cell_input(john, quiz, "18")
        grid.on_cell_commit(john, quiz)

        assert http.count("POST", "/scores/bulk") == 1
        assert http.count("PUT") == 0
        cell = grid.cell(john, quiz)
        assert cell.status == SYNCED
        assert cell.score_id is not None
        assert [s["score"] for s in _stored(store, john, quiz)] == [18.0]

    def test_second_commit_updates(self, grid, seeded, http, store):
        john, _, _, quiz = _ids(seeded)
        grid.on_cell_input(john, quiz, "18")
        grid.on_cell_commit(john, quiz)
        grid.on_cell_input(john, quiz, "15")
        grid.on_cell_commit(john, quiz)

        assert http.count("POST", "/scores/bulk") == 1
        assert http.count("PUT", "/scores/") == 1
        assert [s["score"] for s in _stored(store, john, quiz)] == [15.0]

    def test_commit_refetches_scores(self, grid, seeded, http):
        john, _, _, quiz = _ids(seeded)
        grid.on_cell_input(john, quiz, "18")
        grid.on_cell_commit(john, quiz)
        assert http.count("GET", "/students-with-scores") == 1

    def test_unchanged_value_is_not_saved(self, grid, seeded, http):
        john, _, _, quiz = _ids(seeded)
        grid.on_cell_input(john, quiz, "18")
        grid.on_cell_commit(john, quiz)
        http.calls.clear()

        grid.on_cell_input(john, quiz, "18")
        assert grid.on_cell_commit(john, quiz) is None
        assert http.calls == []

    def test_empty_commit_reverts_instead_of_deleting(self, grid, seeded, http, store):
        john, _, _, quiz = _ids(seeded)
        grid.on_cell_input(john, quiz, "18")
        grid.on_cell_commit(john, quiz)
        http.calls.clear()

        grid.on_cell_input(john, quiz, "")
        grid.on_cell_commit(john, quiz)

        assert http.calls == []
        cell = grid.cell(john, quiz)
        assert cell.value == "18"
        assert cell.status == SYNCED
        assert len(_stored(store, john, quiz)) == 1

    def test_failed_save_keeps_local_edit(self, grid, seeded, http, errors):
        john, _, _, quiz = _ids(seeded)
        http.fail_next("POST", "/scores/bulk", requests.ConnectionError("down"))
        grid.on_cell_input(john, quiz, "18")
        with pytest.raises(NetworkError):
            grid.on_cell_commit(john, quiz)

        cell = grid.cell(john, quiz)
        assert cell.status == DIRTY
        assert cell.value == "18"
        assert cell.error
        assert errors == ["Network error. Please check your connection and try again."]

        # Retry by committing again
        grid.on_cell_commit(john, quiz)
        assert cell.status == SYNCED
        assert cell.score_id is not None

    def test_create_conflict_picks_up_existing_score(self, grid, seeded, http, store):
        john, _, _, quiz = _ids(seeded)
        store.create_scores(quiz, [{"student_id": john, "score": 10}])

        grid.on_cell_input(john, quiz, "18")
        with pytest.raises(ConflictError):
            grid.on_cell_commit(john, quiz)

        cell = grid.cell(john, quiz)
        assert cell.score_id is not None
        assert cell.value == "18"

        grid.on_cell_commit(john, quiz)
        assert http.count("PUT", "/scores/") == 1
        assert [s["score"] for s in _stored(store, john, quiz)] == [18.0]


class TestComments:
    def test_comment_without_score_is_rejected(self, grid, seeded, http):
        john, _, _, quiz = _ids(seeded)
        grid.on_comment_input(john, quiz, "Well done")
        with pytest.raises(ValidationError, match="Add a score"):
            grid.on_comment_commit(john, quiz)
        assert http.calls == []

    def test_comment_saved_with_existing_score(self, grid, seeded, store):
        john, _, _, quiz = _ids(seeded)
        grid.on_cell_input(john, quiz, "18")
        grid.on_cell_commit(john, quiz)
        grid.on_comment_input(john, quiz, "Well done")
        grid.on_comment_commit(john, quiz)

        stored = _stored(store, john, quiz)[0]
        assert stored["score"] == 18.0
        assert stored["comment"] == "Well done"
        assert grid.cell(john, quiz).comment_dirty is False

    def test_paste_update_keeps_comment(self, grid, seeded, store):
        john, _, _, quiz = _ids(seeded)
        grid.on_cell_input(john, quiz, "18")
        grid.on_cell_commit(john, quiz)
        grid.on_comment_input(john, quiz, "Well done")
        grid.on_comment_commit(john, quiz)

        grid.on_paste(john, quiz, "19")

        stored = _stored(store, john, quiz)[0]
        assert stored["score"] == 19.0
        assert stored["comment"] == "Well done"


class TestPaste:
    def test_new_scores_go_in_one_bulk_call(self, grid, seeded, http, store):
        john, kayla, tyrone, quiz = _ids(seeded)
        outcome = grid.on_paste(john, quiz, "18\n15\n12\n")

        assert outcome.created == 3
        assert http.count("POST", "/scores/bulk") == 1
        assert http.count("PUT") == 0
        assert [_stored(store, sid, quiz)[0]["score"] for sid in (john, kayla, tyrone)] == [18.0, 15.0, 12.0]
        assert all(grid.cell(sid, quiz).status == SYNCED for sid in (john, kayla, tyrone))

    def test_second_paste_updates_deletes_and_skips_unchanged(self, grid, seeded, http, store):
        john, kayla, tyrone, quiz = _ids(seeded)
        grid.on_paste(john, quiz, "18\n15\n12")
        http.calls.clear()

        outcome = grid.on_paste(john, quiz, "19\n-\n12")

        assert (outcome.created, outcome.updated, outcome.deleted, outcome.unchanged) == (0, 1, 1, 1)
        assert http.count("POST", "/scores/bulk") == 0
        assert http.count("PUT") == 1
        assert http.count("DELETE") == 1
        assert _stored(store, kayla, quiz) == []
        assert grid.cell(kayla, quiz).value == ""
        assert grid.cell(kayla, quiz).score_id is None

    def test_name_prefixed_lines(self, grid, seeded, store):
        john, kayla, _, quiz = _ids(seeded)
        outcome = grid.on_paste(john, quiz, "John Brown\t18\nKayla Smith\t15")
        assert outcome.created == 2
        assert _stored(store, kayla, quiz)[0]["score"] == 15.0

    def test_multi_column_copy_fills_anchor_column_only(self, grid, seeded, store):
        john, kayla, _, quiz = _ids(seeded)
        outcome = grid.on_paste(john, quiz, "18\t5\n15\t6")
        assert outcome.created == 2
        assert [_stored(store, sid, quiz)[0]["score"] for sid in (john, kayla)] == [18.0, 15.0]

    def test_lines_past_last_row_are_ignored(self, grid, seeded):
        _, _, tyrone, quiz = _ids(seeded)
        outcome = grid.on_paste(tyrone, quiz, "10\n11\n12")
        assert outcome.created == 1
        assert outcome.ignored == 2

    def test_invalid_and_out_of_range_lines_are_skipped(self, grid, seeded, store):
        john, kayla, tyrone, quiz = _ids(seeded)
        outcome = grid.on_paste(john, quiz, "abc\n25\n10")
        assert outcome.skipped == 2
        assert outcome.created == 1
        assert _stored(store, john, quiz) == []
        assert _stored(store, kayla, quiz) == []
        assert outcome.message() == "1 cells saved, 2 skipped"

    def test_clearing_an_empty_cell_makes_no_call(self, grid, seeded, http):
        john, _, _, quiz = _ids(seeded)
        grid.on_paste(john, quiz, "-")
        assert http.calls == []

    def test_unknown_anchor_row(self, grid, seeded):
        _, _, _, quiz = _ids(seeded)
        with pytest.raises(ValidationError):
            grid.on_paste(999, quiz, "10")

    def test_failed_update_does_not_stop_the_batch(self, grid, seeded, http, store, errors):
        john, kayla, _, quiz = _ids(seeded)
        grid.on_paste(john, quiz, "18\n15")
        http.fail_next("PUT", "/scores/", requests.ConnectionError("down"))

        outcome = grid.on_paste(john, quiz, "19\n16")

        assert outcome.updated == 1
        assert len(outcome.errors) == 1
        assert errors == ["Failed to save some scores. Please try again."]
        assert _stored(store, kayla, quiz)[0]["score"] == 16.0
        john_cell = grid.cell(john, quiz)
        assert john_cell.status == DIRTY
        assert john_cell.value == "19"

    def test_auth_failure_clears_session(self, grid, seeded, session, make_token):
        john, kayla, _, quiz = _ids(seeded)
        session.token = make_token(secret="some-other-secret-0123456789abcdef")

        with pytest.raises(AuthError):
            grid.on_paste(john, quiz, "18\n15")

        assert session.token is None
        assert grid.cell(john, quiz).status == DIRTY
        assert grid.cell(kayla, quiz).status == DIRTY


class TestReconciliation:
    def test_commit_during_create_is_replayed_as_update(self, async_grid, seeded, http, store, manual_executor):
        john, _, _, quiz = _ids(seeded)
        async_grid.on_cell_input(john, quiz, "18")
        async_grid.on_cell_commit(john, quiz)
        async_grid.on_cell_input(john, quiz, "15")
        assert async_grid.on_cell_commit(john, quiz) is None
        assert len(manual_executor.jobs) == 1

        manual_executor.run()
        # The deferred commit is queued behind the create
        assert len(manual_executor.jobs) == 1
        manual_executor.run()

        assert http.count("POST", "/scores/bulk") == 1
        assert http.count("PUT", "/scores/") == 1
        assert [s["score"] for s in _stored(store, john, quiz)] == [15.0]
        cell = async_grid.cell(john, quiz)
        assert cell.status == SYNCED
        assert cell.value == "15"

    def test_stale_response_does_not_overwrite_newer_input(self, async_grid, seeded, manual_executor):
        john, _, _, quiz = _ids(seeded)
        async_grid.on_cell_input(john, quiz, "18")
        async_grid.on_cell_commit(john, quiz)
        async_grid.on_cell_input(john, quiz, "1")

        manual_executor.run()

        cell = async_grid.cell(john, quiz)
        assert cell.value == "1"
        assert cell.status == DIRTY
        assert cell.score_id is not None
        assert cell.server_value == 18.0

    def test_closed_grid_ignores_responses(self, async_grid, seeded, http, manual_executor):
        john, _, _, quiz = _ids(seeded)
        async_grid.on_cell_input(john, quiz, "18")
        async_grid.on_cell_commit(john, quiz)
        async_grid.close()

        manual_executor.run()

        assert async_grid.cell(john, quiz).status == SAVING
        assert http.count("GET") == 0
        assert async_grid.on_cell_commit(john, quiz) is None

    def test_refresh_merges_server_changes(self, grid, seeded, store):
        john, _, _, quiz = _ids(seeded)
        store.create_scores(quiz, [{"student_id": john, "score": 11}])
        grid.refresh()
        cell = grid.cell(john, quiz)
        assert cell.value == "11"
        assert cell.score_id is not None

    def test_refresh_keeps_dirty_edits(self, grid, seeded, store):
        john, _, _, quiz = _ids(seeded)
        grid.on_cell_input(john, quiz, "5")
        store.create_scores(quiz, [{"student_id": john, "score": 11}])
        grid.refresh()
        cell = grid.cell(john, quiz)
        assert cell.value == "5"
        assert cell.server_value == 11.0
        assert grid.dirty_cells() == [cell]

    def test_paste_follows_filtered_row_order(self, grid, seeded, store):
        john, kayla, tyrone, quiz = _ids(seeded)
        john_s, kayla_s, tyrone_s = seeded.students
        grid.set_rows([tyrone_s, john_s])

        grid.on_paste(tyrone, quiz, "7\n8")

        assert _stored(store, tyrone, quiz)[0]["score"] == 7.0
        assert _stored(store, john, quiz)[0]["score"] == 8.0
        assert _stored(store, kayla, quiz) == []
