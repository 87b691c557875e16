"""
Tests for the routine store cursor and persistence.

The cursor is an id, so hiding routines never shifts it to a different
routine.
"""

import pytest

from conftest import make_competition

from compsync.routines.errors import (
    InvalidRoutineTransitionError,
    NoCompetitionLoadedError,
    RoutineError,
    RoutineNotFoundError,
)
from compsync.routines.models import RoutineStatus
from compsync.routines.state import can_transition_routine
from compsync.routines.store import RoutineStore


@pytest.fixture
def loaded_store(store):
    store.set_competition(make_competition(5))
    return store


class TestTransitions:
    def test_forward_path_is_legal(self):
        path = [
            RoutineStatus.PENDING,
            RoutineStatus.RECORDING,
            RoutineStatus.RECORDED,
            RoutineStatus.QUEUED,
            RoutineStatus.ENCODING,
            RoutineStatus.ENCODED,
            RoutineStatus.UPLOADING,
            RoutineStatus.UPLOADED,
            RoutineStatus.CONFIRMED,
        ]
        for from_status, to_status in zip(path, path[1:]):
            assert can_transition_routine(from_status, to_status)

    def test_failed_is_never_auto_recovered_to_encoded(self):
        assert not can_transition_routine(RoutineStatus.FAILED, RoutineStatus.ENCODED)
        assert not can_transition_routine(RoutineStatus.PENDING, RoutineStatus.ENCODED)
        assert can_transition_routine(RoutineStatus.FAILED, RoutineStatus.QUEUED)

    def test_invalid_transition_raises(self, loaded_store):
        with pytest.raises(InvalidRoutineTransitionError):
            loaded_store.update_routine_status("r1", RoutineStatus.ENCODED)

        assert loaded_store.get_routine("r1").status == RoutineStatus.PENDING


class TestCursor:
    def test_starts_at_first_routine(self, loaded_store):
        assert loaded_store.current_routine().id == "r1"
        assert loaded_store.next_routine().id == "r2"

    def test_advance_and_prev_stop_at_edges(self, loaded_store):
        for expected in ["r2", "r3", "r4", "r5"]:
            assert loaded_store.advance_to_next().id == expected
        assert loaded_store.advance_to_next() is None
        assert loaded_store.current_routine().id == "r5"

        loaded_store.jump_to("r1")
        assert loaded_store.go_to_prev() is None

    def test_skip_ahead_does_not_move_cursor(self, loaded_store):
        """
        GIVEN: Cursor at r2
        WHEN: r4 is skipped, then unskipped
        THEN: Current routine stays r2 the whole time
        """
        loaded_store.jump_to("r2")

        loaded_store.skip_routine("r4")
        assert loaded_store.current_routine().id == "r2"
        assert [r.id for r in loaded_store.visible_routines()] == ["r1", "r2", "r3", "r5"]

        loaded_store.unskip_routine("r4")
        assert loaded_store.current_routine().id == "r2"

    def test_skip_behind_keeps_current_routine(self, loaded_store):
        """
        GIVEN: Cursor at r3 (visible index 2)
        WHEN: r1 is skipped
        THEN: Current routine is still r3, now at visible index 1
        """
        loaded_store.jump_to("r3")

        loaded_store.skip_routine("r1")

        assert loaded_store.current_routine().id == "r3"
        assert loaded_store.current_index() == 1

    def test_skipping_current_moves_to_following_routine(self, loaded_store):
        loaded_store.jump_to("r3")

        loaded_store.skip_routine("r3")

        assert loaded_store.current_routine().id == "r4"
        loaded_store.unskip_routine("r3")
        assert loaded_store.current_routine().id == "r4"

    def test_skipping_last_current_falls_back_to_previous(self, loaded_store):
        loaded_store.jump_to("r5")

        loaded_store.skip_routine("r5")

        assert loaded_store.current_routine().id == "r4"

    def test_advance_skips_hidden_routines(self, loaded_store):
        loaded_store.skip_routine("r2")

        assert loaded_store.advance_to_next().id == "r3"

    def test_jump_to_skipped_raises(self, loaded_store):
        loaded_store.skip_routine("r3")

        with pytest.raises(RoutineError):
            loaded_store.jump_to("r3")

    def test_jump_to_unknown_raises(self, loaded_store):
        with pytest.raises(RoutineNotFoundError):
            loaded_store.jump_to("nope")

    def test_no_competition(self, store):
        assert store.current_routine() is None
        assert store.advance_to_next() is None
        with pytest.raises(NoCompetitionLoadedError):
            store.update_routine_status("r1", RoutineStatus.RECORDING)


class TestMutation:
    def test_skip_requires_pending(self, loaded_store):
        loaded_store.update_routine_status("r1", RoutineStatus.RECORDING)

        with pytest.raises(InvalidRoutineTransitionError):
            loaded_store.skip_routine("r1")

    def test_update_sets_extra_fields(self, loaded_store):
        routine = loaded_store.update_routine_status(
            "r1", RoutineStatus.RECORDING, error=None, notes="late start"
        )

        assert routine.status == RoutineStatus.RECORDING
        assert routine.notes == "late start"

    def test_id_is_immutable(self, loaded_store):
        with pytest.raises(ValueError):
            loaded_store.update_routine("r1", id="other")

    def test_unknown_field_rejected(self, loaded_store):
        with pytest.raises(ValueError):
            loaded_store.update_routine("r1", colour="red")

    def test_returned_routines_are_copies(self, loaded_store):
        routine = loaded_store.current_routine()
        routine.notes = "changed"

        assert loaded_store.current_routine().notes is None

    def test_set_note_clears_with_empty_string(self, loaded_store):
        loaded_store.set_note("r1", "hello")
        assert loaded_store.get_routine("r1").notes == "hello"

        loaded_store.set_note("r1", "")
        assert loaded_store.get_routine("r1").notes is None

    def test_snapshot(self, loaded_store):
        loaded_store.jump_to("r2")

        snapshot = loaded_store.snapshot()

        assert snapshot.current_routine.id == "r2"
        assert snapshot.next_routine.id == "r3"
        assert snapshot.current_index == 1
        assert len(snapshot.competition.routines) == 5

    def test_day_filter(self, loaded_store):
        assert len(loaded_store.get_filtered_routines("Saturday")) == 5
        assert loaded_store.get_filtered_routines("Sunday") == []


class TestPersistence:
    def test_restore_round_trip(self, tmp_path, loaded_store):
        loaded_store.jump_to("r3")
        loaded_store.update_routine_status("r3", RoutineStatus.RECORDING, immediate=True)

        fresh = RoutineStore(state_dir=tmp_path / "state")
        assert fresh.restore() is True

        assert fresh.current_routine().id == "r3"
        assert fresh.get_routine("r3").status == RoutineStatus.RECORDING

    def test_restore_without_file(self, tmp_path):
        assert RoutineStore(state_dir=tmp_path / "empty").restore() is False

    def test_corrupt_state_is_ignored(self, tmp_path):
        state_dir = tmp_path / "state"
        state_dir.mkdir()
        (state_dir / "compsync-state.json").write_text("not json")

        assert RoutineStore(state_dir=state_dir).restore() is False

    def test_reload_merges_by_id(self, tmp_path, loaded_store):
        """
        GIVEN: A persisted competition where r1 is recorded and the cursor is on r2
        WHEN: The same competition is reloaded with one routine replaced
        THEN: Matching ids keep their state; the new routine is pending
        """
        loaded_store.update_routine_status("r1", RoutineStatus.RECORDING)
        loaded_store.update_routine_status(
            "r1", RoutineStatus.RECORDED, output_path="/out/r1.mkv", immediate=True
        )
        loaded_store.jump_to("r2")
        loaded_store.save_now()

        reparsed = make_competition(5)
        reparsed.routines[4].id = "r5-new"

        fresh = RoutineStore(state_dir=tmp_path / "state")
        matched = fresh.set_competition(reparsed)

        assert matched == 4
        assert fresh.get_routine("r1").status == RoutineStatus.RECORDED
        assert fresh.get_routine("r1").output_path == "/out/r1.mkv"
        assert fresh.get_routine("r5-new").status == RoutineStatus.PENDING
        assert fresh.current_routine().id == "r2"

    def test_different_competition_starts_fresh(self, tmp_path, loaded_store):
        loaded_store.update_routine_status("r1", RoutineStatus.RECORDING, immediate=True)

        fresh = RoutineStore(state_dir=tmp_path / "state")
        matched = fresh.set_competition(make_competition(3, competition_id="comp-2"))

        assert matched == 0
        assert fresh.get_routine("r1").status == RoutineStatus.PENDING
        assert fresh.current_routine().id == "r1"
