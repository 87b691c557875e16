"""
Tests for atomic JSON storage and the debounced saver.
"""

import threading

import pytest

from compsync.persistence import DebouncedSaver, LoadError, SaveError, atomic_write_json, read_json


class TestAtomicJson:
    def test_write_then_read(self, tmp_path):
        path = tmp_path / "nested" / "state.json"

        atomic_write_json(path, {"jobs": [1, 2]})

        assert read_json(path) == {"jobs": [1, 2]}
        assert not (tmp_path / "nested" / "state.json.tmp").exists()

    def test_missing_file_reads_none(self, tmp_path):
        assert read_json(tmp_path / "nope.json") is None

    def test_corrupt_file_raises_load_error(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("[1, 2")

        with pytest.raises(LoadError):
            read_json(path)

    def test_unserializable_raises_save_error(self, tmp_path):
        path = tmp_path / "state.json"
        atomic_write_json(path, {"ok": True})

        with pytest.raises(SaveError):
            atomic_write_json(path, {"bad": object()})

        # Previous content survives a failed write
        assert read_json(path) == {"ok": True}


class TestDebouncedSaver:
    def test_bursts_coalesce_into_one_write(self):
        writes = []
        written = threading.Event()

        def write():
            writes.append(1)
            written.set()

        saver = DebouncedSaver(write, delay_seconds=0.05)
        for _ in range(10):
            saver.save_eventually()

        assert written.wait(2)
        assert writes == [1]
        assert saver.pending is False

    def test_save_now_cancels_pending_write(self):
        writes = []
        saver = DebouncedSaver(lambda: writes.append(1), delay_seconds=10)
        saver.save_eventually()
        assert saver.pending is True

        assert saver.save_now() is True

        assert saver.pending is False
        assert writes == [1]

    def test_failed_write_is_reported_not_raised(self):
        def write():
            raise SaveError("disk full")

        saver = DebouncedSaver(write)

        assert saver.save_now() is False
