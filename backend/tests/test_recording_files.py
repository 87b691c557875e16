"""
Tests for raw file handling: lock wait, archive versions, cross-device move.
"""

import errno
import os

import pytest

from compsync.recording.files import (
    archive_existing_files,
    move_file,
    next_archive_version,
    wait_for_file_lock,
)


class TestFileLock:
    def test_unlocked_file(self, tmp_path):
        path = tmp_path / "raw.mkv"
        path.write_bytes(b"x")

        assert wait_for_file_lock(path, timeout=1) is True

    def test_times_out_without_raising(self, tmp_path):
        sleeps = []

        result = wait_for_file_lock(
            tmp_path / "missing.mkv",
            timeout=0,
            poll_interval=0.01,
            sleep=sleeps.append,
        )

        assert result is False


class TestArchive:
    def test_nothing_to_archive(self, tmp_path):
        assert archive_existing_files(tmp_path / "missing") is None

        empty = tmp_path / "empty"
        empty.mkdir()
        assert archive_existing_files(empty) is None

    def test_versions_increment(self, tmp_path):
        """
        GIVEN: A routine folder archived once already
        WHEN: It is archived again
        THEN: Files land in v2 and the archive folder itself is not moved
        """
        routine_dir = tmp_path / "101_Solo"
        routine_dir.mkdir()
        (routine_dir / "take1.mkv").write_bytes(b"1")
        assert archive_existing_files(routine_dir) == routine_dir / "_archive" / "v1"

        (routine_dir / "take2.mkv").write_bytes(b"2")
        (routine_dir / "101_P_performance.mp4").write_bytes(b"p")
        version_dir = archive_existing_files(routine_dir)

        assert version_dir == routine_dir / "_archive" / "v2"
        assert sorted(p.name for p in version_dir.iterdir()) == ["101_P_performance.mp4", "take2.mkv"]
        assert (routine_dir / "_archive" / "v1" / "take1.mkv").exists()
        assert [p.name for p in routine_dir.iterdir()] == ["_archive"]

    def test_next_version_ignores_strays(self, tmp_path):
        archive = tmp_path / "_archive"
        (archive / "v3").mkdir(parents=True)
        (archive / "notes").mkdir()
        (archive / "vX").mkdir()

        assert next_archive_version(archive) == 4


class TestMoveFile:
    def test_same_device_rename(self, tmp_path):
        source = tmp_path / "raw.mkv"
        source.write_bytes(b"data")

        destination = move_file(source, tmp_path / "dest.mkv")

        assert destination.read_bytes() == b"data"
        assert not source.exists()

    def test_cross_device_falls_back_to_copy(self, tmp_path, monkeypatch):
        source = tmp_path / "raw.mkv"
        source.write_bytes(b"data")

        def cross_device(src, dst):
            raise OSError(errno.EXDEV, "Invalid cross-device link")

        monkeypatch.setattr(os, "rename", cross_device)

        destination = move_file(source, tmp_path / "dest.mkv")

        assert destination.read_bytes() == b"data"
        assert not source.exists()

    def test_other_errors_propagate(self, tmp_path):
        with pytest.raises(OSError):
            move_file(tmp_path / "missing.mkv", tmp_path / "dest.mkv")
