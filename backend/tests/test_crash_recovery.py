"""
Tests for startup crash recovery.

Covers:
1. Leftover smart-mode temp videos are deleted
2. Raw recordings without a performance output are reported as orphans
3. Orphans are only re-encoded after confirmation
4. Interrupted jobs are counted as resumed
"""

import subprocess
import sys

from compsync.encoding.commands import TEMP_VIDEO_NAME
from compsync.encoding.process import PidFile
from compsync.jobs.models import JobStatus, JobType
from compsync.recovery.crash import (
    cleanup_temp_videos,
    iter_routine_dirs,
    recover_orphans,
    run_crash_recovery,
    scan_for_orphans,
)


def make_routine_dir(base, *parts, files=()):
    folder = base.joinpath(*parts)
    folder.mkdir(parents=True, exist_ok=True)
    for name in files:
        (folder / name).write_bytes(b"data")
    return folder


class TestFolderScan:
    def test_both_layouts_without_archives(self, output_dir):
        make_routine_dir(output_dir, "101_Solo")
        make_routine_dir(output_dir, "SPRING25", "102")
        make_routine_dir(output_dir, "101_Solo", "_archive", "v1")

        names = [p.relative_to(output_dir).as_posix() for p in iter_routine_dirs(output_dir)]

        assert "101_Solo" in names
        assert "SPRING25/102" in names
        assert not any("_archive" in n for n in names)

    def test_cleanup_temp_videos(self, output_dir):
        make_routine_dir(output_dir, "101_Solo", files=[TEMP_VIDEO_NAME])
        make_routine_dir(output_dir, "SPRING25", "102", files=[TEMP_VIDEO_NAME, "102.mkv"])

        assert cleanup_temp_videos(output_dir) == 2

        assert not (output_dir / "101_Solo" / TEMP_VIDEO_NAME).exists()
        assert (output_dir / "SPRING25" / "102" / "102.mkv").exists()


class TestOrphans:
    def test_scan_finds_unencoded_recordings(self, output_dir):
        """
        GIVEN: One folder with a raw file only, one fully encoded folder
        WHEN: Scanning for orphans
        THEN: Only the raw-only folder's recording is reported
        """
        make_routine_dir(output_dir, "101_Solo", files=["101_Solo.mkv"])
        make_routine_dir(
            output_dir,
            "102_Duet",
            files=["102_Duet.mkv", "102_P_performance.mp4", "102_J1_commentary.mp4"],
        )
        make_routine_dir(output_dir, "103_Trio", files=["notes.txt", "J1_commentary.mp4"])

        orphans = scan_for_orphans(output_dir)

        assert [o.file_name for o in orphans] == ["101_Solo.mkv"]
        assert orphans[0].size == 4

    def test_scan_without_directory(self, tmp_path):
        assert scan_for_orphans(None) == []
        assert scan_for_orphans(tmp_path / "missing") == []

    def test_orphans_untouched_without_confirmation(self, output_dir, supervisor, settings, job_queue):
        make_routine_dir(output_dir, "101_Solo", files=["101_Solo.mkv"])
        orphans = scan_for_orphans(output_dir)

        assert recover_orphans(orphans, supervisor, settings, confirm=None) == 0
        assert recover_orphans(orphans, supervisor, settings, confirm=lambda _o: False) == 0
        assert job_queue.count() == 0

    def test_confirmed_orphans_are_encoded(self, output_dir, supervisor, settings, job_queue):
        folder = make_routine_dir(output_dir, "101_Solo", files=["101_Solo.mkv"])
        orphans = scan_for_orphans(output_dir)

        assert recover_orphans(orphans, supervisor, settings, confirm=lambda _o: True) == 1

        jobs = job_queue.get_all()
        assert [j.routine_id for j in jobs] == ["101_Solo"]
        assert jobs[0].status == JobStatus.DONE
        assert (folder / "P_performance.mp4").exists()
        assert (folder / "J2_commentary.mp4").exists()
        assert scan_for_orphans(output_dir) == []

    def test_recordings_with_queued_jobs_are_not_orphans(self, output_dir, job_queue):
        folder = make_routine_dir(output_dir, "101_Solo", files=["101_Solo.mkv"])
        make_routine_dir(output_dir, "102_Duet", files=["102_Duet.mkv"])
        job_queue.enqueue(JobType.ENCODE, "r1", {"input_path": str(folder / "101_Solo.mkv")})
        job_queue.enqueue(JobType.ENCODE, "r2", {"input_path": 42})

        orphans = scan_for_orphans(output_dir, job_queue)

        assert [o.file_name for o in orphans] == ["102_Duet.mkv"]


class TestRunCrashRecovery:
    def test_resumed_job_input_not_queued_twice(self, output_dir, supervisor, job_queue):
        """
        GIVEN: A job interrupted mid-encode, reset to pending on load
        WHEN: Recovery runs with orphan confirmation
        THEN: Its raw file is not queued again under a second job
        """
        folder = make_routine_dir(output_dir, "101_Solo", files=["101_Solo.mkv"])
        raw = str(folder / "101_Solo.mkv")
        interrupted = job_queue.enqueue(JobType.ENCODE, "r1", {"input_path": raw})
        job_queue.update_status(interrupted.id, JobStatus.RUNNING)
        job_queue.flush()
        job_queue.load()

        report = run_crash_recovery(supervisor, confirm=lambda _o: True)

        assert report.orphans == []
        assert report.orphans_recovered == 0
        same_input = [j for j in job_queue.get_all() if j.payload.get("input_path") == raw]
        assert len(same_input) == 1

    def test_full_pass(self, tmp_path, output_dir, supervisor, job_queue):
        make_routine_dir(output_dir, "101_Solo", files=["101_Solo.mkv", TEMP_VIDEO_NAME])

        interrupted = job_queue.enqueue(JobType.ENCODE, "r9", {"input_path": "x"})
        job_queue.update_status(interrupted.id, JobStatus.RUNNING)
        job_queue.flush()
        job_queue.load()

        finished = subprocess.Popen([sys.executable, "-c", "pass"])
        finished.wait()
        pid_file = PidFile(tmp_path / "ffmpeg.pid")
        pid_file.write(finished.pid)

        report = run_crash_recovery(supervisor, pid_file, confirm=None)

        assert report.stale_encoder_killed is False
        assert report.resumed_jobs == 1
        assert report.temp_files_removed == 1
        assert [o.file_name for o in report.orphans] == ["101_Solo.mkv"]
        assert report.orphans_recovered == 0
        assert not pid_file.path.exists()

    def test_without_output_directory(self, supervisor, settings):
        settings.file_naming.output_directory = ""

        report = run_crash_recovery(supervisor)

        assert report.orphans == []
        assert report.temp_files_removed == 0
