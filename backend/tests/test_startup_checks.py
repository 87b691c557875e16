"""
Tests for advisory startup checks.
"""

from compsync.jobs.models import JobType
from compsync.services.startup import StartupReport, disk_free_gb, run_startup_checks


class TestStartupChecks:
    def test_healthy_report(self, settings, job_queue, monkeypatch):
        monkeypatch.setattr(
            "compsync.services.startup.validate_ffmpeg", lambda path: "ffmpeg version 6.1"
        )
        monkeypatch.setattr("compsync.services.startup.disk_free_gb", lambda path: 250.0)
        job_queue.enqueue(JobType.ENCODE, "r1", {})

        report = run_startup_checks(settings, job_queue, orphaned_files=2)

        assert report.ffmpeg_available is True
        assert report.ffmpeg_version == "ffmpeg version 6.1"
        assert report.disk_warning is False
        assert report.output_dir_writable is True
        assert report.resumed_jobs == 1
        assert report.orphaned_files == 2
        assert report.warnings == []

    def test_missing_ffmpeg_and_low_disk(self, settings, tmp_path, monkeypatch):
        """
        GIVEN: An ffmpeg path that does not exist and 3.2GB free
        WHEN: Startup checks run
        THEN: Both are reported as warnings; nothing raises
        """
        monkeypatch.setattr("compsync.services.startup.disk_free_gb", lambda path: 3.2)

        report = run_startup_checks(settings, ffmpeg_path=str(tmp_path / "no-ffmpeg"))

        assert report.ffmpeg_available is False
        assert report.disk_warning is True
        assert report.warnings == ["FFmpeg not found", "Only 3.2GB disk space"]

    def test_unwritable_output_directory(self, settings, tmp_path, monkeypatch):
        monkeypatch.setattr(
            "compsync.services.startup.validate_ffmpeg", lambda path: "ffmpeg version 6.1"
        )
        settings.file_naming.output_directory = str(tmp_path / "not-created")

        report = run_startup_checks(settings)

        assert report.output_dir_writable is False
        assert "Output directory not writable" in report.warnings

    def test_no_output_directory(self, settings, monkeypatch):
        monkeypatch.setattr(
            "compsync.services.startup.validate_ffmpeg", lambda path: "ffmpeg version 6.1"
        )
        settings.file_naming.output_directory = ""

        report = run_startup_checks(settings)

        assert report.output_dir_writable is None
        assert report.warnings == []

    def test_disk_free_on_real_directory(self, tmp_path):
        assert disk_free_gb(tmp_path) >= 0
        assert disk_free_gb(tmp_path / "missing") is None

    def test_report_serializes(self):
        report = StartupReport(ffmpeg_available=True, disk_free_gb=42.0)

        assert report.model_dump(mode="json")["disk_free_gb"] == 42.0
