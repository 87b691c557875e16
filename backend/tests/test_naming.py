"""
Tests for routine folder/file naming and schedule offsets.
"""

from datetime import datetime
from pathlib import Path

from compsync.recording.naming import (
    build_file_name,
    calc_offset,
    file_prefix,
    routine_output_dir,
    sanitize,
)
from compsync.routines.models import Routine
from compsync.settings.models import AppSettings

NOW = datetime(2025, 3, 14, 10, 7, 30)


def routine(**overrides):
    fields = dict(
        id="r1",
        entry_number="101",
        routine_title="Hip Hop Kids",
        studio_code="ABC",
        category="Hip Hop",
    )
    fields.update(overrides)
    return Routine(**fields)


class TestBuildFileName:
    def test_default_pattern(self):
        assert build_file_name(routine(), "{entry_number}_{routine_title}_{studio_code}") == "101_Hip_Hop_Kids_ABC"

    def test_date_time_and_category_tokens(self):
        name = build_file_name(routine(), "{date}_{time}_{category}", now=NOW)

        assert name == "2025-03-14_10-07-30_Hip_Hop"

    def test_invalid_characters_replaced(self):
        name = build_file_name(routine(routine_title='What? "Now"/Later'), "{routine_title}")

        assert name == "What___Now__Later"
        assert sanitize(' a:b ') == "a_b"


class TestFilePrefix:
    def test_uses_entry_number(self):
        assert file_prefix(routine(), "{routine_title}") == "101"

    def test_falls_back_to_pattern(self):
        assert file_prefix(routine(entry_number=" "), "{routine_title}") == "Hip_Hop_Kids"


class TestRoutineOutputDir:
    def test_configured_directory(self):
        settings = AppSettings()
        settings.file_naming.output_directory = "/media/comp"

        assert routine_output_dir(routine(), settings) == Path("/media/comp/101_Hip_Hop_Kids_ABC")

    def test_raw_file_directory_fallback(self):
        result = routine_output_dir(routine(), AppSettings(), raw_output_path="/obs/rec/take.mkv")

        assert result == Path("/obs/rec/101_Hip_Hop_Kids_ABC")

    def test_share_code_layout(self):
        settings = AppSettings()
        settings.file_naming.output_directory = "/media/comp"

        result = routine_output_dir(routine(), settings, share_code="SPRING25")

        assert result == Path("/media/comp/SPRING25/101")

    def test_no_base_directory(self):
        assert routine_output_dir(routine(), AppSettings()) is None


class TestCalcOffset:
    def test_late(self):
        assert calc_offset("10:00", datetime(2025, 3, 14, 10, 7)) == "+7m"

    def test_early_over_an_hour(self):
        assert calc_offset("10:00", datetime(2025, 3, 14, 8, 45)) == "-1h 15m"

    def test_on_time(self):
        assert calc_offset("10:00", datetime(2025, 3, 14, 10, 0, 20)) == "on time"

    def test_invalid_schedule(self):
        assert calc_offset("ten", NOW) == "invalid schedule time"
