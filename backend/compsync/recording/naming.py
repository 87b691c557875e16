"""
Routine folder and file naming.

Pattern tokens:
    {entry_number} {routine_title} {studio_code} {category} {date} {time}

Whitespace in titles/categories becomes "_" and characters that are
invalid on common filesystems become "_".
"""

import os
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..routines.models import Routine
from ..settings.models import AppSettings

_INVALID_CHARS = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE = re.compile(r"\s+")


def sanitize(value: str) -> str:
    return _INVALID_CHARS.sub("_", value).strip()


def build_file_name(routine: Routine, pattern: str, now: Optional[datetime] = None) -> str:
    """
    Expand ``pattern`` for ``routine``.

    >>> r = Routine(id="r1", entry_number="101", routine_title="Hip Hop Kids", studio_code="ABC")
    >>> build_file_name(r, "{entry_number}_{routine_title}_{studio_code}")
    '101_Hip_Hop_Kids_ABC'
    """
    now = now or datetime.now()
    name = (
        pattern
        .replace("{entry_number}", routine.entry_number)
        .replace("{routine_title}", _WHITESPACE.sub("_", routine.routine_title))
        .replace("{studio_code}", routine.studio_code)
        .replace("{category}", _WHITESPACE.sub("_", routine.category))
        .replace("{date}", now.strftime("%Y-%m-%d"))
        .replace("{time}", now.strftime("%H-%M-%S"))
    )
    return _INVALID_CHARS.sub("_", name)


def file_prefix(routine: Routine, pattern: str, now: Optional[datetime] = None) -> str:
    """Prefix for encoded outputs: the entry number, else the pattern name."""
    if routine.entry_number.strip():
        return sanitize(routine.entry_number)
    return build_file_name(routine, pattern, now)


def routine_output_dir(
    routine: Routine,
    settings: AppSettings,
    raw_output_path: Optional[str] = None,
    share_code: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[Path]:
    """
    Destination folder for a routine's files.

    Base directory is the configured output directory, else the folder the
    device wrote the raw file to. With a resolved share code the layout is
    ``<base>/<share code>/<entry>``, otherwise ``<base>/<pattern name>``.

    Returns:
        None when no base directory is known
    """
    pattern = settings.file_naming.pattern
    base = settings.file_naming.output_directory
    if not base and raw_output_path:
        base = os.path.dirname(raw_output_path)
    if not base:
        return None

    if share_code:
        entry = sanitize(routine.entry_number or build_file_name(routine, pattern, now))
        return Path(base) / sanitize(share_code) / entry
    return Path(base) / build_file_name(routine, pattern, now)


def calc_offset(scheduled_time: str, actual: datetime) -> str:
    """
    Human-readable offset of ``actual`` from a same-day "HH:MM" schedule.

    >>> calc_offset("10:00", datetime(2024, 5, 1, 10, 7))
    '+7m'
    >>> calc_offset("10:00", datetime(2024, 5, 1, 8, 45))
    '-1h 15m'
    """
    try:
        hours, minutes = (int(part) for part in scheduled_time.split(":"))
        scheduled = actual.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    except ValueError:
        return "invalid schedule time"

    diff_seconds = (actual - scheduled).total_seconds()
    abs_minutes = abs(round(diff_seconds / 60))
    if abs_minutes < 1:
        return "on time"
    sign = "+" if diff_seconds >= 0 else "-"
    h, m = divmod(abs_minutes, 60)
    return f"{sign}{h}h {m}m" if h > 0 else f"{sign}{m}m"
