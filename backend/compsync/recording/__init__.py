"""
Recording lifecycle: naming, raw file handling and the orchestrator.

The orchestrator is imported from ``compsync.recording.orchestrator``
directly; this package only re-exports the leaf helpers.
"""

from .errors import NavigationBusyError, RecordingError
from .files import archive_existing_files, move_file, wait_for_file_lock
from .naming import build_file_name, calc_offset, file_prefix, routine_output_dir, sanitize

__all__ = [
    "NavigationBusyError",
    "RecordingError",
    "archive_existing_files",
    "move_file",
    "wait_for_file_lock",
    "build_file_name",
    "calc_offset",
    "file_prefix",
    "routine_output_dir",
    "sanitize",
]
