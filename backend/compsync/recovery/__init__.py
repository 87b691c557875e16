"""
Startup crash recovery.
"""

from .crash import (
    OrphanedFile,
    RecoveryReport,
    cleanup_temp_videos,
    recover_orphans,
    run_crash_recovery,
    scan_for_orphans,
)

__all__ = [
    "OrphanedFile",
    "RecoveryReport",
    "cleanup_temp_videos",
    "recover_orphans",
    "run_crash_recovery",
    "scan_for_orphans",
]
