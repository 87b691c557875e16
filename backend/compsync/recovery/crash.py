"""
Crash recovery.

Runs once at startup, after the job queue has been loaded (which already
reset interrupted RUNNING jobs to PENDING):

1. Kill an encoder left running by the previous process (PID file)
2. Delete leftover smart-mode temp videos in routine folders
3. Find raw recordings that never got encoded and, if confirmed,
   queue fresh encode jobs for them
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Set

from ..encoding.commands import TEMP_VIDEO_NAME
from ..encoding.process import PidFile, kill_stale_process
from ..encoding.supervisor import EncoderSupervisor
from ..jobs.models import EncodePayload, JobType
from ..jobs.queue import JobQueue
from ..recording.files import ARCHIVE_DIR_NAME
from ..settings.models import AppSettings

logger = logging.getLogger(__name__)

RAW_EXTENSIONS = (".mkv", ".mp4", ".flv")

# Files the encoder produces; never treated as raw recordings
_ENCODED_NAME = re.compile(r"(^|_)(P_performance|J\d+_commentary)\.mp4$")


@dataclass
class OrphanedFile:
    """A raw recording with no encoded performance output next to it."""

    file_path: Path
    file_name: str
    size: int
    modified_at: datetime


@dataclass
class RecoveryReport:
    stale_encoder_killed: bool = False
    resumed_jobs: int = 0
    temp_files_removed: int = 0
    orphans: List[OrphanedFile] = field(default_factory=list)
    orphans_recovered: int = 0


ConfirmCallback = Callable[[List[OrphanedFile]], bool]


def iter_routine_dirs(output_dir: Path) -> Iterator[Path]:
    """
    Routine folders under ``output_dir``.

    Covers both layouts: ``<base>/<pattern name>`` (one level) and
    ``<base>/<share code>/<entry>`` (two levels). Archive folders are skipped.
    """
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        return
    for first in sorted(output_dir.iterdir()):
        if not first.is_dir() or first.name == ARCHIVE_DIR_NAME:
            continue
        yield first
        for second in sorted(first.iterdir()):
            if second.is_dir() and second.name != ARCHIVE_DIR_NAME:
                yield second


def cleanup_temp_videos(output_dir: Path) -> int:
    """Delete every leftover smart-mode temp video. Returns the count removed."""
    removed = 0
    for routine_dir in iter_routine_dirs(output_dir):
        temp = routine_dir / TEMP_VIDEO_NAME
        if not temp.is_file():
            continue
        try:
            temp.unlink()
            removed += 1
            logger.info(f"[Recovery] Removed leftover temp video {temp}")
        except OSError as e:
            logger.warning(f"[Recovery] Could not remove {temp}: {e}")
    return removed


def _is_raw_recording(path: Path) -> bool:
    if path.suffix.lower() not in RAW_EXTENSIONS:
        return False
    if path.name == TEMP_VIDEO_NAME:
        return False
    return not _ENCODED_NAME.search(path.name)


def queued_input_paths(job_queue: JobQueue) -> Set[Path]:
    """Inputs of encode jobs that are still pending or running."""
    active = job_queue.get_pending(JobType.ENCODE) + job_queue.get_running(JobType.ENCODE)
    paths: Set[Path] = set()
    for job in active:
        input_path = job.payload.get("input_path")
        if isinstance(input_path, str) and input_path:
            paths.add(Path(input_path).resolve())
    return paths


def scan_for_orphans(
    output_dir: Optional[Path],
    job_queue: Optional[JobQueue] = None,
) -> List[OrphanedFile]:
    """
    Raw recordings whose folder has no ``*performance.mp4``.

    Recordings that are the input of a pending or running encode job in
    ``job_queue`` are not orphans; the queue will encode them.
    """
    if not output_dir or not Path(output_dir).is_dir():
        return []

    logger.info(f"[Recovery] Scanning for orphaned recordings in {output_dir}")
    queued = queued_input_paths(job_queue) if job_queue is not None else set()
    orphans: List[OrphanedFile] = []
    for routine_dir in iter_routine_dirs(Path(output_dir)):
        files = [f for f in routine_dir.iterdir() if f.is_file()]
        if any(f.name.endswith("performance.mp4") for f in files):
            continue
        for f in sorted(files):
            if not _is_raw_recording(f):
                continue
            if f.resolve() in queued:
                logger.info(f"[Recovery] {f.name} already has a queued encode job")
                continue
            stat = f.stat()
            orphans.append(
                OrphanedFile(
                    file_path=f,
                    file_name=f.name,
                    size=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime),
                )
            )

    logger.info(f"[Recovery] Found {len(orphans)} orphaned recordings")
    return orphans


def recover_orphans(
    orphans: List[OrphanedFile],
    supervisor: EncoderSupervisor,
    settings: AppSettings,
    confirm: Optional[ConfirmCallback] = None,
) -> int:
    """
    Queue encode jobs for orphaned recordings once ``confirm`` approves.

    The routine id of each job is the name of the folder holding the
    recording; the outputs carry no prefix.

    Returns:
        Number of jobs queued
    """
    if not orphans:
        return 0
    if confirm is None or not confirm(orphans):
        logger.info(f"[Recovery] {len(orphans)} orphaned recordings left untouched")
        return 0

    for orphan in orphans:
        folder = orphan.file_path.parent
        logger.info(f"[Recovery] Recovering orphan: {orphan.file_name}")
        payload = EncodePayload(
            input_path=str(orphan.file_path),
            output_dir=str(folder),
            judge_count=settings.competition.judge_count,
            track_mapping=dict(settings.audio_track_mapping),
            processing_mode=settings.ffmpeg.processing_mode,
            file_prefix="",
        )
        supervisor.enqueue_job(folder.name, payload)
    return len(orphans)


def run_crash_recovery(
    supervisor: EncoderSupervisor,
    pid_file: Optional[PidFile] = None,
    confirm: Optional[ConfirmCallback] = None,
) -> RecoveryReport:
    """Full startup recovery pass. Call after JobQueue.load()."""
    context = supervisor.context
    settings = context.settings()
    report = RecoveryReport()

    if pid_file is not None:
        report.stale_encoder_killed = kill_stale_process(pid_file)

    report.resumed_jobs = context.job_queue.resumed_count
    if report.resumed_jobs:
        logger.info(f"[Recovery] {report.resumed_jobs} jobs resumed from previous session")

    output_dir = settings.file_naming.output_directory
    if output_dir:
        report.temp_files_removed = cleanup_temp_videos(Path(output_dir))
        report.orphans = scan_for_orphans(Path(output_dir), context.job_queue)
        report.orphans_recovered = recover_orphans(report.orphans, supervisor, settings, confirm)
    else:
        logger.info("[Recovery] No output directory configured, skipping folder scan")
    return report
