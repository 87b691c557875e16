"""
Startup validation.

All checks are advisory: they log and report, never block startup.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from ..encoding.process import find_ffmpeg, validate_ffmpeg
from ..jobs.models import JobType
from ..jobs.queue import JobQueue
from ..settings.models import AppSettings

logger = logging.getLogger(__name__)

DISK_WARNING_THRESHOLD_GB = 10.0


class StartupReport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ffmpeg_available: bool
    ffmpeg_version: Optional[str] = None
    disk_free_gb: float = 0.0
    disk_warning: bool = False
    output_dir_writable: Optional[bool] = None
    resumed_jobs: int = 0
    orphaned_files: int = 0

    @property
    def warnings(self) -> List[str]:
        items = []
        if not self.ffmpeg_available:
            items.append("FFmpeg not found")
        if self.disk_warning:
            items.append(f"Only {self.disk_free_gb}GB disk space")
        if self.output_dir_writable is False:
            items.append("Output directory not writable")
        return items


def disk_free_gb(path: Path) -> Optional[float]:
    try:
        usage = shutil.disk_usage(path)
    except OSError as e:
        logger.warning(f"[Startup] Could not check disk space for {path}: {e}")
        return None
    return round(usage.free / (1024 ** 3), 1)


def run_startup_checks(
    settings: AppSettings,
    job_queue: Optional[JobQueue] = None,
    orphaned_files: int = 0,
    ffmpeg_path: Optional[str] = None,
) -> StartupReport:
    logger.info("[Startup] Running startup validation...")

    version = validate_ffmpeg(ffmpeg_path or find_ffmpeg(settings.ffmpeg.path))
    if version:
        logger.info(f"[Startup] FFmpeg available: {version}")
    else:
        logger.warning("[Startup] FFmpeg not found, encoding will fail")

    free_gb = 0.0
    disk_warning = False
    writable: Optional[bool] = None
    output_dir = settings.file_naming.output_directory
    if output_dir:
        measured = disk_free_gb(Path(output_dir))
        if measured is not None:
            free_gb = measured
            disk_warning = measured < DISK_WARNING_THRESHOLD_GB
            if disk_warning:
                logger.warning(f"[Startup] Low disk space on output drive: {free_gb}GB free")
            else:
                logger.info(f"[Startup] Disk space on output drive: {free_gb}GB free")

        writable = os.path.isdir(output_dir) and os.access(output_dir, os.W_OK)
        if writable:
            logger.info(f"[Startup] Output directory writable: {output_dir}")
        else:
            logger.warning(f"[Startup] Output directory not writable: {output_dir}")
    else:
        logger.info("[Startup] No output directory configured")

    resumed = len(job_queue.get_pending(JobType.ENCODE)) if job_queue else 0

    report = StartupReport(
        ffmpeg_available=version is not None,
        ffmpeg_version=version,
        disk_free_gb=free_gb,
        disk_warning=disk_warning,
        output_dir_writable=writable,
        resumed_jobs=resumed,
        orphaned_files=orphaned_files,
    )

    parts = ["Startup complete."]
    parts.extend(f"WARNING: {w}." for w in report.warnings)
    if resumed:
        parts.append(f"{resumed} jobs resumed from previous session.")
    logger.info(f"[Startup] {' '.join(parts)}")
    return report
