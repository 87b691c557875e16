"""
FFmpeg process management.

Design rules:
- One subprocess per invocation, hard timeout on every invocation
- Timeout / cancel: SIGTERM, then SIGKILL after a 5 second grace period
- PID written to a small file while the process runs so that an encoder
  orphaned by an application crash can be killed on next startup
- Encoder priority lowered (best effort) so it never starves capture
- Non-zero exit code = failure, stderr tail kept for the job error
"""

import logging
import os
import shutil
import subprocess
import threading
from pathlib import Path
from typing import List, Optional

import psutil

from ..settings.models import CpuPriority
from .errors import (
    EncoderCancelledError,
    EncoderNotFoundError,
    EncoderProcessError,
    EncoderTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 600.0
KILL_GRACE_SECONDS = 5.0
VERSION_PROBE_TIMEOUT_SECONDS = 5.0
STDERR_TAIL_CHARS = 500

PID_FILE_NAME = "ffmpeg.pid"

COMMON_FFMPEG_PATHS = [
    "/usr/local/bin/ffmpeg",
    "/usr/bin/ffmpeg",
    "/opt/homebrew/bin/ffmpeg",
]

# POSIX nice values; Windows uses psutil priority classes instead
_POSIX_NICE = {
    CpuPriority.BELOW_NORMAL: 10,
    CpuPriority.IDLE: 19,
}
_WINDOWS_CLASS = {
    CpuPriority.BELOW_NORMAL: "BELOW_NORMAL_PRIORITY_CLASS",
    CpuPriority.IDLE: "IDLE_PRIORITY_CLASS",
}


def find_ffmpeg(configured_path: Optional[str] = None) -> str:
    """
    Resolve the ffmpeg executable.

    Order: configured path (if it exists), PATH, common install locations,
    then bare "ffmpeg" as a last resort.
    """
    if configured_path and configured_path != "(bundled)":
        if os.path.isfile(configured_path):
            return configured_path
        logger.warning(f"[FFmpeg] Custom ffmpeg path not found: {configured_path}, falling back")

    found = shutil.which("ffmpeg")
    if found:
        return found

    for path in COMMON_FFMPEG_PATHS:
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path

    logger.warning("[FFmpeg] No ffmpeg found, assuming ffmpeg is on PATH")
    return "ffmpeg"


def validate_ffmpeg(
    ffmpeg_path: Optional[str] = None,
    timeout: float = VERSION_PROBE_TIMEOUT_SECONDS,
) -> Optional[str]:
    """
    Probe ``ffmpeg -version`` for startup diagnostics.

    Advisory only: never raises.

    Returns:
        First line of the version banner, or None if ffmpeg is unusable
    """
    path = ffmpeg_path or find_ffmpeg()
    try:
        result = subprocess.run(
            [path, "-version"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"[FFmpeg] Version probe failed: {e}")
        return None
    if result.returncode != 0:
        logger.warning(f"[FFmpeg] Version probe exited with code {result.returncode}")
        return None
    first_line = (result.stdout or "").strip().splitlines()
    return first_line[0] if first_line else None


def apply_process_priority(pid: int, priority: CpuPriority) -> bool:
    """
    Lower the scheduling priority of ``pid``. Best effort.

    Returns:
        True if the priority was changed
    """
    if priority == CpuPriority.NORMAL:
        return False
    try:
        process = psutil.Process(pid)
        if psutil.WINDOWS:
            process.nice(getattr(psutil, _WINDOWS_CLASS[priority]))
        else:
            process.nice(_POSIX_NICE[priority])
        return True
    except (psutil.Error, OSError) as e:
        logger.debug(f"[FFmpeg] Could not set priority {priority.value} on PID {pid}: {e}")
        return False


class PidFile:
    """Small file holding the PID of the running encoder."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def write(self, pid: int) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(str(pid), encoding="utf-8")
        except OSError as e:
            logger.warning(f"[FFmpeg] Could not write PID file {self.path}: {e}")

    def read(self) -> Optional[int]:
        try:
            return int(self.path.read_text(encoding="utf-8").strip())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"[FFmpeg] Unreadable PID file {self.path}: {e}")
            return None

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[FFmpeg] Could not remove PID file {self.path}: {e}")


def kill_stale_process(pid_file: PidFile, expected_name: Optional[str] = "ffmpeg") -> bool:
    """
    Force-kill an encoder left running by a previous crash.

    Ignores "no such process". When ``expected_name`` is given, a live
    process whose name does not contain it is left alone (the PID was
    reused by something else). The PID file is removed either way.

    Returns:
        True if a process was killed
    """
    pid = pid_file.read()
    if pid is None:
        return False

    killed = False
    try:
        process = psutil.Process(pid)
        name = process.name()
        if expected_name and expected_name not in name.lower():
            logger.warning(
                f"[FFmpeg] PID {pid} from stale PID file is '{name}', not {expected_name}; leaving it"
            )
        else:
            logger.warning(f"[FFmpeg] Killing orphaned encoder PID {pid} ({name})")
            process.kill()
            process.wait(timeout=KILL_GRACE_SECONDS)
            killed = True
    except psutil.NoSuchProcess:
        logger.info(f"[FFmpeg] Stale encoder PID {pid} is no longer running")
    except psutil.TimeoutExpired:
        logger.warning(f"[FFmpeg] PID {pid} did not exit after kill")
        killed = True
    except psutil.AccessDenied as e:
        logger.warning(f"[FFmpeg] Not permitted to kill PID {pid}: {e}")
    finally:
        pid_file.clear()
    return killed


class FFmpegProcessRunner:
    """
    Runs ffmpeg invocations one at a time.

    ``cancel()`` may be called from another thread while ``run()`` is
    blocked; the blocked call then raises EncoderCancelledError unless
    ffmpeg had already exited cleanly. Later calls on a cancelled runner
    raise EncoderCancelledError before starting a process.
    """

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        kill_grace_seconds: float = KILL_GRACE_SECONDS,
        cpu_priority: CpuPriority = CpuPriority.NORMAL,
        pid_file: Optional[PidFile] = None,
    ):
        self.ffmpeg_path = ffmpeg_path or find_ffmpeg()
        self.timeout_seconds = timeout_seconds
        self.kill_grace_seconds = kill_grace_seconds
        self.cpu_priority = cpu_priority
        self.pid_file = pid_file
        self._process: Optional[subprocess.Popen] = None
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def active_pid(self) -> Optional[int]:
        with self._lock:
            return self._process.pid if self._process else None

    def build_command(self, args: List[str]) -> List[str]:
        return [self.ffmpeg_path, *args]

    def run(self, args: List[str], timeout: Optional[float] = None) -> None:
        """
        Run one ffmpeg invocation to completion.

        Raises:
            EncoderNotFoundError: Binary could not be started
            EncoderTimeoutError: Timeout hit, process killed
            EncoderCancelledError: cancel() was called
            EncoderProcessError: Non-zero exit
        """
        timeout = timeout if timeout is not None else self.timeout_seconds
        cmd = self.build_command(args)
        logger.info(f"[FFmpeg] Executing: {' '.join(cmd)}")

        with self._lock:
            if self._cancelled:
                raise EncoderCancelledError()
            try:
                process = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                    text=True,
                    errors="replace",
                )
            except OSError as e:
                raise EncoderNotFoundError(self.ffmpeg_path, str(e)) from e
            self._process = process

        if self.pid_file:
            self.pid_file.write(process.pid)
        apply_process_priority(process.pid, self.cpu_priority)
        logger.info(f"[FFmpeg] Started PID {process.pid}")

        try:
            try:
                _, stderr = process.communicate(timeout=timeout)
            except subprocess.TimeoutExpired:
                logger.error(f"[FFmpeg] PID {process.pid} exceeded {timeout:g}s timeout")
                self._terminate(process)
                process.communicate()
                raise EncoderTimeoutError(timeout)
        finally:
            with self._lock:
                self._process = None
            if self.pid_file:
                self.pid_file.clear()

        exit_code = process.returncode
        logger.info(f"[FFmpeg] PID {process.pid} exited with code {exit_code}")

        if exit_code != 0 and self._cancelled:
            raise EncoderCancelledError()
        if exit_code != 0:
            tail = (stderr or "").strip()[-STDERR_TAIL_CHARS:]
            logger.error(f"[FFmpeg] Failed: {tail or exit_code}")
            raise EncoderProcessError(exit_code, tail)

    def cancel(self) -> bool:
        """
        Terminate the in-flight process, if any.

        Returns:
            True if a running process was signalled
        """
        with self._lock:
            self._cancelled = True
            process = self._process
        if process is None:
            return False
        self._terminate(process)
        return True

    def _terminate(self, process: subprocess.Popen) -> None:
        """SIGTERM, then SIGKILL if the process is still alive after the grace period."""
        logger.info(f"[FFmpeg] Sending SIGTERM to PID {process.pid}")
        try:
            process.terminate()
            try:
                process.wait(timeout=self.kill_grace_seconds)
            except subprocess.TimeoutExpired:
                logger.warning(f"[FFmpeg] PID {process.pid} did not terminate, sending SIGKILL")
                process.kill()
                process.wait()
        except ProcessLookupError:
            pass  # Process already dead
