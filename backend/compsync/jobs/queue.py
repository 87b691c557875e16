"""
Durable job queue.

Jobs are held in memory in insertion order and persisted as a JSON array
(temp file + rename, so a partial write is never visible).

Durability rules:
- Transitions out of RUNNING, or into DONE/FAILED, flush synchronously.
  A crash can lose at most an enqueue, never leave a stale RUNNING.
- Everything else is debounced (500 ms).
- On load, RUNNING jobs are reset to PENDING.

Retry rules:
- Entering RUNNING increments attempts.
- FAILED with attempts < max_attempts is rewritten to PENDING.
- get_next() skips PENDING jobs still inside their backoff window:
  min(5s * 2^(attempts-1), 60s) from updated_at.
"""

import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..persistence import DebouncedSaver, LoadError, atomic_write_json, read_json
from .models import Job, JobStatus, JobType

logger = logging.getLogger(__name__)

QUEUE_FILE = "job-queue.json"

BACKOFF_BASE_SECONDS = 5.0
BACKOFF_MAX_SECONDS = 60.0
SAVE_DEBOUNCE_SECONDS = 0.5


def backoff_seconds(attempts: int) -> float:
    """Retry delay after ``attempts`` failed runs (0 if never run)."""
    if attempts <= 0:
        return 0.0
    return min(BACKOFF_BASE_SECONDS * (2 ** (attempts - 1)), BACKOFF_MAX_SECONDS)


class JobQueue:
    """
    Typed, persistent work queue.

    Thread-safe: the encoder worker, the HTTP layer and device event
    handlers may all touch the queue.
    """

    def __init__(
        self,
        path: Path,
        clock: Optional[Callable[[], datetime]] = None,
        debounce_seconds: float = SAVE_DEBOUNCE_SECONDS,
    ):
        """
        Args:
            path: JSON file holding the queue
            clock: Time source (defaults to datetime.now); injectable for tests
            debounce_seconds: Delay for coalesced writes
        """
        self.path = Path(path)
        self._clock = clock or datetime.now
        self._jobs: List[Job] = []
        self._lock = threading.RLock()
        self._saver = DebouncedSaver(self._write, debounce_seconds, name="job queue")
        self.resumed_count = 0

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self, reset_running: bool = True) -> int:
        """
        Load jobs from disk, resetting interrupted RUNNING jobs to PENDING.

        A missing file starts an empty queue. An unreadable file is logged
        and the queue starts fresh. Individual malformed rows are dropped.

        Args:
            reset_running: False loads a read-only view for inspection
                (another process may own the queue): RUNNING jobs keep
                their status and nothing is written back

        Returns:
            Number of jobs loaded
        """
        try:
            raw = read_json(self.path)
        except LoadError as e:
            logger.error(f"[Queue] Failed to load from disk, starting fresh: {e}")
            raw = None

        jobs: List[Job] = []
        if isinstance(raw, list):
            for row in raw:
                try:
                    jobs.append(Job.model_validate(row))
                except ValidationError as e:
                    logger.warning(f"[Queue] Dropping malformed job row: {e}")
        elif raw is not None:
            logger.error("[Queue] Queue file is not a JSON array, starting fresh")

        with self._lock:
            self._jobs = jobs
            reset = 0
            now = self._clock()
            for job in self._jobs:
                if reset_running and job.status == JobStatus.RUNNING:
                    job.status = JobStatus.PENDING
                    job.updated_at = now
                    reset += 1
            self.resumed_count = reset

        if reset:
            logger.info(f"[Queue] Reset {reset} interrupted jobs to pending")
            self._saver.save_now()
        logger.info(f"[Queue] Loaded {len(jobs)} jobs from {self.path}")
        return len(jobs)

    def _write(self) -> None:
        with self._lock:
            data = [job.model_dump(mode="json") for job in self._jobs]
        atomic_write_json(self.path, data)

    def flush(self) -> None:
        """Synchronous write for critical moments."""
        self._saver.save_now()

    def close(self) -> None:
        """Cancel the debounce timer and flush. Call at shutdown."""
        self._saver.close()

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def enqueue(
        self,
        job_type: JobType,
        routine_id: str,
        payload: Dict[str, Any],
        max_attempts: int = 3,
    ) -> Job:
        """
        Append a new PENDING job.

        Returns:
            The created job (a copy; mutate via update_status)
        """
        now = self._clock()
        job = Job(
            type=job_type,
            routine_id=routine_id,
            payload=dict(payload),
            max_attempts=max_attempts,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._jobs.append(job)
        logger.info(
            f"[Queue] Enqueued {job_type.value} job {job.id} for routine {routine_id}"
        )
        self._saver.save_eventually()
        return job.model_copy(deep=True)

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        progress: Optional[float] = None,
        allow_retry: bool = True,
    ) -> Optional[Job]:
        """
        Transition a job.

        Args:
            job_id: Job identifier
            status: Requested status
            error: Optional error text to record
            progress: Optional progress (0-100)
            allow_retry: When False, FAILED stays FAILED even with attempts left
                (operator cancellation, structurally broken payloads)

        Returns:
            Copy of the job after the transition, or None if not found
        """
        with self._lock:
            job = self._find(job_id)
            if job is None:
                logger.warning(f"[Queue] Job {job_id} not found for status update")
                return None

            previous = job.status
            job.status = status
            job.updated_at = self._clock()

            if status == JobStatus.RUNNING:
                job.attempts += 1
            if error is not None:
                job.error = error
            if progress is not None:
                job.progress = progress

            if (
                status == JobStatus.FAILED
                and allow_retry
                and job.attempts < job.max_attempts
            ):
                job.status = JobStatus.PENDING
                logger.info(
                    f"[Queue] {job.type.value} job {job_id} failed "
                    f"(attempt {job.attempts}/{job.max_attempts}), will retry"
                )

            logger.info(f"[Queue] Job {job_id} {previous.value} -> {job.status.value}")
            snapshot = job.model_copy(deep=True)

        if previous == JobStatus.RUNNING or status in (JobStatus.DONE, JobStatus.FAILED):
            self._saver.save_now()
        else:
            self._saver.save_eventually()
        return snapshot

    def get_next(self, job_type: JobType) -> Optional[Job]:
        """
        Oldest PENDING job of ``job_type`` whose backoff window has elapsed.

        Jobs still in backoff are skipped, not removed.
        """
        now = self._clock()
        with self._lock:
            for job in self._jobs:
                if job.type != job_type or job.status != JobStatus.PENDING:
                    continue
                wait = backoff_seconds(job.attempts)
                if wait and now - job.updated_at < timedelta(seconds=wait):
                    continue
                return job.model_copy(deep=True)
        return None

    def seconds_until_ready(self, job_type: JobType) -> Optional[float]:
        """
        Time until the next PENDING job of ``job_type`` becomes eligible.

        Returns:
            0.0 if one is ready now, the shortest remaining backoff otherwise,
            or None if there are no pending jobs of that type
        """
        now = self._clock()
        shortest: Optional[float] = None
        with self._lock:
            for job in self._jobs:
                if job.type != job_type or job.status != JobStatus.PENDING:
                    continue
                ready_at = job.updated_at + timedelta(seconds=backoff_seconds(job.attempts))
                remaining = max(0.0, (ready_at - now).total_seconds())
                if shortest is None or remaining < shortest:
                    shortest = remaining
        return shortest

    def remove(self, job_id: str) -> bool:
        """
        Delete a job. RUNNING jobs cannot be removed.

        Returns:
            True if the job was removed
        """
        with self._lock:
            job = self._find(job_id)
            if job is None:
                return False
            if job.status == JobStatus.RUNNING:
                logger.warning(f"[Queue] Cannot remove running job {job_id}")
                return False
            self._jobs.remove(job)
        logger.info(f"[Queue] Removed {job.type.value} job {job_id}")
        self._saver.save_eventually()
        return True

    def retry(self, job_id: str) -> bool:
        """
        Reset a FAILED job for manual retry, bypassing backoff.

        Returns:
            True if the job was reset
        """
        with self._lock:
            job = self._find(job_id)
            if job is None or job.status != JobStatus.FAILED:
                return False
            job.status = JobStatus.PENDING
            job.attempts = 0
            job.error = None
            job.progress = None
            job.updated_at = self._clock()
        logger.info(f"[Queue] Manually retrying job {job_id}")
        self._saver.save_now()
        return True

    def prune_completed(self, older_than_seconds: float) -> int:
        """
        Remove DONE jobs last updated before the cutoff.

        Returns:
            Number of jobs pruned
        """
        cutoff = self._clock() - timedelta(seconds=older_than_seconds)
        with self._lock:
            before = len(self._jobs)
            self._jobs = [
                j for j in self._jobs
                if j.status != JobStatus.DONE or j.updated_at > cutoff
            ]
            pruned = before - len(self._jobs)
        if pruned:
            logger.info(f"[Queue] Pruned {pruned} completed jobs")
            self._saver.save_eventually()
        return pruned

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._find(job_id)
            return job.model_copy(deep=True) if job else None

    def get_all(self) -> List[Job]:
        with self._lock:
            return [j.model_copy(deep=True) for j in self._jobs]

    def get_pending(self, job_type: Optional[JobType] = None) -> List[Job]:
        return self._by_status(JobStatus.PENDING, job_type)

    def get_running(self, job_type: Optional[JobType] = None) -> List[Job]:
        return self._by_status(JobStatus.RUNNING, job_type)

    def get_failed(self, job_type: Optional[JobType] = None) -> List[Job]:
        return self._by_status(JobStatus.FAILED, job_type)

    def get_by_routine(self, routine_id: str) -> List[Job]:
        with self._lock:
            return [j.model_copy(deep=True) for j in self._jobs if j.routine_id == routine_id]

    def count(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _by_status(self, status: JobStatus, job_type: Optional[JobType]) -> List[Job]:
        with self._lock:
            return [
                j.model_copy(deep=True)
                for j in self._jobs
                if j.status == status and (job_type is None or j.type == job_type)
            ]

    def _find(self, job_id: str) -> Optional[Job]:
        for job in self._jobs:
            if job.id == job_id:
                return job
        return None
