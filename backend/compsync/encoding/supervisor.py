"""
Encoder supervisor.

Single-flight worker that drains encode jobs from the durable queue.

Design rules:
- Exactly one encode in flight; the supervisor is the only caller of
  JobQueue.get_next(ENCODE)
- The drain loop is iterative and re-checks the queue under the lock
  before going idle, so a job enqueued while the loop winds down is
  never stranded
- Jobs inside a retry backoff window are picked up by a timer wake-up
- Routine status follows the job: encoding while attempts remain,
  failed once the job is terminally failed
"""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, List, Optional

from ..context import PipelineContext
from ..jobs.errors import InvalidJobPayloadError
from ..jobs.models import EncodePayload, Job, JobStatus, JobType
from ..recording.naming import file_prefix
from ..routines.errors import RoutineError
from ..routines.models import EncodedFile, Routine, RoutineStatus
from ..services.ports import EncodeProgress
from ..settings.models import AppSettings
from .commands import OutputTarget
from .errors import EncoderCancelledError, EncoderError, NoOutputProducedError
from .pipeline import CommandRunner, EncodePipeline, remove_temp_video
from .process import FFmpegProcessRunner, PidFile, find_ffmpeg

logger = logging.getLogger(__name__)

# Statuses encode_all() picks up
REENCODABLE_STATUSES = (RoutineStatus.RECORDED, RoutineStatus.FAILED)

RunnerFactory = Callable[[AppSettings], CommandRunner]


def build_encode_payload(
    routine: Routine,
    settings: AppSettings,
    input_path: Optional[str] = None,
    output_dir: Optional[str] = None,
) -> EncodePayload:
    """
    Bake the current settings into an encode payload.

    Later settings changes never affect a job that already exists.
    """
    input_path = input_path or routine.output_path
    if not input_path:
        raise RoutineError(f"Routine {routine.id} has no recording to encode")
    return EncodePayload(
        input_path=input_path,
        output_dir=output_dir or routine.output_dir or os.path.dirname(input_path),
        judge_count=settings.competition.judge_count,
        track_mapping=dict(settings.audio_track_mapping),
        processing_mode=settings.ffmpeg.processing_mode,
        file_prefix=file_prefix(routine, settings.file_naming.pattern),
    )


class EncoderSupervisor:
    """
    Owns the encode worker.

    ``background=True`` drains on a daemon thread; ``background=False``
    drains inline in the calling thread.
    """

    def __init__(
        self,
        context: PipelineContext,
        runner_factory: Optional[RunnerFactory] = None,
        background: bool = True,
        pid_file: Optional[PidFile] = None,
        pipeline: Optional[EncodePipeline] = None,
    ):
        self.context = context
        self._runner_factory = runner_factory or self._default_runner
        self._background = background
        self._pid_file = pid_file
        self._pipeline = pipeline or EncodePipeline()

        self._lock = threading.Lock()
        self._active = False
        self._current_job_id: Optional[str] = None
        self._current_runner: Optional[CommandRunner] = None
        self._wake_timer: Optional[threading.Timer] = None
        self._thread: Optional[threading.Thread] = None

    def _default_runner(self, settings: AppSettings) -> FFmpegProcessRunner:
        return FFmpegProcessRunner(
            ffmpeg_path=find_ffmpeg(settings.ffmpeg.path),
            timeout_seconds=settings.ffmpeg.timeout_seconds,
            cpu_priority=settings.ffmpeg.cpu_priority,
            pid_file=self._pid_file,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self._current_job_id is not None

    @property
    def current_job_id(self) -> Optional[str]:
        with self._lock:
            return self._current_job_id

    def get_queue_length(self) -> int:
        """Pending encode jobs plus the one in flight."""
        pending = len(self.context.job_queue.get_pending(JobType.ENCODE))
        return pending + (1 if self.is_busy else 0)

    def enqueue_job(self, routine_id: str, payload: EncodePayload) -> Job:
        """Persist an encode job and wake the worker."""
        job = self.context.job_queue.enqueue(
            JobType.ENCODE,
            routine_id,
            payload.model_dump(mode="json"),
        )
        self._send_progress(routine_id, "queued", 0, payload.judge_count + 1)
        self.kick()
        return job

    def encode_routine(self, routine_id: str) -> Job:
        """
        Manually (re)encode one routine from its raw recording.

        An existing pending or running job for the routine is returned
        instead of enqueuing a duplicate.

        Raises:
            RoutineNotFoundError / NoCompetitionLoadedError
            RoutineError: Routine has no raw recording
            InvalidRoutineTransitionError: Routine cannot be queued now
        """
        store = self.context.store
        routine = store.get_routine_or_raise(routine_id)
        for job in self.context.job_queue.get_by_routine(routine_id):
            if job.type == JobType.ENCODE and job.status in (JobStatus.PENDING, JobStatus.RUNNING):
                logger.info(f"[Queue] Routine {routine_id} already has {job.status.value} job {job.id}")
                return job

        payload = build_encode_payload(routine, self.context.settings())
        store.update_routine_status(routine_id, RoutineStatus.QUEUED, error=None)
        job = self.enqueue_job(routine_id, payload)
        self.context.broadcast_full_state()
        return job

    def encode_all(self) -> int:
        """
        Queue every recorded or failed routine that has a raw recording.

        Returns:
            Number of routines queued
        """
        queued = 0
        for routine in self.context.store.get_filtered_routines():
            if routine.status not in REENCODABLE_STATUSES or not routine.output_path:
                continue
            try:
                self.encode_routine(routine.id)
                queued += 1
            except RoutineError as e:
                logger.warning(f"[FFmpeg] Skipping routine {routine.id}: {e}")
        logger.info(f"[FFmpeg] Encode all: queued {queued} routines")
        return queued

    def cancel_current(self) -> bool:
        """
        Terminate the in-flight encode.

        The job fails without automatic retry and the worker moves on to
        the next job.

        Returns:
            True if an encode was running
        """
        with self._lock:
            runner = self._current_runner
            job_id = self._current_job_id
        if runner is None or not hasattr(runner, "cancel"):
            return False
        logger.info(f"[FFmpeg] Cancelling current encode (job {job_id})")
        return bool(runner.cancel())

    def kick(self) -> None:
        """Start draining if the worker is idle."""
        with self._lock:
            if self._active:
                return
            self._active = True
            self._cancel_wake_timer_locked()
            background = self._background

        if background:
            thread = threading.Thread(target=self._drain, name="encoder-worker", daemon=True)
            self._thread = thread
            thread.start()
        else:
            self._drain()

    def run_pending(self) -> int:
        """
        Drain ready jobs in the calling thread.

        Returns:
            Number of jobs processed (0 if a worker is already draining)
        """
        with self._lock:
            if self._active:
                return 0
            self._active = True
            self._cancel_wake_timer_locked()
        return self._drain()

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop retry wake-ups and give the worker a moment to finish."""
        with self._lock:
            self._cancel_wake_timer_locked()
            thread = self._thread
        if thread is not None and thread.is_alive():
            thread.join(timeout)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _drain(self) -> int:
        queue = self.context.job_queue
        processed = 0
        try:
            while True:
                job = queue.get_next(JobType.ENCODE)
                if job is None:
                    with self._lock:
                        job = queue.get_next(JobType.ENCODE)
                        if job is None:
                            self._active = False
                            wait = queue.seconds_until_ready(JobType.ENCODE)
                            if wait is not None:
                                self._arm_wake_timer_locked(wait)
                            return processed
                try:
                    self._process(job)
                except Exception as e:
                    logger.exception(f"[FFmpeg] Unexpected error processing job {job.id}: {e}")
                processed += 1
        except BaseException:
            with self._lock:
                self._active = False
            raise

    def _process(self, job: Job) -> None:
        queue = self.context.job_queue

        try:
            payload = job.encode_payload()
        except InvalidJobPayloadError as e:
            logger.error(f"[FFmpeg] {e}")
            queue.update_status(job.id, JobStatus.RUNNING)
            queue.update_status(job.id, JobStatus.FAILED, error=str(e), allow_retry=False)
            return

        claimed = queue.update_status(job.id, JobStatus.RUNNING, progress=0)
        if claimed is None:
            return
        total = payload.judge_count + 1
        logger.info(
            f"[FFmpeg] Starting job {job.id} for routine {job.routine_id} "
            f"(attempt {claimed.attempts}/{claimed.max_attempts})"
        )

        self._set_routine_status(job.routine_id, RoutineStatus.ENCODING, error=None)

        settings = self.context.settings()
        try:
            self.context.broadcast_full_state()
            self._send_progress(job.routine_id, "encoding", 0, total)
            runner = self._runner_factory(settings)
            with self._lock:
                self._current_job_id = job.id
                self._current_runner = runner

            targets = self._pipeline.run(
                payload,
                runner,
                on_output=lambda done, count: self._send_progress(
                    job.routine_id, "encoding", done, count
                ),
            )
            encoded = self._collect_outputs(targets, payload)
        except (EncoderError, OSError) as e:
            self._handle_failure(job, payload, e, total)
            return
        except Exception as e:
            logger.exception(f"[FFmpeg] Unexpected error in job {job.id}: {e}")
            self._handle_failure(job, payload, e, total)
            return
        finally:
            with self._lock:
                self._current_job_id = None
                self._current_runner = None

        queue.update_status(job.id, JobStatus.DONE, progress=100)
        routine = self._set_routine_status(
            job.routine_id,
            RoutineStatus.ENCODED,
            immediate=True,
            encoded_files=encoded,
            error=None,
        )
        logger.info(
            f"[FFmpeg] Encoded routine {job.routine_id}: {len(encoded)}/{total} files"
        )
        self._send_progress(job.routine_id, "done", len(encoded), total)
        self.context.broadcast_full_state()

        if routine is not None and settings.behavior.auto_upload_after_encoding:
            self.context.uploads.enqueue_routine(routine)
            self.context.uploads.start_uploads()

    def _handle_failure(self, job: Job, payload: EncodePayload, error: Exception, total: int) -> None:
        cancelled = isinstance(error, EncoderCancelledError)
        logger.error(f"[FFmpeg] Job {job.id} failed: {error}")
        remove_temp_video(Path(payload.output_dir))

        updated = self.context.job_queue.update_status(
            job.id,
            JobStatus.FAILED,
            error=str(error),
            allow_retry=not cancelled,
        )
        if updated is not None and updated.status == JobStatus.FAILED:
            self._set_routine_status(
                job.routine_id,
                RoutineStatus.FAILED,
                immediate=True,
                error=str(error),
            )
        self._send_progress(job.routine_id, "error", 0, total, error=str(error))
        self.context.broadcast_full_state()

    def _collect_outputs(self, targets: List[OutputTarget], payload: EncodePayload) -> List[EncodedFile]:
        """Record only the outputs that actually exist."""
        encoded: List[EncodedFile] = []
        for target in targets:
            if target.path.is_file():
                encoded.append(EncodedFile(role=target.role, file_path=str(target.path)))
            else:
                logger.warning(f"[FFmpeg] Expected output missing: {target.path}")
        if not encoded:
            raise NoOutputProducedError(payload.output_dir)
        return encoded

    def _set_routine_status(
        self,
        routine_id: str,
        status: RoutineStatus,
        immediate: bool = False,
        **fields,
    ) -> Optional[Routine]:
        """
        Mirror job progress onto the routine.

        Jobs may outlive their routine (schedule reloaded, orphan recovery
        with a directory-name id), so store errors are logged, not raised.
        """
        try:
            return self.context.store.update_routine_status(
                routine_id, status, immediate=immediate, **fields
            )
        except RoutineError as e:
            logger.warning(f"[FFmpeg] Routine {routine_id} not updated to {status.value}: {e}")
            return None

    def _send_progress(
        self,
        routine_id: str,
        state: str,
        completed: int,
        total: int,
        error: Optional[str] = None,
    ) -> None:
        self.context.broadcast.send_progress(
            EncodeProgress(
                routine_id=routine_id,
                state=state,
                tracks_completed=completed,
                tracks_total=total,
                error=error,
            )
        )

    # ------------------------------------------------------------------
    # Retry wake-up
    # ------------------------------------------------------------------

    def _arm_wake_timer_locked(self, delay: float) -> None:
        if not self._background:
            return
        self._cancel_wake_timer_locked()
        logger.debug(f"[FFmpeg] Next retry eligible in {delay:.1f}s")
        timer = threading.Timer(delay + 0.05, self.kick)
        timer.daemon = True
        self._wake_timer = timer
        timer.start()

    def _cancel_wake_timer_locked(self) -> None:
        if self._wake_timer is not None:
            self._wake_timer.cancel()
            self._wake_timer = None
