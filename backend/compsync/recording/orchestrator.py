"""
Recording orchestrator.

Turns device events and operator navigation into routine state changes,
file organization and encode jobs.

Design rules:
- A stopped recording belongs to the routine that was current when the
  recording STARTED (the active-recording pointer), never to whatever
  routine is current when the stop arrives
- next()/next_full() are guarded: a second call while one is in flight
  is rejected, not queued
- Recording start/stop are saved immediately; cursor moves are debounced
- Every mutation ends with a full-state broadcast
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from ..context import PipelineContext
from ..devices.base import CaptureDevice, DeviceError
from ..devices.events import DeviceEvent, RecordingStarted, RecordingStopped
from ..encoding.supervisor import EncoderSupervisor, build_encode_payload
from ..routines.models import Routine, RoutineStatus
from .errors import NavigationBusyError
from .files import (
    FILE_LOCK_TIMEOUT_SECONDS,
    archive_existing_files,
    move_file,
    wait_for_file_lock,
)
from .naming import build_file_name, calc_offset, routine_output_dir

logger = logging.getLogger(__name__)

STOP_CONFIRM_TIMEOUT_SECONDS = 15.0


def _fmt_time(value: Optional[datetime]) -> str:
    return value.strftime("%I:%M:%S %p") if value else "?"


class RecordingOrchestrator:
    """Drives the routine lifecycle from recording start to encode job."""

    def __init__(
        self,
        context: PipelineContext,
        device: CaptureDevice,
        supervisor: EncoderSupervisor,
        stop_confirm_timeout: float = STOP_CONFIRM_TIMEOUT_SECONDS,
        file_lock_timeout: float = FILE_LOCK_TIMEOUT_SECONDS,
        lock_waiter: Callable[..., bool] = wait_for_file_lock,
    ):
        self.context = context
        self.device = device
        self.supervisor = supervisor
        self.stop_confirm_timeout = stop_confirm_timeout
        self.file_lock_timeout = file_lock_timeout
        self._lock_waiter = lock_waiter
        device.events.subscribe(self.handle_event)

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Consume device events on the channel's dispatcher thread."""
        self.device.events.start()

    def stop(self) -> None:
        self.device.events.stop()

    def pump(self) -> int:
        """Handle queued device events in the calling thread."""
        return self.device.events.pump()

    def handle_event(self, event: DeviceEvent) -> None:
        if isinstance(event, RecordingStarted):
            self.handle_recording_started(event.timestamp)
        elif isinstance(event, RecordingStopped):
            self.handle_recording_stopped(event.output_path, event.timestamp)
        else:
            logger.warning(f"[Recording] Ignoring unknown device event {event!r}")

    # ------------------------------------------------------------------
    # Recording lifecycle
    # ------------------------------------------------------------------

    def handle_recording_started(self, timestamp: datetime) -> Optional[Routine]:
        store = self.context.store
        routine = store.current_routine()
        if routine is None:
            logger.warning("[Recording] Recording started with no current routine")
            return None

        self.context.active_recording_routine_id = routine.id
        routine = store.update_routine_status(
            routine.id,
            RoutineStatus.RECORDING,
            immediate=True,
            recording_started_at=timestamp,
            recording_stopped_at=None,
            error=None,
        )

        lines = [
            "---- RECORDING STARTED ----",
            f"  Entry #{routine.entry_number}: \"{routine.routine_title}\"",
            f"  Studio: {routine.studio_name} ({routine.studio_code})",
            f"  Category: {routine.age_group} {routine.category} {routine.size_category}",
            f"  Scheduled: Day {routine.scheduled_day or '?'}, Position {routine.position}"
            + (f", Time {routine.scheduled_time}" if routine.scheduled_time else ""),
            f"  Recording started: {_fmt_time(timestamp)} ({timestamp.isoformat()})",
        ]
        if routine.scheduled_time:
            lines.append(f"  Offset from schedule: {calc_offset(routine.scheduled_time, timestamp)}")
        lines.append(f"  Duration expected: {routine.duration_minutes:g} min")
        logger.info("\n".join(lines))

        self.broadcast_full_state()
        return routine

    def handle_recording_stopped(self, output_path: str, timestamp: datetime) -> Optional[Routine]:
        """
        Organize the raw file and (optionally) queue its encode.

        Returns:
            The routine after handling, or None if the recording could not
            be attributed (raw file left untouched)
        """
        store = self.context.store
        routine_id = self.context.active_recording_routine_id
        self.context.active_recording_routine_id = None

        if not routine_id:
            logger.error(
                f"[Recording] Recording stopped with no active routine; raw file preserved at: {output_path}"
            )
            return None
        if store.get_routine(routine_id) is None:
            logger.warning(
                f"[Recording] Recording stopped for unknown routine {routine_id}; "
                f"raw file preserved at: {output_path}"
            )
            return None

        routine = store.update_routine_status(
            routine_id,
            RoutineStatus.RECORDED,
            immediate=True,
            recording_stopped_at=timestamp,
            output_path=output_path,
        )
        self._log_stopped(routine, output_path, timestamp)

        settings = self.context.settings()
        routine_dir = routine_output_dir(
            routine,
            settings,
            raw_output_path=output_path,
            share_code=self.context.resolve_share_code(),
        )
        if routine_dir is None:
            logger.warning("[Recording] No output directory available, skipping file organization")
            self.broadcast_full_state()
            return routine
        logger.info(f"[Recording] Routine dir: {routine_dir}")

        raw = Path(output_path)
        new_path = routine_dir / f"{build_file_name(routine, settings.file_naming.pattern)}{raw.suffix}"
        try:
            if settings.behavior.confirm_before_overwrite:
                archive_existing_files(routine_dir)
            if not routine_dir.exists():
                routine_dir.mkdir(parents=True, exist_ok=True)
                logger.info(f"[Recording] Created routine directory: {routine_dir}")
            if raw.exists():
                self._lock_waiter(raw, timeout=self.file_lock_timeout)
            move_file(raw, new_path)
        except OSError as e:
            logger.error(f"[Recording] File move failed: {e}")
            routine = store.update_routine(
                routine_id, immediate=True, output_path=output_path, error=str(e)
            )
            self.broadcast_full_state()
            return routine

        routine = store.update_routine(
            routine_id,
            immediate=True,
            output_path=str(new_path),
            output_dir=str(routine_dir),
        )

        if settings.behavior.auto_encode_recordings:
            busy = self.supervisor.get_queue_length() > 0
            store.update_routine_status(
                routine_id,
                RoutineStatus.QUEUED if busy else RoutineStatus.ENCODING,
            )
            self.broadcast_full_state()
            payload = build_encode_payload(
                routine,
                settings,
                input_path=str(new_path),
                output_dir=str(routine_dir),
            )
            self.supervisor.enqueue_job(routine_id, payload)

        self.broadcast_full_state()
        return store.get_routine(routine_id)

    def _log_stopped(self, routine: Routine, output_path: str, stopped: datetime) -> None:
        started = routine.recording_started_at
        duration = int(round((stopped - started).total_seconds())) if started else 0
        duration_str = f"{duration // 60}m {duration % 60}s" if duration > 0 else "?"

        lines = [
            "---- RECORDING STOPPED ----",
            f"  Entry #{routine.entry_number}: \"{routine.routine_title}\"",
            f"  Studio: {routine.studio_name} ({routine.studio_code})",
            f"  Category: {routine.age_group} {routine.category} {routine.size_category}",
            f"  Scheduled: Day {routine.scheduled_day or '?'}, Position {routine.position}"
            + (f", Time {routine.scheduled_time}" if routine.scheduled_time else ""),
        ]
        if started:
            lines.append(f"  Recording started: {_fmt_time(started)}")
        lines.append(f"  Recording stopped: {_fmt_time(stopped)} ({stopped.isoformat()})")
        lines.append(
            f"  Actual duration: {duration_str} (expected {routine.duration_minutes:g} min)"
        )
        if routine.scheduled_time:
            lines.append(
                f"  Offset from schedule: {calc_offset(routine.scheduled_time, started or stopped)}"
            )
        lines.append(f"  Raw file: {output_path}")
        logger.info("\n".join(lines))

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def next(self) -> Optional[Routine]:
        """
        Stop the current recording (best effort), advance, auto-record.

        Raises:
            NavigationBusyError: Another next/next_full is in flight
        """
        if not self.context.nav_lock.acquire(blocking=False):
            logger.debug("[Recording] next() blocked, already in progress")
            raise NavigationBusyError("next")
        try:
            settings = self.context.settings()
            if self.device.is_recording and self.device.is_connected:
                try:
                    self.device.stop_record()
                except DeviceError as e:
                    logger.error(f"[Recording] Failed to stop recording on Next: {e}")

            routine = self.context.store.advance_to_next()
            if routine is None:
                logger.info("[Recording] No more routines")
                return None

            if settings.behavior.auto_record_on_next and self.device.is_connected:
                try:
                    self.device.start_record()
                except DeviceError as e:
                    logger.error(f"[Recording] Auto-record failed: {e}")

            self.broadcast_full_state(sync_overlay=settings.behavior.sync_lower_third)
            return routine
        finally:
            self.context.nav_lock.release()

    def next_full(self) -> Optional[Routine]:
        """
        Like next(), but waits for the device to confirm the stop before
        advancing and always restarts recording when connected.

        Raises:
            NavigationBusyError: Another next/next_full is in flight
        """
        if not self.context.nav_lock.acquire(blocking=False):
            logger.debug("[Recording] next_full() blocked, already in progress")
            raise NavigationBusyError("next_full")
        try:
            connected = self.device.is_connected
            if connected and self.device.is_recording:
                try:
                    self.device.arm_stop_wait()
                    self.device.stop_record()
                    if not self.device.wait_for_record_stop(self.stop_confirm_timeout):
                        logger.warning(
                            f"[Recording] next_full: no stop confirmation after "
                            f"{self.stop_confirm_timeout:g}s, advancing anyway"
                        )
                except DeviceError as e:
                    logger.error(f"[Recording] next_full: stop recording failed: {e}")

            routine = self.context.store.advance_to_next()
            if routine is None:
                logger.info("[Recording] next_full: no more routines")
                return None

            self.broadcast_full_state()

            if connected:
                try:
                    self.device.start_record()
                except DeviceError as e:
                    logger.error(f"[Recording] next_full: start recording failed: {e}")

            logger.info(
                f"[Recording] next_full: advanced to #{routine.entry_number} \"{routine.routine_title}\""
            )
            return routine
        finally:
            self.context.nav_lock.release()

    def prev(self) -> Optional[Routine]:
        routine = self.context.store.go_to_prev()
        if routine is None:
            logger.info("[Recording] Already at first routine")
            return None
        self.broadcast_full_state()
        return routine

    def jump_to(self, routine_id: str) -> Routine:
        routine = self.context.store.jump_to(routine_id)
        self.broadcast_full_state()
        return routine

    def skip(self, routine_id: str) -> Routine:
        routine = self.context.store.skip_routine(routine_id)
        self.broadcast_full_state()
        return routine

    def unskip(self, routine_id: str) -> Routine:
        routine = self.context.store.unskip_routine(routine_id)
        self.broadcast_full_state()
        return routine

    def set_note(self, routine_id: str, note: Optional[str]) -> Routine:
        routine = self.context.store.set_note(routine_id, note)
        self.broadcast_full_state()
        return routine

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    def sync_overlay(self) -> None:
        """Push the current routine to the overlay."""
        store = self.context.store
        current = store.current_routine()
        if current is None:
            return
        self.context.broadcast.update_overlay({
            "entry_number": current.entry_number,
            "routine_title": current.routine_title,
            "dancers": current.dancers,
            "studio_name": current.studio_name,
            "category": f"{current.age_group} {current.category}".strip(),
            "current": store.current_index() + 1,
            "total": len(store.visible_routines()),
        })

    def broadcast_full_state(self, sync_overlay: bool = True) -> None:
        if sync_overlay:
            self.sync_overlay()
        self.context.broadcast_full_state()
