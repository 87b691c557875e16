"""
Simulated capture device.

Writes a small placeholder file per recording so the whole pipeline
(rename, archive, encode job) can run on a machine without a recorder.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .base import CaptureDevice, DeviceError
from .events import EventChannel, RecordingStarted, RecordingStopped

logger = logging.getLogger(__name__)


class SimulatedCaptureDevice(CaptureDevice):
    """Virtual recorder writing placeholder .mkv files into ``record_dir``."""

    def __init__(
        self,
        record_dir: Path,
        events: Optional[EventChannel] = None,
        clock: Optional[Callable[[], datetime]] = None,
        connected: bool = True,
        content: bytes = b"SIMULATION",
    ):
        super().__init__(events)
        self.record_dir = Path(record_dir)
        self._clock = clock or datetime.now
        self._connected = connected
        self._recording = False
        self._content = content
        self._counter = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_recording(self) -> bool:
        return self._recording

    def set_connected(self, connected: bool) -> None:
        self._connected = connected
        if not connected:
            self._recording = False

    def start_record(self) -> None:
        if not self._connected:
            raise DeviceError("Device not connected")
        if self._recording:
            raise DeviceError("Already recording")
        self._recording = True
        self.arm_stop_wait()
        logger.info("[SIMULATION] Recording started")
        self.events.publish(RecordingStarted(timestamp=self._clock()))

    def stop_record(self) -> Optional[str]:
        if not self._recording:
            raise DeviceError("Not recording")
        self._recording = False
        self._counter += 1

        self.record_dir.mkdir(parents=True, exist_ok=True)
        now = self._clock()
        path = self.record_dir / f"{now.strftime('%Y-%m-%d %H-%M-%S')}_{self._counter:03d}.mkv"
        path.write_bytes(self._content)

        logger.info(f"[SIMULATION] Recording stopped: {path}")
        self._emit_stopped(RecordingStopped(output_path=str(path), timestamp=now))
        return str(path)
