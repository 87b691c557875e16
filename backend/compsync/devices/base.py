"""
Capture device port.

The pipeline never speaks a device protocol directly. A device client
implements this interface and reports recording start/stop through
the event channel it was given.
"""

import threading
from abc import ABC, abstractmethod
from typing import Optional

from .events import EventChannel, RecordingStopped


class DeviceError(Exception):
    """A device command failed."""

    pass


class CaptureDevice(ABC):
    """
    Abstract capture device.

    Subclasses call ``_emit_stopped`` (or publish RecordingStopped on
    ``events`` and call ``_record_stop_confirmed``) so that
    ``wait_for_record_stop`` wakes up.
    """

    def __init__(self, events: Optional[EventChannel] = None):
        self.events = events or EventChannel()
        self._stop_confirmed = threading.Event()

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @property
    @abstractmethod
    def is_recording(self) -> bool:
        pass

    @abstractmethod
    def start_record(self) -> None:
        """
        Ask the device to start recording.

        Raises:
            DeviceError: If the device rejects the command
        """
        pass

    @abstractmethod
    def stop_record(self) -> Optional[str]:
        """
        Ask the device to stop recording.

        Returns:
            Raw output path if the device reports it synchronously

        Raises:
            DeviceError: If the device rejects the command
        """
        pass

    def arm_stop_wait(self) -> None:
        """Reset the stop confirmation before issuing stop_record()."""
        self._stop_confirmed.clear()

    def wait_for_record_stop(self, timeout: float) -> bool:
        """
        Block until the device confirms the recording stopped.

        Returns:
            False if the confirmation did not arrive within ``timeout``
        """
        return self._stop_confirmed.wait(timeout)

    def _record_stop_confirmed(self) -> None:
        self._stop_confirmed.set()

    def _emit_stopped(self, event: RecordingStopped) -> None:
        self.events.publish(event)
        self._record_stop_confirmed()
