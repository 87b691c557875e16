"""
Capture device events and the channel that carries them.

Devices publish events from whatever thread their client library uses;
the orchestrator consumes them in order from a single dispatcher
(``start()``) or synchronously via ``pump()``.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordingStarted:
    timestamp: datetime


@dataclass(frozen=True)
class RecordingStopped:
    output_path: str
    timestamp: datetime


DeviceEvent = Union[RecordingStarted, RecordingStopped]
EventHandler = Callable[[DeviceEvent], None]


class EventChannel:
    """
    FIFO of device events with fan-out to subscribers.

    A handler that raises is logged; later handlers and later events
    still run.
    """

    def __init__(self):
        self._queue: "queue.Queue[DeviceEvent]" = queue.Queue()
        self._handlers: List[EventHandler] = []
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def publish(self, event: DeviceEvent) -> None:
        logger.debug(f"[Device] Event published: {event}")
        self._queue.put(event)

    def pending(self) -> int:
        return self._queue.qsize()

    def pump(self) -> int:
        """
        Dispatch every queued event in the calling thread.

        Returns:
            Number of events dispatched
        """
        dispatched = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return dispatched
            self._dispatch(event)
            dispatched += 1

    def start(self) -> None:
        """Dispatch events on a daemon thread until stop()."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="device-events", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                event = self._queue.get(timeout=0.2)
            except queue.Empty:
                continue
            self._dispatch(event)

    def _dispatch(self, event: DeviceEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.exception(f"[Device] Handler failed for {type(event).__name__}: {e}")
