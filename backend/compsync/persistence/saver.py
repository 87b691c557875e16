"""
Debounced / immediate persistence port.

Two explicit write paths:
- save_eventually(): coalesced, fires once after ``delay_seconds``
- save_now(): synchronous, cancels any pending debounced write

Callers decide which path a transition needs. Critical transitions
(job running -> terminal, recording start/stop) call save_now() at
the call site; everything else uses save_eventually().
"""

import logging
import threading
from typing import Callable, Optional

from .errors import SaveError

logger = logging.getLogger(__name__)


class DebouncedSaver:
    """
    Coalesces high-frequency writes behind a single timer.

    The write function is called with no arguments and must produce the
    complete persisted snapshot on every call.
    """

    def __init__(
        self,
        write_fn: Callable[[], None],
        delay_seconds: float = 0.5,
        name: str = "state",
    ):
        self._write_fn = write_fn
        self._delay = delay_seconds
        self._name = name
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        """True while a debounced write is scheduled."""
        with self._lock:
            return self._timer is not None

    def save_eventually(self) -> None:
        """Schedule a write unless one is already scheduled."""
        with self._lock:
            if self._timer is not None:
                return
            timer = threading.Timer(self._delay, self._fire)
            timer.daemon = True
            self._timer = timer
        timer.start()

    def save_now(self) -> bool:
        """
        Write synchronously, cancelling any scheduled write.

        Returns:
            True if the write succeeded
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        return self._write()

    def close(self) -> None:
        """Flush outstanding state. Call at shutdown."""
        self.save_now()

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        self._write()

    def _write(self) -> bool:
        try:
            self._write_fn()
            return True
        except SaveError as e:
            # State stays in memory; the next save retries the full snapshot
            logger.error(f"[Persist] Failed to save {self._name}: {e}")
            return False
