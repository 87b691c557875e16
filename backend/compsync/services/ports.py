"""
Collaborator ports.

The pipeline talks to the upload client and the broadcast/overlay hub
only through these interfaces. Null implementations are used when a
collaborator is not wired (CLI, tests).
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from ..routines.models import Routine, StateSnapshot

logger = logging.getLogger(__name__)


class EncodeProgress(BaseModel):
    """Progress event for one routine's encode."""

    model_config = ConfigDict(extra="forbid")

    routine_id: str
    state: str  # queued | encoding | done | error
    tracks_completed: int = 0
    tracks_total: int = 0
    error: Optional[str] = None


class UploadService(ABC):
    """Upload client port."""

    @abstractmethod
    def enqueue_routine(self, routine: Routine) -> None:
        """Queue every not-yet-uploaded encoded file of ``routine``."""
        pass

    @abstractmethod
    def start_uploads(self) -> None:
        """Start processing the upload queue if it is idle."""
        pass


class BroadcastSink(ABC):
    """Overlay / UI broadcast hub port."""

    @abstractmethod
    def broadcast_state(self, snapshot: StateSnapshot) -> None:
        pass

    @abstractmethod
    def send_progress(self, progress: EncodeProgress) -> None:
        pass

    @abstractmethod
    def update_overlay(self, routine_data: Dict[str, Any]) -> None:
        pass


class NullUploadService(UploadService):
    def enqueue_routine(self, routine: Routine) -> None:
        logger.debug(f"[Upload] No upload service wired, ignoring routine {routine.id}")

    def start_uploads(self) -> None:
        pass


class NullBroadcastSink(BroadcastSink):
    def broadcast_state(self, snapshot: StateSnapshot) -> None:
        pass

    def send_progress(self, progress: EncodeProgress) -> None:
        pass

    def update_overlay(self, routine_data: Dict[str, Any]) -> None:
        pass


class RecordingBroadcastSink(BroadcastSink):
    """
    Keeps a bounded history of the messages it receives.

    Backs the monitoring endpoints (latest snapshot, recent progress) and
    doubles as an inspection sink in tests.
    """

    def __init__(self, max_progress: int = 200, max_overlays: int = 50):
        self.snapshots: List[StateSnapshot] = []
        self.progress: List[EncodeProgress] = []
        self.overlays: List[Dict[str, Any]] = []
        self._max_progress = max_progress
        self._max_overlays = max_overlays

    @property
    def latest_snapshot(self) -> Optional[StateSnapshot]:
        return self.snapshots[-1] if self.snapshots else None

    def broadcast_state(self, snapshot: StateSnapshot) -> None:
        self.snapshots = self.snapshots[-9:] + [snapshot]

    def send_progress(self, progress: EncodeProgress) -> None:
        self.progress.append(progress)
        if len(self.progress) > self._max_progress:
            self.progress = self.progress[-self._max_progress:]

    def update_overlay(self, routine_data: Dict[str, Any]) -> None:
        self.overlays.append(routine_data)
        if len(self.overlays) > self._max_overlays:
            self.overlays = self.overlays[-self._max_overlays:]


class CollectingUploadService(UploadService):
    """Records upload requests without sending anything."""

    def __init__(self):
        self.enqueued: List[str] = []
        self.start_calls = 0

    def enqueue_routine(self, routine: Routine) -> None:
        self.enqueued.append(routine.id)

    def start_uploads(self) -> None:
        self.start_calls += 1
