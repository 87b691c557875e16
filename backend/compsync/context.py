"""
Pipeline context.

Everything the orchestrator and the encoder supervisor share lives on
one explicit object instead of module globals, so each test (and each
app instance) gets an isolated pipeline.
"""

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .jobs.queue import JobQueue
from .routines.store import RoutineStore
from .services.ports import BroadcastSink, NullBroadcastSink, NullUploadService, UploadService
from .settings.models import AppSettings
from .settings.provider import StaticSettingsProvider


def _no_share_code() -> Optional[str]:
    return None


@dataclass
class PipelineContext:
    """
    Shared pipeline state.

    ``resolve_share_code`` returns the share code only once it has been
    resolved against the backend (a configured but unresolved code does
    not change the folder layout).
    """

    store: RoutineStore
    job_queue: JobQueue
    settings_provider: object = field(default_factory=StaticSettingsProvider)
    broadcast: BroadcastSink = field(default_factory=NullBroadcastSink)
    uploads: UploadService = field(default_factory=NullUploadService)
    resolve_share_code: Callable[[], Optional[str]] = _no_share_code
    home: Optional[Path] = None

    # Routine that owns the recording currently in progress
    active_recording_routine_id: Optional[str] = None
    nav_lock: threading.Lock = field(default_factory=threading.Lock)

    def settings(self) -> AppSettings:
        """One settings snapshot; call once per operation."""
        return self.settings_provider.get_settings()

    def broadcast_full_state(self) -> None:
        self.broadcast.broadcast_state(self.store.snapshot())
