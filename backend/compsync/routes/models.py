"""
Request/response models for the HTTP surface.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from ..jobs.models import Job
from ..routines.models import Routine


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str = "ok"
    version: str
    competition_loaded: bool
    queue_length: int
    encoder_busy: bool
    device_connected: bool
    device_recording: bool


class JobListResponse(BaseModel):
    """All jobs in queue order plus per-status counts."""

    model_config = ConfigDict(extra="forbid")

    jobs: List[Job]
    pending_count: int
    running_count: int
    failed_count: int
    done_count: int


class RoutineRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    routine_id: str


class NoteRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    routine_id: str
    note: Optional[str] = None


class OperationResponse(BaseModel):
    """Generic response for control operations."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    message: str


class RoutineResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    message: str
    routine: Optional[Routine] = None


class JobResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    message: str
    job: Optional[Job] = None
