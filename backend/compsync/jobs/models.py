"""
Job data models.

A Job is one unit of durable work. It references a routine by id but
never owns or mutates the routine itself.

Lifecycle:
    PENDING -> RUNNING -> DONE
                       -> FAILED (rewritten to PENDING while attempts remain)

A job found RUNNING when the queue loads is reset to PENDING: the
process that was running it is gone.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..settings.models import ProcessingMode
from .errors import InvalidJobPayloadError


class JobType(str, Enum):
    """Kinds of durable work. Encoding is currently the only one."""

    ENCODE = "encode"


class JobStatus(str, Enum):
    PENDING = "pending"  # Waiting (or waiting out a retry backoff)
    RUNNING = "running"  # Claimed by the encoder worker
    FAILED = "failed"  # Out of attempts, needs manual retry or removal
    DONE = "done"  # Terminal success


class EncodePayload(BaseModel):
    """
    Encode job payload.

    Everything the encoder needs is captured here at enqueue time,
    so a job's behaviour never depends on settings read later.
    """

    model_config = ConfigDict(extra="forbid")

    input_path: str
    output_dir: str
    judge_count: int = Field(ge=0, le=4)
    track_mapping: Dict[str, str] = Field(default_factory=dict)
    processing_mode: ProcessingMode = ProcessingMode.COPY
    file_prefix: str = ""


class Job(BaseModel):
    """A durable queue entry."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: JobType
    routine_id: str
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    max_attempts: int = 3
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    error: Optional[str] = None
    progress: Optional[float] = None

    def encode_payload(self) -> EncodePayload:
        """
        Parse the payload as an encode payload.

        Raises:
            InvalidJobPayloadError: If the stored payload is malformed
        """
        try:
            return EncodePayload.model_validate(self.payload)
        except ValidationError as e:
            raise InvalidJobPayloadError(self.id, str(e)) from e
