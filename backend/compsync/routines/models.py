"""
Routine and Competition data models.

A Routine is one scheduled performance. Its ``id`` comes from the
schedule source and is the join key against persisted state: reloading
a schedule carries status and paths forward only for matching ids.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class RoutineStatus(str, Enum):
    """
    Routine lifecycle.

    pending -> recording -> recorded -> (queued ->) encoding -> encoded
            -> uploading -> uploaded -> confirmed
    pending <-> skipped
    recorded / encoding -> failed
    """

    PENDING = "pending"
    SKIPPED = "skipped"
    RECORDING = "recording"
    RECORDED = "recorded"
    QUEUED = "queued"
    ENCODING = "encoding"
    ENCODED = "encoded"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    CONFIRMED = "confirmed"
    FAILED = "failed"


EncodedRole = Literal["performance", "judge1", "judge2", "judge3", "judge4"]


class EncodedFile(BaseModel):
    """One encoded output file, one per audio role."""

    model_config = ConfigDict(extra="forbid")

    role: EncodedRole
    file_path: str
    uploaded: bool = False
    upload_url: Optional[str] = None


class Routine(BaseModel):
    """One scheduled competitive performance."""

    model_config = ConfigDict(extra="forbid")

    # Identity (immutable)
    id: str
    entry_number: str = ""
    routine_title: str = ""
    dancers: str = ""
    studio_name: str = ""
    studio_code: str = ""

    # Classification
    category: str = ""
    classification: str = ""
    age_group: str = ""
    size_category: str = ""

    # Schedule
    duration_minutes: float = 0
    scheduled_day: str = ""
    scheduled_time: Optional[str] = None  # "HH:MM"
    position: int = 0

    # State
    status: RoutineStatus = RoutineStatus.PENDING
    recording_started_at: Optional[datetime] = None
    recording_stopped_at: Optional[datetime] = None
    output_path: Optional[str] = None  # Raw recording, after rename
    output_dir: Optional[str] = None  # Routine folder
    encoded_files: List[EncodedFile] = Field(default_factory=list)
    notes: Optional[str] = None
    error: Optional[str] = None


# Fields carried forward from persisted state when a schedule is reloaded
PERSISTED_ROUTINE_FIELDS = (
    "status",
    "recording_started_at",
    "recording_stopped_at",
    "output_path",
    "output_dir",
    "encoded_files",
    "notes",
    "error",
)


class Competition(BaseModel):
    """An ordered collection of routines."""

    model_config = ConfigDict(extra="forbid")

    competition_id: str
    name: str = ""
    tenant_id: str = ""
    routines: List[Routine] = Field(default_factory=list)
    days: List[str] = Field(default_factory=list)
    source: Literal["csv", "api"] = "csv"
    loaded_at: datetime = Field(default_factory=datetime.now)


class PersistedState(BaseModel):
    """On-disk snapshot of the store."""

    model_config = ConfigDict(extra="ignore")

    competition: Optional[Competition] = None
    current_routine_id: Optional[str] = None
    current_routine_index: int = 0
    saved_at: datetime = Field(default_factory=datetime.now)


class StateSnapshot(BaseModel):
    """Full-state payload pushed to broadcast sinks after every mutation."""

    model_config = ConfigDict(extra="forbid")

    competition: Optional[Competition] = None
    current_routine: Optional[Routine] = None
    next_routine: Optional[Routine] = None
    current_index: int = 0
