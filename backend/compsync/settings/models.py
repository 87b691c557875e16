"""
Application settings snapshot.

Settings are read ONCE per operation. Nothing in the pipeline subscribes
to changes: a job bakes the values it needs into its payload at enqueue
time so later edits never change what an existing job does.
"""

from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class ProcessingMode(str, Enum):
    """
    How the raw recording is split into per-role output files.

    COPY: stream-copy every track, no re-encode
    SMART: encode video once, then mux it against each audio track
    HD720 / HD1080: re-encode video for every output file
    """

    COPY = "copy"
    SMART = "smart"
    HD720 = "720p"
    HD1080 = "1080p"


class CpuPriority(str, Enum):
    """OS scheduling priority for the spawned encoder process."""

    NORMAL = "normal"
    BELOW_NORMAL = "below-normal"
    IDLE = "idle"


DEFAULT_TRACK_MAPPING: Dict[str, str] = {
    "track1": "performance",
    "track2": "judge1",
    "track3": "judge2",
    "track4": "judge3",
}


class CompetitionSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    judge_count: int = Field(default=3, ge=0, le=4)
    day_filter: str = ""


class FileNamingSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Tokens: {entry_number} {routine_title} {studio_code} {category} {date} {time}
    pattern: str = "{entry_number}_{routine_title}_{studio_code}"
    output_directory: str = ""


class FFmpegSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str = "(bundled)"
    processing_mode: ProcessingMode = ProcessingMode.SMART
    cpu_priority: CpuPriority = CpuPriority.BELOW_NORMAL
    timeout_seconds: float = Field(default=600.0, gt=0)


class BehaviorSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    auto_record_on_next: bool = True
    auto_upload_after_encoding: bool = True
    auto_encode_recordings: bool = True
    sync_lower_third: bool = True
    # Move existing routine folder content to _archive/vN before re-recording
    confirm_before_overwrite: bool = True


class ShareCodeSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    share_code: str = ""


class AppSettings(BaseModel):
    """
    Complete settings snapshot.

    Unknown keys are ignored so settings files written by newer builds
    still load.
    """

    model_config = ConfigDict(extra="ignore")

    competition: CompetitionSettings = Field(default_factory=CompetitionSettings)
    audio_track_mapping: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_TRACK_MAPPING)
    )
    file_naming: FileNamingSettings = Field(default_factory=FileNamingSettings)
    ffmpeg: FFmpegSettings = Field(default_factory=FFmpegSettings)
    behavior: BehaviorSettings = Field(default_factory=BehaviorSettings)
    compsync: ShareCodeSettings = Field(default_factory=ShareCodeSettings)


DEFAULT_SETTINGS = AppSettings()
