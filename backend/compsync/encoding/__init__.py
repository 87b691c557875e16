"""
Encoder: ffmpeg argument building, process supervision and the
single-flight encode worker.
"""

from .commands import TEMP_VIDEO_NAME, OutputTarget, output_filename, plan_outputs
from .errors import (
    EncoderCancelledError,
    EncoderError,
    EncoderNotFoundError,
    EncoderProcessError,
    EncoderTimeoutError,
    NoOutputProducedError,
)
from .pipeline import EncodePipeline, remove_temp_video
from .process import (
    PID_FILE_NAME,
    FFmpegProcessRunner,
    PidFile,
    find_ffmpeg,
    kill_stale_process,
    validate_ffmpeg,
)
from .supervisor import EncoderSupervisor, build_encode_payload

__all__ = [
    # Errors
    "EncoderError",
    "EncoderNotFoundError",
    "EncoderProcessError",
    "EncoderTimeoutError",
    "EncoderCancelledError",
    "NoOutputProducedError",
    # Commands
    "TEMP_VIDEO_NAME",
    "OutputTarget",
    "output_filename",
    "plan_outputs",
    # Process
    "PID_FILE_NAME",
    "FFmpegProcessRunner",
    "PidFile",
    "find_ffmpeg",
    "kill_stale_process",
    "validate_ffmpeg",
    # Worker
    "EncodePipeline",
    "remove_temp_video",
    "EncoderSupervisor",
    "build_encode_payload",
]
