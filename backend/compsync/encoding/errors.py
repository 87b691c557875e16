"""
Encoder errors.

All errors are non-fatal to the application. They fail the current
encode job; the queue decides whether it is retried.
"""

from typing import Optional


class EncoderError(Exception):
    """Base exception for encode failures."""

    pass


class EncoderNotFoundError(EncoderError):
    """The ffmpeg binary could not be started."""

    def __init__(self, ffmpeg_path: str, reason: str):
        self.ffmpeg_path = ffmpeg_path
        super().__init__(f"FFmpeg could not be started ({ffmpeg_path}): {reason}")


class EncoderProcessError(EncoderError):
    """ffmpeg exited with a non-zero code."""

    def __init__(self, exit_code: Optional[int], stderr_tail: str = ""):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        message = f"FFmpeg exited with code {exit_code}"
        if stderr_tail:
            message = f"{message}: {stderr_tail}"
        super().__init__(message)


class EncoderTimeoutError(EncoderError):
    """ffmpeg did not exit within the timeout and was killed."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"FFmpeg timed out after {timeout_seconds:g}s and was killed")


class EncoderCancelledError(EncoderError):
    """The in-flight process was cancelled by the operator."""

    def __init__(self):
        super().__init__("Encoding cancelled by operator")


class NoOutputProducedError(EncoderError):
    """The pipeline finished but none of the expected files exist."""

    def __init__(self, output_dir: str):
        self.output_dir = output_dir
        super().__init__(f"No encoded output files found in {output_dir}")
