"""
Encode pipeline: turns one recording into per-role output files.

The pipeline only issues ffmpeg invocations through a runner. It does
not touch the job queue or the routine store; the supervisor owns those.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from ..jobs.models import EncodePayload
from ..settings.models import ProcessingMode
from .commands import (
    RESOLUTION_SCALES,
    TEMP_VIDEO_NAME,
    OutputTarget,
    build_copy_args,
    build_mux_args,
    build_reencode_args,
    build_video_only_args,
    plan_outputs,
)

logger = logging.getLogger(__name__)


class CommandRunner(Protocol):
    """Anything that can run one ffmpeg invocation (argument list without binary)."""

    def run(self, args: List[str], timeout: Optional[float] = None) -> None:
        ...


# Called after each output file is written (or after the single multi-output pass)
OutputCallback = Callable[[int, int], None]


def remove_temp_video(output_dir: Path) -> bool:
    """Delete the smart-mode intermediate if present."""
    temp = Path(output_dir) / TEMP_VIDEO_NAME
    try:
        temp.unlink()
        logger.info(f"[FFmpeg] Removed temp video {temp}")
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"[FFmpeg] Could not remove temp video {temp}: {e}")
        return False


class EncodePipeline:
    """Dispatches a payload to the copy, re-encode or smart path."""

    def run(
        self,
        payload: EncodePayload,
        runner: CommandRunner,
        on_output: Optional[OutputCallback] = None,
    ) -> List[OutputTarget]:
        """
        Run every ffmpeg invocation for ``payload``.

        Returns:
            The planned outputs (the caller verifies which ones exist)

        Raises:
            EncoderError subclasses from the runner
        """
        output_dir = Path(payload.output_dir)
        targets = plan_outputs(
            output_dir,
            payload.judge_count,
            payload.track_mapping,
            payload.file_prefix,
        )
        mode = payload.processing_mode
        logger.info(
            f"[FFmpeg] Encoding {payload.input_path} mode={mode.value} "
            f"judges={payload.judge_count} outputs={len(targets)}"
        )

        if mode == ProcessingMode.SMART and payload.judge_count > 0:
            self._run_smart(payload, targets, runner, on_output)
        elif mode in (ProcessingMode.HD720, ProcessingMode.HD1080):
            runner.run(build_reencode_args(payload.input_path, targets, RESOLUTION_SCALES[mode.value]))
            if on_output:
                on_output(len(targets), len(targets))
        else:
            # copy, and smart with no judge tracks (nothing to share the video encode with)
            runner.run(build_copy_args(payload.input_path, targets))
            if on_output:
                on_output(len(targets), len(targets))
        return targets

    def _run_smart(
        self,
        payload: EncodePayload,
        targets: List[OutputTarget],
        runner: CommandRunner,
        on_output: Optional[OutputCallback],
    ) -> None:
        output_dir = Path(payload.output_dir)
        temp_video = output_dir / TEMP_VIDEO_NAME
        try:
            logger.info("[FFmpeg] Smart mode phase 1: encoding video once")
            runner.run(build_video_only_args(payload.input_path, temp_video))

            logger.info(f"[FFmpeg] Smart mode phase 2: muxing {len(targets)} audio tracks")
            for i, target in enumerate(targets, start=1):
                runner.run(build_mux_args(temp_video, payload.input_path, target))
                logger.info(f"[FFmpeg] Muxed {target.role} -> {target.path.name}")
                if on_output:
                    on_output(i, len(targets))
        finally:
            remove_temp_video(output_dir)
