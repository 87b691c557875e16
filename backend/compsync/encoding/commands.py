"""
FFmpeg argument builders.

Builders return argument lists WITHOUT the ffmpeg binary; the process
runner prepends the resolved executable.

Output naming:
    <prefix>_P_performance.mp4
    <prefix>_J<n>_commentary.mp4
With an empty prefix the leading "<prefix>_" is dropped.

Audio stream selection comes from the job's track mapping:
"trackN" -> role means that role is audio stream N-1 of the recording.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

# Fixed name of the smart-mode intermediate; crash recovery scans for it
TEMP_VIDEO_NAME = "_temp_video.mp4"

RESOLUTION_SCALES: Dict[str, str] = {
    "720p": "1280:720",
    "1080p": "1920:1080",
}

# Shared x264/AAC quality settings for every re-encode path
VIDEO_ENCODE_ARGS: List[str] = ["-c:v", "libx264", "-preset", "fast", "-crf", "23"]
AUDIO_ENCODE_ARGS: List[str] = ["-c:a", "aac", "-b:a", "128k"]

_TRACK_KEY = re.compile(r"^track(\d+)$")
_JUDGE_ROLE = re.compile(r"^judge(\d+)$")


@dataclass(frozen=True)
class OutputTarget:
    """One planned output file."""

    role: str
    path: Path
    audio_index: int


def output_filename(role: str, prefix: str = "") -> str:
    """
    File name for a role's output.

    >>> output_filename("performance", "101")
    '101_P_performance.mp4'
    >>> output_filename("judge2", "")
    'J2_commentary.mp4'
    """
    if role == "performance":
        name = "P_performance.mp4"
    else:
        match = _JUDGE_ROLE.match(role)
        if not match:
            raise ValueError(f"Unknown output role: {role}")
        name = f"J{match.group(1)}_commentary.mp4"
    return f"{prefix}_{name}" if prefix else name


def audio_track_index(role: str, track_mapping: Dict[str, str]) -> int:
    """
    Zero-based audio stream index for ``role``.

    Falls back to performance -> 0, judgeN -> N when the mapping has no
    entry for the role.
    """
    for key, mapped_role in track_mapping.items():
        if mapped_role != role:
            continue
        match = _TRACK_KEY.match(key)
        if match and int(match.group(1)) >= 1:
            return int(match.group(1)) - 1

    if role == "performance":
        return 0
    match = _JUDGE_ROLE.match(role)
    if match:
        return int(match.group(1))
    raise ValueError(f"Unknown output role: {role}")


def plan_outputs(
    output_dir: Path,
    judge_count: int,
    track_mapping: Dict[str, str],
    prefix: str = "",
) -> List[OutputTarget]:
    """Performance output plus one output per judge, in that order."""
    roles = ["performance"] + [f"judge{i}" for i in range(1, judge_count + 1)]
    return [
        OutputTarget(
            role=role,
            path=Path(output_dir) / output_filename(role, prefix),
            audio_index=audio_track_index(role, track_mapping),
        )
        for role in roles
    ]


def build_copy_args(input_path: str, targets: List[OutputTarget]) -> List[str]:
    """Single invocation, stream copy of shared video + one audio per output."""
    args = ["-y", "-hide_banner", "-i", input_path]
    for target in targets:
        args.extend([
            "-map", "0:v:0",
            "-map", f"0:a:{target.audio_index}",
            "-c", "copy",
            str(target.path),
        ])
    return args


def build_reencode_args(input_path: str, targets: List[OutputTarget], scale: str) -> List[str]:
    """Single invocation, video re-encoded separately for every output."""
    args = ["-y", "-hide_banner", "-i", input_path]
    for target in targets:
        args.extend([
            "-map", "0:v:0",
            "-map", f"0:a:{target.audio_index}",
            "-vf", f"scale={scale}",
            *VIDEO_ENCODE_ARGS,
            *AUDIO_ENCODE_ARGS,
            str(target.path),
        ])
    return args


def build_video_only_args(input_path: str, temp_video: Path, scale: Optional[str] = None) -> List[str]:
    """Smart phase 1: encode the video stream once, no audio."""
    args = ["-y", "-hide_banner", "-i", input_path, "-map", "0:v:0", "-an"]
    if scale:
        args.extend(["-vf", f"scale={scale}"])
    args.extend(VIDEO_ENCODE_ARGS)
    args.append(str(temp_video))
    return args


def build_mux_args(temp_video: Path, input_path: str, target: OutputTarget) -> List[str]:
    """Smart phase 2: pair the encoded video with one audio track."""
    return [
        "-y", "-hide_banner",
        "-i", str(temp_video),
        "-i", input_path,
        "-map", "0:v:0",
        "-map", f"1:a:{target.audio_index}",
        "-c:v", "copy",
        *AUDIO_ENCODE_ARGS,
        "-shortest",
        str(target.path),
    ]
