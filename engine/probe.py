"""
ffprobe helpers for reading source video dimensions.
"""

import json
import logging
import math
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from core.models import Resolution

logger = logging.getLogger(__name__)


@dataclass
class VideoProbeInfo:
    """Information gathered from probing a video file."""
    width: int
    height: int
    duration: Optional[float]

    @property
    def resolution(self) -> Resolution:
        return Resolution(width=self.width, height=self.height)


def _parse_duration(*candidates) -> Optional[float]:
    for candidate in candidates:
        if candidate is None:
            continue
        try:
            value = float(candidate)
        except (TypeError, ValueError):
            continue
        if math.isfinite(value) and value > 0:
            return value
    return None


def probe_video(path: Path, ffprobe_binary: str = "ffprobe", runner=None) -> VideoProbeInfo:
    """
    Read width, height and duration of the first video stream.

    Raises:
        RuntimeError: If ffprobe fails or reports no usable video stream
    """
    runner = runner or subprocess.run
    cmd = [
        ffprobe_binary,
        "-v", "error",
        "-select_streams", "v:0",
        "-show_entries", "stream=width,height,duration",
        "-show_entries", "format=duration",
        "-of", "json",
        os.fspath(path),
    ]
    process = runner(cmd, capture_output=True, check=False, text=True)
    if process.returncode != 0:
        raise RuntimeError(
            f"Unable to probe '{Path(path).name}': {process.stderr.strip() or process.stdout.strip()}"
        )

    try:
        data = json.loads(process.stdout)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"ffprobe returned invalid JSON for '{Path(path).name}': {e}") from e

    streams = data.get("streams")
    if not isinstance(streams, list) or not streams:
        raise RuntimeError(f"No video stream found in '{Path(path).name}'")

    stream = streams[0]
    try:
        width = int(stream["width"])
        height = int(stream["height"])
    except (KeyError, TypeError, ValueError):
        raise RuntimeError(f"Invalid width/height metadata for '{Path(path).name}'")
    if width <= 0 or height <= 0:
        raise RuntimeError(f"Non-positive dimensions reported for '{Path(path).name}'")

    fmt = data.get("format") if isinstance(data.get("format"), dict) else {}
    duration = _parse_duration(stream.get("duration"), fmt.get("duration"))

    logger.debug(f"Probed {Path(path).name}: {width}x{height}, duration={duration}")
    return VideoProbeInfo(width=width, height=height, duration=duration)
