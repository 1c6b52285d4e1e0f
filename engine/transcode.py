"""
Transcode Engine - owns one ffmpeg instance and its private working storage.

Loading locates and verifies the ffmpeg binary and creates a working
directory. Every extraction stages the source under a fixed input name,
runs one crop+trim job and always clears the working directory afterwards,
so a failed job never leaves residue for the next one.
"""

import logging
import math
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional

from core.errors import (
    EmptyOutput,
    EngineInitError,
    InvalidDuration,
    OutputMissing,
    SubsystemFault,
)
from core.models import Artifact, EngineState, SourceCropArea, TimeRange

logger = logging.getLogger(__name__)

# Fixed names inside the working directory
INPUT_NAME = "input.mp4"
OUTPUT_NAME = "output.mp4"

# Longest clip accepted, in seconds (inclusive)
MAX_CLIP_SECONDS = 3600

# Output profile: fast H.264, AAC audio, streaming-friendly MP4
VIDEO_CODEC = "libx264"
VIDEO_PRESET = "ultrafast"
VIDEO_CRF = 23
AUDIO_CODEC = "aac"
OUTPUT_MIME_TYPE = "video/mp4"

Runner = Callable[..., subprocess.CompletedProcess]


def format_seconds(value: float) -> str:
    """Format seconds for ffmpeg without trailing zeros or '-0'."""
    if math.isclose(value, 0.0, abs_tol=1e-9):
        return "0"
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return text or "0"


def build_ffmpeg_command(
    binary: str,
    input_path: Path,
    output_path: Path,
    source_crop: SourceCropArea,
    time_range: TimeRange,
) -> list[str]:
    """Build the crop+trim command for one clip."""
    return [
        binary,
        "-hide_banner",
        "-loglevel", "error",
        "-nostdin",
        "-i", str(input_path),
        "-ss", format_seconds(time_range.start),
        "-t", format_seconds(time_range.duration),
        "-filter:v", source_crop.filter_expression,
        "-c:v", VIDEO_CODEC,
        "-preset", VIDEO_PRESET,
        "-crf", str(VIDEO_CRF),
        "-c:a", AUDIO_CODEC,
        "-movflags", "+faststart",
        "-avoid_negative_ts", "make_zero",
        "-y",
        str(output_path),
    ]


class TranscodeEngine:
    """
    ffmpeg-backed clip extractor.

    Not safe for concurrent jobs: extractions are serialized on an internal
    lock because all jobs share the same input/output names.
    """

    def __init__(
        self,
        ffmpeg_binary: str = "ffmpeg",
        runner: Optional[Runner] = None,
        work_root: Optional[str] = None,
    ):
        """
        Initialize the engine (does not load it).

        Args:
            ffmpeg_binary: Name or path of the ffmpeg executable
            runner: Replacement for subprocess.run (used by tests)
            work_root: Parent directory for the working directory
        """
        self.ffmpeg_binary = ffmpeg_binary
        self.version: Optional[str] = None
        self._runner = runner or subprocess.run
        self._work_root = work_root
        self._binary_path: Optional[str] = None
        self._workdir: Optional[Path] = None
        self._state = EngineState.UNINITIALIZED
        self._load_error: Optional[Exception] = None
        self._load_lock = threading.Lock()
        self._job_lock = threading.Lock()

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def workdir(self) -> Optional[Path]:
        return self._workdir

    def is_ready(self) -> bool:
        """Check if the engine is loaded and idle."""
        return self._state == EngineState.READY

    # ==================== Lifecycle ====================

    def ensure_ready(self):
        """
        Load the engine if needed.

        Concurrent callers wait for the in-flight load instead of starting
        a second one.

        Raises:
            EngineInitError: If loading fails, or failed earlier without a shutdown()
        """
        if self._state in (EngineState.READY, EngineState.BUSY):
            return

        with self._load_lock:
            if self._state in (EngineState.READY, EngineState.BUSY):
                return
            if self._state == EngineState.FAILED:
                raise EngineInitError(
                    f"Engine is in a failed state, shut it down before reloading: {self._load_error}"
                )

            self._state = EngineState.LOADING
            logger.info(f"Loading ffmpeg engine ({self.ffmpeg_binary})...")
            try:
                self._load()
            except Exception as e:
                self._state = EngineState.FAILED
                self._load_error = e
                logger.error(f"Failed to load ffmpeg engine: {e}")
                raise EngineInitError(f"Failed to load ffmpeg: {e}") from e

            self._state = EngineState.READY
            logger.info(f"ffmpeg engine ready: {self.version}")

    def _load(self):
        binary = shutil.which(self.ffmpeg_binary)
        if binary is None:
            raise FileNotFoundError(f"ffmpeg executable not found: {self.ffmpeg_binary}")

        result = self._runner(
            [binary, "-version"],
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            raise RuntimeError(
                f"'{binary} -version' exited with {result.returncode}: {(result.stderr or '').strip()}"
            )

        banner = (result.stdout or "").strip().splitlines()
        self.version = banner[0] if banner else "ffmpeg (unknown version)"
        self._binary_path = binary
        self._workdir = Path(tempfile.mkdtemp(prefix="clipmark-", dir=self._work_root))

    def shutdown(self):
        """Release the working directory. Safe to call in any state, repeatedly."""
        with self._job_lock, self._load_lock:
            if self._state == EngineState.UNINITIALIZED and self._workdir is None:
                return

            if self._workdir is not None:
                shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None
            self._binary_path = None
            self._load_error = None
            self.version = None
            self._state = EngineState.UNINITIALIZED
            logger.info("ffmpeg engine shut down")

    # ==================== Extraction ====================

    def extract_clip(
        self,
        source_bytes: bytes,
        source_crop: SourceCropArea,
        time_range: TimeRange,
        filename: str = OUTPUT_NAME,
    ) -> Artifact:
        """
        Crop and trim one clip out of the source video.

        Args:
            source_bytes: Full source video contents
            source_crop: Crop rectangle in source pixels
            time_range: Clip start/end in seconds
            filename: Name given to the resulting artifact

        Returns:
            Artifact holding the encoded MP4 bytes

        Raises:
            InvalidDuration: If the clip length is not in (0, 3600] seconds
            OutputMissing: If ffmpeg produced no output file
            EmptyOutput: If the output file is empty
            SubsystemFault: If the engine is not ready or ffmpeg failed
        """
        with self._job_lock:
            if self._state != EngineState.READY:
                raise SubsystemFault(f"Engine is not ready (state: {self._state.value})")

            self._state = EngineState.BUSY
            input_path = self._workdir / INPUT_NAME
            output_path = self._workdir / OUTPUT_NAME
            launch_failed = False

            try:
                input_path.write_bytes(source_bytes)

                duration = time_range.duration
                if not (0 < duration <= MAX_CLIP_SECONDS):
                    raise InvalidDuration(
                        f"Invalid duration {duration:.3f}s for {filename} "
                        f"(must be in (0, {MAX_CLIP_SECONDS}])"
                    )

                cmd = build_ffmpeg_command(
                    self._binary_path, input_path, output_path, source_crop, time_range
                )
                logger.debug(f"Running: {' '.join(cmd)}")
                try:
                    result = self._runner(cmd, capture_output=True, text=True, check=False)
                except OSError as e:
                    launch_failed = True
                    self._load_error = e
                    raise SubsystemFault(f"Could not launch ffmpeg for {filename}: {e}") from e

                if result.returncode != 0:
                    stderr = (result.stderr or "").strip()
                    raise SubsystemFault(
                        f"ffmpeg exited with {result.returncode} for {filename}: {stderr[-500:]}"
                    )

                # ffmpeg can exit cleanly without writing anything on bad filter args
                if not output_path.exists():
                    raise OutputMissing(f"ffmpeg produced no output for {filename}")
                if output_path.stat().st_size == 0:
                    raise EmptyOutput(f"ffmpeg produced an empty file for {filename}")

                payload = output_path.read_bytes()
            except OSError as e:
                raise SubsystemFault(f"Working storage error for {filename}: {e}") from e
            finally:
                self._clear_workdir(input_path, output_path)
                if launch_failed or not self._workdir.is_dir():
                    self._state = EngineState.FAILED
                else:
                    self._state = EngineState.READY

            logger.info(
                f"Extracted {filename}: {source_crop.filter_expression}, "
                f"{time_range.start:.2f}s +{duration:.2f}s, {len(payload)} bytes"
            )
            return Artifact(filename=filename, payload=payload, mime_type=OUTPUT_MIME_TYPE)

    def _clear_workdir(self, *paths: Path):
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Failed to remove {path.name} from working storage: {e}")


# Global singleton (lazy loaded)
_transcode_engine: Optional[TranscodeEngine] = None


def get_transcode_engine(ffmpeg_binary: str = "ffmpeg") -> TranscodeEngine:
    """Get the global TranscodeEngine instance."""
    global _transcode_engine

    if _transcode_engine is None:
        _transcode_engine = TranscodeEngine(ffmpeg_binary=ffmpeg_binary)

    return _transcode_engine


def clear_transcode_engine():
    """Shut down and clear the global engine."""
    global _transcode_engine

    if _transcode_engine is not None:
        _transcode_engine.shutdown()
        _transcode_engine = None
