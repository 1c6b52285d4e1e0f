"""
Core data models for ClipMark.

Dataclasses representing annotations, crop geometry and export artifacts.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Resolution:
    """Pixel dimensions of a canvas or a source video."""
    width: int
    height: int

    @property
    def is_known(self) -> bool:
        return self.width > 0 and self.height > 0

    @classmethod
    def parse(cls, text: str) -> 'Resolution':
        """Parse a 'WIDTHxHEIGHT' string, e.g. '1920x1080'."""
        parts = text.lower().split("x")
        if len(parts) != 2:
            raise ValueError(f"Invalid resolution '{text}', expected WIDTHxHEIGHT")
        return cls(width=int(parts[0]), height=int(parts[1]))


@dataclass(frozen=True)
class CropArea:
    """Crop rectangle in display (canvas) pixels."""
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class TimeRange:
    """Clip time range in seconds."""
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class Annotation:
    """A labeled crop rectangle and time range on the source video."""
    id: str
    label: str
    crop_area: CropArea
    time_range: TimeRange
    filename: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    postag: Optional[str] = None  # Part-of-speech tag, e.g. "N", "V"
    side_view: bool = False


@dataclass(frozen=True)
class SourceCropArea:
    """Codec-legal crop rectangle in source video pixels (all values even)."""
    x: int
    y: int
    width: int
    height: int

    @property
    def filter_expression(self) -> str:
        return f"crop={self.width}:{self.height}:{self.x}:{self.y}"


@dataclass
class Artifact:
    """An exported clip held in memory until it is delivered."""
    filename: str
    payload: bytes
    mime_type: str = "video/mp4"
    released: bool = False

    @property
    def size(self) -> int:
        return len(self.payload)

    def release(self):
        """Drop the payload once the artifact is delivered or abandoned."""
        self.payload = b""
        self.released = True


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    BUSY = "busy"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    """Batch progress: percent in [0, 100], index -1 while no item is active."""
    percent: float
    index: int


def generate_filename(
    index: int,
    start_index: int = 0,
    prefix: str = "VTV",
    digits: int = 4,
    ext: str = "mp4",
) -> str:
    """
    Build a clip filename from a sequence number.

    E.g., generate_filename(3, start_index=10) -> "VTV0013.mp4"
    """
    number = str(start_index + index).zfill(digits)
    return f"{prefix}{number}.{ext}"
