"""
Input validation for source videos and annotations.

Checks performed before anything reaches the transcoder:
- Source video MIME type and size cap
- Annotation time range and crop dimensions
- Clip bounds against the video duration
"""

import math
from dataclasses import dataclass
from typing import Optional

from core.errors import InputRejected
from core.models import Annotation

# Maximum accepted source video size (500 MB)
MAX_SOURCE_BYTES = 500 * 1024 * 1024

# Longest clip the engine will extract, in seconds
MAX_CLIP_SECONDS = 3600


def validate_source_video(
    filename: str,
    content_type: Optional[str],
    size: int,
    max_bytes: int = MAX_SOURCE_BYTES,
) -> None:
    """
    Reject a source video that is not a video or is too large.

    Raises:
        InputRejected: with code 'INVALID_TYPE' or 'TOO_LARGE'
    """
    if not content_type or not content_type.startswith("video/"):
        raise InputRejected(
            f"{filename} is not a video file (type: {content_type or 'unknown'})",
            code="INVALID_TYPE",
        )
    if size > max_bytes:
        raise InputRejected(
            f"{filename} is {size / 1024 / 1024:.1f}MB, limit is {max_bytes / 1024 / 1024:.0f}MB",
            code="TOO_LARGE",
        )


@dataclass
class ValidationWarning:
    """A validation warning."""
    annotation_id: str
    severity: str  # 'error', 'warning'
    code: str
    message: str


def validate_annotation(
    annotation: Annotation,
    video_duration: Optional[float] = None,
) -> list[ValidationWarning]:
    """
    Validate a single annotation.

    Args:
        annotation: The annotation to validate
        video_duration: Source video duration in seconds, if known

    Returns:
        List of validation warnings
    """
    warnings = []
    start, end = annotation.time_range.start, annotation.time_range.end

    if not (math.isfinite(start) and math.isfinite(end)) or start < 0 or start >= end:
        warnings.append(ValidationWarning(
            annotation_id=annotation.id,
            severity='error',
            code='INVALID_TIME_RANGE',
            message=f'Invalid time range: {start:.2f}s -> {end:.2f}s'
        ))
    elif end - start > MAX_CLIP_SECONDS:
        warnings.append(ValidationWarning(
            annotation_id=annotation.id,
            severity='error',
            code='CLIP_TOO_LONG',
            message=f'Clip is {end - start:.0f}s long (max {MAX_CLIP_SECONDS}s)'
        ))

    crop = annotation.crop_area
    crop_values = (crop.x, crop.y, crop.width, crop.height)
    if not all(math.isfinite(v) for v in crop_values) or crop.width <= 0 or crop.height <= 0:
        warnings.append(ValidationWarning(
            annotation_id=annotation.id,
            severity='error',
            code='INVALID_CROP',
            message=f'Crop area is not a positive finite size: {crop.width}x{crop.height} at ({crop.x}, {crop.y})'
        ))

    if video_duration is not None and end > video_duration:
        warnings.append(ValidationWarning(
            annotation_id=annotation.id,
            severity='warning',
            code='CLIP_PAST_END',
            message=f'Clip ends at {end:.2f}s but video is {video_duration:.2f}s long'
        ))

    if not annotation.label.strip():
        warnings.append(ValidationWarning(
            annotation_id=annotation.id,
            severity='warning',
            code='EMPTY_LABEL',
            message='Annotation has no label'
        ))

    return warnings


@dataclass
class ValidationReport:
    """Validation report for an annotation session."""
    total_annotations: int
    errors: list[ValidationWarning]
    warnings: list[ValidationWarning]

    @property
    def is_valid(self) -> bool:
        """Session is exportable if there are no errors."""
        return len(self.errors) == 0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def summary(self) -> str:
        """Get a summary string."""
        return (
            f"Validation Report:\n"
            f"  Annotations: {self.total_annotations}\n"
            f"  Errors: {self.error_count}\n"
            f"  Warnings: {self.warning_count}\n"
            f"  Valid: {'Yes' if self.is_valid else 'No'}"
        )


def validate_annotations(
    annotations: list[Annotation],
    video_duration: Optional[float] = None,
) -> ValidationReport:
    """Validate all annotations and split the findings by severity."""
    all_warnings = []
    for ann in annotations:
        all_warnings.extend(validate_annotation(ann, video_duration))

    return ValidationReport(
        total_annotations=len(annotations),
        errors=[w for w in all_warnings if w.severity == 'error'],
        warnings=[w for w in all_warnings if w.severity == 'warning'],
    )
