"""
Exception hierarchy for the clip export pipeline.

Mapping and extraction errors surface to the immediate caller without
retries. BatchError wraps the first failing item and carries the work that
completed before it.
"""

from typing import Optional


class ClipMarkError(Exception):
    """Base class for all pipeline errors."""


# ==================== Coordinate mapping ====================


class MappingError(ClipMarkError):
    """Crop area could not be mapped into source space."""


class MissingResolution(MappingError):
    """Canvas or video resolution is unknown or has a zero dimension."""


class InvalidCropArea(MappingError):
    """Crop area has a non-finite coordinate or size."""


# ==================== Transcode engine ====================


class EngineInitError(ClipMarkError):
    """The transcoding engine failed to load."""


class ExtractError(ClipMarkError):
    """A single clip extraction failed."""


class InvalidDuration(ExtractError):
    """Requested clip duration is outside (0, 3600] seconds."""


class OutputMissing(ExtractError):
    """The engine finished but produced no output file."""


class EmptyOutput(ExtractError):
    """The engine produced a zero-byte output file."""


class SubsystemFault(ExtractError):
    """The underlying ffmpeg process failed or is unusable."""


# ==================== Batch ====================


class BatchError(ClipMarkError):
    """
    A batch export aborted on one annotation.

    Attributes:
        annotation_id: ID of the failing annotation (None for engine load failures)
        filename: Output filename of the failing annotation
        cause: The underlying exception
        completed: (filename, Artifact) pairs produced before the failure
    """

    def __init__(
        self,
        annotation_id: Optional[str],
        filename: Optional[str],
        cause: Exception,
        completed: Optional[list] = None,
    ):
        self.annotation_id = annotation_id
        self.filename = filename
        self.cause = cause
        self.completed = list(completed or [])
        if annotation_id is None:
            message = f"Export aborted before the first clip: {cause}"
        else:
            message = f"Export failed on {filename} (annotation {annotation_id}): {cause}"
        super().__init__(message)


# ==================== Delivery ====================


class DeliveryError(ClipMarkError):
    """Artifact delivery failed."""


class Unauthenticated(DeliveryError):
    """The remote store credential is missing or was rejected."""


class ItemUploadFailed(DeliveryError):
    """A single artifact could not be uploaded."""

    def __init__(self, filename: str, reason: str, status_code: Optional[int] = None):
        self.filename = filename
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Upload of {filename} failed: {reason}")


# ==================== Input ====================


class InputRejected(ClipMarkError):
    """Source video rejected before entering the pipeline."""

    def __init__(self, message: str, code: str):
        self.code = code
        super().__init__(message)


class SheetError(ClipMarkError):
    """Annotation sheet could not be read."""
