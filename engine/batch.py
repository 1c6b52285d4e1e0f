"""
Batch export - runs annotations through crop mapping and the transcode engine.

Items are processed one at a time in input order. The first failing item
aborts the batch; clips finished before it are handed back on the error.
"""

import logging
from typing import Callable, Optional, Protocol, Sequence, Union

from core.coords import map_crop_area
from core.errors import BatchError, EngineInitError, ExtractError, MappingError
from core.models import (
    Annotation, Artifact, ProgressEvent, Resolution, SourceCropArea, TimeRange,
)

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    """Receives progress events from a batch run."""

    def emit(self, event: ProgressEvent) -> None:
        ...


class ClipEngine(Protocol):
    """What the exporter needs from an engine (TranscodeEngine or a fake)."""

    def ensure_ready(self) -> None:
        ...

    def extract_clip(
        self,
        source_bytes: bytes,
        source_crop: SourceCropArea,
        time_range: TimeRange,
        filename: str = "output.mp4",
    ) -> Artifact:
        ...


class ProgressRecorder:
    """Progress sink that keeps every event it receives."""

    def __init__(self):
        self.events: list[ProgressEvent] = []

    def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)

    @property
    def latest(self) -> Optional[ProgressEvent]:
        return self.events[-1] if self.events else None


class _CallbackSink:
    """Adapts a (percent, index) callback to a ProgressSink."""

    def __init__(self, callback: Callable[[float, int], None]):
        self._callback = callback

    def emit(self, event: ProgressEvent) -> None:
        self._callback(event.percent, event.index)


class _NullSink:
    def emit(self, event: ProgressEvent) -> None:
        pass


ProgressTarget = Union[ProgressSink, Callable[[float, int], None], None]


def as_progress_sink(target: ProgressTarget) -> ProgressSink:
    """Wrap a callback (or None) so callers can pass either form."""
    if target is None:
        return _NullSink()
    if hasattr(target, "emit"):
        return target
    return _CallbackSink(target)


class BatchExporter:
    """
    Sequential exporter over a shared TranscodeEngine.

    The engine is passed in rather than looked up, so tests can substitute
    a fake with the same ensure_ready/extract_clip interface.
    """

    def __init__(self, engine: ClipEngine):
        self.engine = engine

    def run(
        self,
        annotations: Sequence[Annotation],
        canvas_resolution: Optional[Resolution],
        video_resolution: Optional[Resolution],
        source_bytes: bytes,
        on_progress: ProgressTarget = None,
    ) -> list[tuple[str, Artifact]]:
        """
        Export every annotation as a clip.

        Args:
            annotations: Annotations in export order
            canvas_resolution: Canvas size the crops were drawn on
            video_resolution: Native source video size
            source_bytes: Full source video contents
            on_progress: ProgressSink or (percent, index) callback

        Returns:
            (filename, Artifact) pairs in input order

        Raises:
            BatchError: On the first failing item, with earlier results attached
        """
        sink = as_progress_sink(on_progress)
        total = len(annotations)
        results: list[tuple[str, Artifact]] = []

        if total == 0:
            sink.emit(ProgressEvent(percent=100.0, index=0))
            return results

        sink.emit(ProgressEvent(percent=0.0, index=-1))
        try:
            self.engine.ensure_ready()
        except EngineInitError as e:
            raise BatchError(None, None, e) from e

        for i, annotation in enumerate(annotations):
            sink.emit(ProgressEvent(percent=100.0 * i / total, index=i))
            logger.info(f"Exporting {i + 1}/{total}: {annotation.filename} ({annotation.label})")

            try:
                source_crop = map_crop_area(
                    annotation.crop_area, canvas_resolution, video_resolution
                )
                artifact = self.engine.extract_clip(
                    source_bytes,
                    source_crop,
                    annotation.time_range,
                    filename=annotation.filename,
                )
            except (MappingError, ExtractError) as e:
                logger.error(f"Batch aborted at {annotation.filename}: {e}")
                raise BatchError(annotation.id, annotation.filename, e, results) from e

            results.append((annotation.filename, artifact))

        sink.emit(ProgressEvent(percent=100.0, index=total))
        logger.info(f"Exported {total} clips")
        return results
