"""
Clip export API endpoints
"""

import logging
import threading
from dataclasses import dataclass
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from typing import Literal, Optional

from core.errors import BatchError, DeliveryError, Unauthenticated
from core.models import ProgressEvent, Resolution
from delivery.drive import extract_folder_id
from delivery.upload import DeliveryReport, LocalSink, RemoteSink, UploadStage
from engine.batch import BatchExporter
from engine.transcode import get_transcode_engine
from backend.api.drive import make_drive_client
from backend.api.videos import get_annotations, get_source_video
from backend.config import FFMPEG_BINARY, LOCAL_SAVE_DELAY, OUTPUT_DIR

logger = logging.getLogger(__name__)

router = APIRouter()


@dataclass
class ExportJob:
    """Progress of the running (or last) export."""
    total: int
    percent: float = 0.0
    index: int = -1
    running: bool = True
    summary: str = ""

    def emit(self, event: ProgressEvent):
        self.percent = event.percent
        self.index = event.index


_export_lock = threading.Lock()
_export_job: Optional[ExportJob] = None


class ResolutionModel(BaseModel):
    width: int
    height: int


class ExportRequest(BaseModel):
    canvas_resolution: Optional[ResolutionModel] = None
    video_resolution: Optional[ResolutionModel] = None
    sink: Literal["local", "drive"] = "local"
    output_dir: Optional[str] = None  # Local sink; defaults to OUTPUT_DIR
    drive_token: Optional[str] = None
    drive_folder_url: Optional[str] = None
    annotation_ids: Optional[list[str]] = None  # Subset to export, in session order


class DeliveryOutcomeResponse(BaseModel):
    filename: str
    delivered: bool
    cause: Optional[str] = None
    location: Optional[str] = None


class BatchErrorResponse(BaseModel):
    annotation_id: Optional[str] = None
    filename: Optional[str] = None
    message: str


class ExportResponse(BaseModel):
    total: int
    exported: int
    delivered: int
    failed: int
    summary: str
    outcomes: list[DeliveryOutcomeResponse]
    error: Optional[BatchErrorResponse] = None


class ProgressResponse(BaseModel):
    running: bool
    percent: float
    index: int
    total: int
    summary: str


def _to_resolution(model: Optional[ResolutionModel]) -> Optional[Resolution]:
    if model is None:
        return None
    return Resolution(width=model.width, height=model.height)


def _build_summary(total: int, report: Optional[DeliveryReport], error: Optional[BatchError]) -> str:
    if error is None:
        return report.summary()
    delivered = report.delivered_count if report else 0
    return f"{error} ({delivered} of {total} clips delivered before the failure)"


@router.post("/clips", response_model=ExportResponse)
async def export_clips(request: ExportRequest):
    """Extract every annotation as a clip and deliver the results."""
    global _export_job

    source = get_source_video()
    annotations = list(get_annotations())
    if request.annotation_ids is not None:
        wanted = set(request.annotation_ids)
        annotations = [a for a in annotations if a.id in wanted]
    if not annotations:
        raise HTTPException(status_code=400, detail="No annotations to export")

    canvas = _to_resolution(request.canvas_resolution)
    video = _to_resolution(request.video_resolution)
    if canvas is None or video is None or not canvas.is_known or not video.is_known:
        raise HTTPException(status_code=400, detail="Missing resolution info")

    folder_id = None
    if request.sink == "drive":
        folder_id = extract_folder_id(request.drive_folder_url or "")
        if folder_id is None:
            raise HTTPException(status_code=400, detail="Invalid folder URL format")

    if not _export_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="An export is already running")

    sink = None
    job = ExportJob(total=len(annotations))
    try:
        if folder_id is not None:
            sink = RemoteSink(make_drive_client(request.drive_token), folder_id)
            # Check the token before spending time on transcoding
            await run_in_threadpool(sink.client.validate_token)
        else:
            sink = LocalSink(request.output_dir or OUTPUT_DIR, delay=LOCAL_SAVE_DELAY)

        _export_job = job
        exporter = BatchExporter(get_transcode_engine(FFMPEG_BINARY))
        error: Optional[BatchError] = None
        try:
            results = await run_in_threadpool(
                exporter.run, annotations, canvas, video, source.payload, job
            )
        except BatchError as e:
            logger.error(f"Export failed: {e}")
            error = e
            results = e.completed

        report = None
        if results:
            report = await run_in_threadpool(
                UploadStage().deliver, [artifact for _, artifact in results], sink
            )

        job.summary = _build_summary(len(annotations), report, error)
        return ExportResponse(
            total=len(annotations),
            exported=len(results),
            delivered=report.delivered_count if report else 0,
            failed=report.failed_count if report else 0,
            summary=job.summary,
            outcomes=[
                DeliveryOutcomeResponse(**o.__dict__) for o in (report.outcomes if report else [])
            ],
            error=BatchErrorResponse(
                annotation_id=error.annotation_id, filename=error.filename, message=str(error)
            ) if error else None,
        )
    except Unauthenticated as e:
        raise HTTPException(status_code=401, detail=str(e))
    except DeliveryError as e:
        raise HTTPException(status_code=502, detail=str(e))
    finally:
        job.running = False
        if isinstance(sink, RemoteSink):
            sink.client.close()
        _export_lock.release()


@router.get("/progress", response_model=ProgressResponse)
async def export_progress():
    """Progress of the running export, or the last finished one."""
    if _export_job is None:
        return ProgressResponse(running=False, percent=0.0, index=-1, total=0, summary="")
    return ProgressResponse(
        running=_export_job.running,
        percent=_export_job.percent,
        index=_export_job.index,
        total=_export_job.total,
        summary=_export_job.summary,
    )
