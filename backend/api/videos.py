"""
Source video API endpoints and the in-memory session state
"""

import logging
from dataclasses import dataclass
from fastapi import APIRouter, File, HTTPException, UploadFile
from pydantic import BaseModel
from typing import Optional

from core.errors import InputRejected
from core.models import Annotation
from core.validate import validate_source_video
from backend.config import MAX_SOURCE_BYTES

logger = logging.getLogger(__name__)

router = APIRouter()


@dataclass
class SourceVideo:
    """The uploaded source video, held in memory for the session."""
    filename: str
    content_type: str
    payload: bytes

    @property
    def size(self) -> int:
        return len(self.payload)


# Session state (not persisted across restarts)
_source_video: Optional[SourceVideo] = None
_annotations: list[Annotation] = []
_start_index: int = 0


def get_source_video() -> SourceVideo:
    """Get the loaded source video."""
    if _source_video is None:
        raise HTTPException(status_code=400, detail="No video loaded")
    return _source_video


def get_annotations() -> list[Annotation]:
    """Get the session's annotations (the list itself, in order)."""
    return _annotations


def set_annotations(annotations: list[Annotation]):
    global _annotations
    _annotations = list(annotations)


def get_start_index() -> int:
    return _start_index


def set_start_index(value: int):
    global _start_index
    _start_index = value


def reset_session():
    """Drop the source video and all annotations."""
    global _source_video, _annotations, _start_index
    _source_video = None
    _annotations = []
    _start_index = 0


class VideoResponse(BaseModel):
    filename: str
    content_type: str
    size: int


_REJECT_STATUS = {"INVALID_TYPE": 415, "TOO_LARGE": 413}


@router.post("", response_model=VideoResponse)
async def upload_video(file: UploadFile = File(...)):
    """Upload a source video. Replaces the current video and clears annotations."""
    global _source_video

    filename = file.filename or "video"
    try:
        # Reject on declared type/size before reading the body
        validate_source_video(filename, file.content_type, file.size or 0, MAX_SOURCE_BYTES)
        payload = await file.read()
        validate_source_video(filename, file.content_type, len(payload), MAX_SOURCE_BYTES)
    except InputRejected as e:
        raise HTTPException(status_code=_REJECT_STATUS.get(e.code, 400), detail=str(e))

    reset_session()
    _source_video = SourceVideo(
        filename=filename, content_type=file.content_type, payload=payload
    )
    logger.info(f"Loaded video {filename} ({len(payload) / 1024 / 1024:.1f}MB)")

    return VideoResponse(
        filename=filename, content_type=file.content_type, size=len(payload)
    )


@router.get("", response_model=Optional[VideoResponse])
async def get_video():
    """Get the currently loaded video."""
    if _source_video is None:
        return None
    return VideoResponse(
        filename=_source_video.filename,
        content_type=_source_video.content_type,
        size=_source_video.size,
    )


@router.delete("")
async def close_video():
    """Unload the video and discard the annotation session."""
    reset_session()
    return {"status": "closed"}
