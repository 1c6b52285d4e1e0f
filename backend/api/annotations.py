"""
Annotations API endpoints
"""

import io
import math
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from fastapi import APIRouter, File, HTTPException, Query, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, Field
from typing import Optional

from core.errors import SheetError
from core.models import Annotation, CropArea, TimeRange, generate_filename
from core.sheets import read_annotations, write_annotations_csv
from core.validate import validate_annotations
from backend.api.videos import (
    get_annotations, set_annotations, get_start_index, set_start_index,
)
from backend.config import CLIP_PREFIX

router = APIRouter()


class CropAreaModel(BaseModel):
    x: float
    y: float
    width: float
    height: float


class TimeRangeModel(BaseModel):
    start: float
    end: float


class AnnotationResponse(BaseModel):
    id: str
    label: str
    postag: Optional[str] = None
    side_view: bool
    crop_area: CropAreaModel
    time_range: TimeRangeModel
    filename: str
    created_at: datetime


class CreateAnnotationRequest(BaseModel):
    label: str
    crop_area: CropAreaModel
    time_range: TimeRangeModel
    postag: Optional[str] = None
    side_view: bool = False
    filename: Optional[str] = None  # If not provided, generated from the start index


class UpdateAnnotationRequest(BaseModel):
    label: Optional[str] = None
    crop_area: Optional[CropAreaModel] = None
    time_range: Optional[TimeRangeModel] = None
    postag: Optional[str] = None
    side_view: Optional[bool] = None


class StartIndexRequest(BaseModel):
    start_index: int = Field(ge=0)


def annotation_to_response(ann: Annotation) -> AnnotationResponse:
    """Convert Annotation to AnnotationResponse."""
    return AnnotationResponse(
        id=ann.id,
        label=ann.label,
        postag=ann.postag,
        side_view=ann.side_view,
        crop_area=CropAreaModel(
            x=ann.crop_area.x, y=ann.crop_area.y,
            width=ann.crop_area.width, height=ann.crop_area.height,
        ),
        time_range=TimeRangeModel(start=ann.time_range.start, end=ann.time_range.end),
        filename=ann.filename,
        created_at=ann.created_at,
    )


def _check_geometry(crop: CropAreaModel, time_range: TimeRangeModel):
    values = (crop.x, crop.y, crop.width, crop.height, time_range.start, time_range.end)
    if not all(math.isfinite(v) for v in values):
        raise HTTPException(status_code=400, detail="Crop area and time range must be finite numbers")
    if time_range.start < 0 or time_range.start >= time_range.end:
        raise HTTPException(status_code=400, detail="Invalid time range")
    if crop.width <= 0 or crop.height <= 0:
        raise HTTPException(status_code=400, detail="Invalid crop area")


def _find_index(annotation_id: str) -> int:
    for i, ann in enumerate(get_annotations()):
        if ann.id == annotation_id:
            return i
    raise HTTPException(status_code=404, detail="Annotation not found")


@router.get("", response_model=list[AnnotationResponse])
async def list_annotations():
    """List annotations in export order."""
    return [annotation_to_response(ann) for ann in get_annotations()]


@router.post("", response_model=AnnotationResponse)
async def create_annotation(request: CreateAnnotationRequest):
    """Add an annotation to the end of the session."""
    if not request.label.strip():
        raise HTTPException(status_code=400, detail="Label is required")
    _check_geometry(request.crop_area, request.time_range)

    annotations = get_annotations()
    filename = request.filename or generate_filename(
        len(annotations), start_index=get_start_index(), prefix=CLIP_PREFIX
    )
    ann = Annotation(
        id=uuid.uuid4().hex,
        label=request.label.strip(),
        crop_area=CropArea(**request.crop_area.model_dump()),
        time_range=TimeRange(**request.time_range.model_dump()),
        filename=filename,
        created_at=datetime.now(timezone.utc),
        postag=request.postag or None,
        side_view=request.side_view,
    )
    annotations.append(ann)
    return annotation_to_response(ann)


@router.get("/start-index")
async def get_start_index_setting():
    """Get the sequence number the next generated filename starts from."""
    return {"start_index": get_start_index()}


@router.put("/start-index")
async def set_start_index_setting(request: StartIndexRequest):
    """Set the sequence number used for generated filenames."""
    set_start_index(request.start_index)
    return {"start_index": request.start_index}


@router.post("/import", response_model=list[AnnotationResponse])
async def import_annotations(
    file: UploadFile = File(...),
    append: bool = Query(False, description="Append instead of replacing the session"),
):
    """Import annotations from a CSV or XLSX sheet."""
    content = await file.read()
    try:
        imported = read_annotations(io.BytesIO(content), filename=file.filename or "")
    except SheetError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not imported:
        raise HTTPException(status_code=400, detail="No valid annotations found")

    if append:
        set_annotations(get_annotations() + imported)
    else:
        set_annotations(imported)
    return [annotation_to_response(ann) for ann in imported]


@router.get("/export")
async def export_annotations_csv():
    """Download the session's annotations as CSV."""
    content = write_annotations_csv(get_annotations())
    filename = f"annotations_{date.today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/validate")
async def validate():
    """Validate all annotations in the session."""
    report = validate_annotations(get_annotations())
    return {
        "total_annotations": report.total_annotations,
        "error_count": report.error_count,
        "warning_count": report.warning_count,
        "is_valid": report.is_valid,
        "errors": [w.__dict__ for w in report.errors[:50]],  # Limit to 50 errors
        "warnings": [w.__dict__ for w in report.warnings[:50]],
    }


@router.get("/{annotation_id}", response_model=AnnotationResponse)
async def get_annotation(annotation_id: str):
    """Get annotation by ID."""
    return annotation_to_response(get_annotations()[_find_index(annotation_id)])


@router.put("/{annotation_id}", response_model=AnnotationResponse)
async def update_annotation(annotation_id: str, request: UpdateAnnotationRequest):
    """Update an annotation. The filename and creation time are kept."""
    annotations = get_annotations()
    index = _find_index(annotation_id)
    ann = annotations[index]

    changes = {}
    if request.label is not None:
        if not request.label.strip():
            raise HTTPException(status_code=400, detail="Label is required")
        changes["label"] = request.label.strip()
    if request.postag is not None:
        changes["postag"] = request.postag or None
    if request.side_view is not None:
        changes["side_view"] = request.side_view

    crop = request.crop_area or CropAreaModel(**ann.crop_area.__dict__)
    time_range = request.time_range or TimeRangeModel(**ann.time_range.__dict__)
    _check_geometry(crop, time_range)
    changes["crop_area"] = CropArea(**crop.model_dump())
    changes["time_range"] = TimeRange(**time_range.model_dump())

    annotations[index] = replace(ann, **changes)
    return annotation_to_response(annotations[index])


@router.delete("/{annotation_id}")
async def delete_annotation(annotation_id: str):
    """Delete an annotation."""
    annotations = get_annotations()
    del annotations[_find_index(annotation_id)]
    return {"status": "deleted"}
