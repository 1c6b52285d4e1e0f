"""
Core module - Data model, crop mapping, validation and annotation sheets
"""

__version__ = "0.1.0"

from core.models import (
    Resolution, CropArea, TimeRange, Annotation, SourceCropArea, Artifact,
    EngineState, ProgressEvent, generate_filename,
)
from core.coords import map_crop_area, MIN_CROP_SIDE
from core.sheets import read_annotations, write_annotations_csv

__all__ = [
    "Resolution", "CropArea", "TimeRange", "Annotation", "SourceCropArea", "Artifact",
    "EngineState", "ProgressEvent", "generate_filename",
    "map_crop_area", "MIN_CROP_SIDE",
    "read_annotations", "write_annotations_csv",
]
