"""
Display-to-source crop mapping.

Maps a crop rectangle drawn on a (possibly scaled) canvas into the pixel space
of the source video. Output values are even, since 4:2:0 chroma subsampling
needs even crop offsets and dimensions.
"""

import math
from typing import Optional

from core.errors import InvalidCropArea, MissingResolution
from core.models import CropArea, Resolution, SourceCropArea

# Smallest crop side the encoder is asked to handle
MIN_CROP_SIDE = 32


def round_even(value: float) -> int:
    """Round to the nearest even integer, halves rounding up (3 -> 4, 5 -> 6)."""
    return 2 * math.floor(value / 2 + 0.5)


def floor_even(value: int) -> int:
    """Largest even integer <= value."""
    return value - (value % 2)


def map_crop_area(
    crop_area: CropArea,
    canvas_resolution: Optional[Resolution],
    video_resolution: Optional[Resolution],
) -> SourceCropArea:
    """
    Map a canvas-space crop into a clamped, codec-legal source-space crop.

    Each axis is scaled independently, so letterboxed or stretched canvases
    map correctly.

    Args:
        crop_area: Crop rectangle in canvas pixels
        canvas_resolution: Size of the canvas the crop was drawn on
        video_resolution: Native size of the source video

    Returns:
        SourceCropArea with even x, y, width, height contained in the video

    Raises:
        MissingResolution: If either resolution is None or has a zero dimension
        InvalidCropArea: If any crop value is NaN or infinite once scaled
    """
    if canvas_resolution is None or not canvas_resolution.is_known:
        raise MissingResolution(f"Canvas resolution is missing: {canvas_resolution}")
    if video_resolution is None or not video_resolution.is_known:
        raise MissingResolution(f"Video resolution is missing: {video_resolution}")

    scale_x = video_resolution.width / canvas_resolution.width
    scale_y = video_resolution.height / canvas_resolution.height

    scaled = (
        crop_area.x * scale_x,
        crop_area.width * scale_x,
        crop_area.y * scale_y,
        crop_area.height * scale_y,
    )
    # NaN and inf cannot be rounded to pixels
    if not all(math.isfinite(v) for v in scaled):
        raise InvalidCropArea(f"Crop area has non-finite values: {crop_area}")

    x, width = _clamp_axis(
        round_even(scaled[0]), round_even(scaled[1]), video_resolution.width
    )
    y, height = _clamp_axis(
        round_even(scaled[2]), round_even(scaled[3]), video_resolution.height
    )

    return SourceCropArea(x=x, y=y, width=width, height=height)


def _clamp_axis(offset: int, length: int, limit: int) -> tuple[int, int]:
    """Clamp one axis to [0, limit] with a minimum length of MIN_CROP_SIDE."""
    offset = max(0, offset)
    # Pull the origin back only when fewer than MIN_CROP_SIDE pixels remain
    offset = min(offset, max(0, floor_even(limit - MIN_CROP_SIDE)))
    length = max(MIN_CROP_SIDE, length)
    length = min(length, floor_even(limit - offset))
    return offset, length
