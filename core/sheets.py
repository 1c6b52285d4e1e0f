"""
Annotation sheet import/export.

Reads CSV or XLSX sheets with one annotation per row and writes the session
back out as CSV (UTF-8 with BOM so spreadsheet tools detect the encoding).
Also merges several exported sheets into a single label table.

Columns:
- ID_video, Meaning (required)
- Pos-tag, SideView (optional)
- Start Time (s), End Time (s) (required)
- Crop X, Crop Y, Crop Width, Crop Height (required)
- Created At (optional, ISO timestamp)
"""

import csv
import io
import logging
import math
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Optional, Union

import pandas as pd

from core.errors import SheetError
from core.models import Annotation, CropArea, TimeRange

logger = logging.getLogger(__name__)

COL_ID = "ID_video"
COL_LABEL = "Meaning"
COL_POSTAG = "Pos-tag"
COL_SIDE_VIEW = "SideView"
COL_START = "Start Time (s)"
COL_END = "End Time (s)"
COL_DURATION = "Duration (s)"
COL_CROP_X = "Crop X"
COL_CROP_Y = "Crop Y"
COL_CROP_W = "Crop Width"
COL_CROP_H = "Crop Height"
COL_CREATED = "Created At"

REQUIRED_COLUMNS = [
    COL_ID, COL_LABEL, COL_START, COL_END,
    COL_CROP_X, COL_CROP_Y, COL_CROP_W, COL_CROP_H,
]

EXPORT_COLUMNS = [
    COL_ID, COL_LABEL, COL_POSTAG, COL_SIDE_VIEW,
    COL_START, COL_END, COL_DURATION,
    COL_CROP_X, COL_CROP_Y, COL_CROP_W, COL_CROP_H,
    COL_CREATED,
]

SHEET_EXTENSIONS = {'.csv', '.xlsx', '.xls'}

# Columns dropped when merging exported sheets into one label table
MERGE_DROP_COLUMNS = [
    "Video-File", COL_START, COL_END, COL_DURATION,
    COL_CROP_X, COL_CROP_Y, COL_CROP_W, COL_CROP_H, COL_CREATED,
]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return bool(pd.isna(value))


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if _is_blank(value):
        return False
    return str(value).strip().lower() == "true"


def _parse_timestamp(value: Any) -> datetime:
    if _is_blank(value):
        return datetime.now(timezone.utc)
    try:
        return pd.Timestamp(value).to_pydatetime()
    except (ValueError, TypeError):
        logger.warning(f"Unparseable timestamp {value!r}, using current time")
        return datetime.now(timezone.utc)


def parse_row(row: dict) -> Optional[Annotation]:
    """
    Convert one sheet row into an Annotation.

    Returns None for rows missing a required field, with a non-finite
    number, with start >= end, or with a non-positive crop size.
    """
    if any(_is_blank(row.get(col)) for col in REQUIRED_COLUMNS):
        return None

    try:
        start = float(row[COL_START])
        end = float(row[COL_END])
        crop = CropArea(
            x=float(row[COL_CROP_X]),
            y=float(row[COL_CROP_Y]),
            width=float(row[COL_CROP_W]),
            height=float(row[COL_CROP_H]),
        )
    except (TypeError, ValueError) as e:
        logger.warning(f"Skipping row with non-numeric field: {e}")
        return None

    if not all(math.isfinite(v) for v in (start, end, crop.x, crop.y, crop.width, crop.height)):
        logger.warning(f"Skipping {row[COL_ID]}: non-finite number")
        return None

    if start >= end:
        logger.warning(f"Skipping {row[COL_ID]}: invalid time range {start} -> {end}")
        return None

    if crop.width <= 0 or crop.height <= 0:
        logger.warning(f"Skipping {row[COL_ID]}: invalid crop size {crop.width}x{crop.height}")
        return None

    postag = row.get(COL_POSTAG)
    return Annotation(
        id=f"imported_{uuid.uuid4().hex}",
        label=str(row[COL_LABEL]).strip(),
        crop_area=crop,
        time_range=TimeRange(start=start, end=end),
        filename=str(row[COL_ID]).strip(),
        created_at=_parse_timestamp(row.get(COL_CREATED)),
        postag=None if _is_blank(postag) else str(postag).strip(),
        side_view=_parse_bool(row.get(COL_SIDE_VIEW)),
    )


def parse_rows(rows: list[dict]) -> list[Annotation]:
    """Parse sheet rows, skipping invalid ones."""
    annotations = []
    for row in rows:
        annotation = parse_row(row)
        if annotation is not None:
            annotations.append(annotation)

    skipped = len(rows) - len(annotations)
    if skipped:
        logger.info(f"Skipped {skipped} of {len(rows)} rows")
    return annotations


def read_sheet(
    source: Union[str, Path, BinaryIO],
    filename: Optional[str] = None,
) -> pd.DataFrame:
    """
    Read the first sheet of a CSV or XLSX file with every cell as a string.

    Raises:
        SheetError: If the format is unsupported or the sheet can't be parsed
    """
    name = filename or str(source)
    ext = Path(name).suffix.lower()
    if ext not in SHEET_EXTENSIONS:
        raise SheetError(f"Unsupported sheet type '{ext}' (expected .csv, .xlsx or .xls)")

    try:
        if ext == ".csv":
            df = pd.read_csv(source, dtype=str, encoding="utf-8-sig")
        else:
            df = pd.read_excel(source, dtype=str, sheet_name=0)
    except (ValueError, OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
        raise SheetError(f"Failed to read {name}: {e}") from e

    df.columns = [str(col).strip() for col in df.columns]
    return df


def merge_sheets(frames: list[pd.DataFrame]) -> pd.DataFrame:
    """
    Merge exported sheets row by row into one label table.

    Row i of every sheet lands in row i of the result. Timing and crop
    columns are dropped. When sheets share a column, a later sheet's
    non-empty cell wins; empty cells never overwrite.
    """
    merged: Optional[pd.DataFrame] = None
    columns: list[str] = []
    for df in frames:
        cleaned = df.drop(columns=MERGE_DROP_COLUMNS, errors="ignore").reset_index(drop=True)
        columns += [col for col in cleaned.columns if col not in columns]
        merged = cleaned if merged is None else cleaned.combine_first(merged)

    if merged is None:
        return pd.DataFrame()
    # combine_first sorts the column union
    return merged.reindex(columns=columns)


def write_sheet(df: pd.DataFrame, path: Union[str, Path]):
    """Write a table as XLSX (sheet 'Merged') or as CSV with a BOM."""
    path = Path(path)
    ext = path.suffix.lower()
    if ext == ".csv":
        df.to_csv(path, index=False, encoding="utf-8-sig")
    elif ext == ".xlsx":
        df.to_excel(path, index=False, sheet_name="Merged")
    else:
        raise SheetError(f"Unsupported output type '{ext}' (expected .csv or .xlsx)")


def read_annotations(
    source: Union[str, Path, BinaryIO],
    filename: Optional[str] = None,
) -> list[Annotation]:
    """
    Read annotations from a CSV or XLSX sheet.

    Args:
        source: Path or binary file object
        filename: Name used to pick the format when source is a file object

    Returns:
        Valid annotations in sheet order

    Raises:
        SheetError: If the format is unsupported or the sheet can't be parsed
    """
    df = read_sheet(source, filename)
    if df.empty:
        return []
    return parse_rows(df.to_dict("records"))


def annotation_to_row(annotation: Annotation) -> dict:
    """Convert an Annotation to an export row."""
    crop = annotation.crop_area
    time_range = annotation.time_range
    return {
        COL_ID: annotation.filename,
        COL_LABEL: annotation.label,
        COL_POSTAG: annotation.postag or "",
        COL_SIDE_VIEW: "true" if annotation.side_view else "false",
        COL_START: f"{time_range.start:.2f}",
        COL_END: f"{time_range.end:.2f}",
        COL_DURATION: f"{time_range.duration:.2f}",
        COL_CROP_X: round(crop.x),
        COL_CROP_Y: round(crop.y),
        COL_CROP_W: round(crop.width),
        COL_CROP_H: round(crop.height),
        COL_CREATED: annotation.created_at.isoformat(),
    }


def write_annotations_csv(annotations: list[Annotation]) -> bytes:
    """Serialize annotations to CSV bytes (UTF-8 with BOM, all cells quoted)."""
    df = pd.DataFrame([annotation_to_row(a) for a in annotations], columns=EXPORT_COLUMNS)
    buffer = io.BytesIO()
    df.to_csv(buffer, index=False, encoding="utf-8-sig", quoting=csv.QUOTE_ALL)
    return buffer.getvalue()
