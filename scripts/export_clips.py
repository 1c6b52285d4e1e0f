#!/usr/bin/env python
"""
Export cropped clips for every annotation in a sheet.

Usage:
    python scripts/export_clips.py <video> <sheet> <output_dir> --canvas-size 640x360 [--video-size 1920x1080]
    python scripts/export_clips.py <video> <sheet> <output_dir> --canvas-size 640x360 \
        --drive-token TOKEN --drive-folder https://drive.google.com/drive/folders/<id>
"""

import sys
import logging
import argparse
import mimetypes
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.config import FFMPEG_BINARY, FFPROBE_BINARY, LOCAL_SAVE_DELAY
from core.errors import BatchError, ClipMarkError, DeliveryError
from core.models import Resolution
from core.sheets import read_annotations
from core.validate import validate_source_video
from delivery.drive import DriveClient, extract_folder_id
from delivery.upload import LocalSink, RemoteSink, UploadStage
from engine.batch import BatchExporter
from engine.probe import probe_video
from engine.transcode import TranscodeEngine


def main():
    parser = argparse.ArgumentParser(description="Export annotated clips from a video")
    parser.add_argument("video", help="Path to the source video")
    parser.add_argument("sheet", help="Annotation sheet (.csv or .xlsx)")
    parser.add_argument("output_dir", help="Output directory for clips")
    parser.add_argument("--canvas-size", required=True, help="Canvas size the crops were drawn on, e.g. 640x360")
    parser.add_argument("--video-size", help="Source video size (probed with ffprobe if omitted)")
    parser.add_argument("--ffmpeg", default=FFMPEG_BINARY, help="ffmpeg executable")
    parser.add_argument("--ffprobe", default=FFPROBE_BINARY, help="ffprobe executable")
    parser.add_argument("--drive-token", help="Google Drive access token (upload instead of saving locally)")
    parser.add_argument("--drive-folder", help="Google Drive folder URL")
    parser.add_argument("--delay", type=float, default=LOCAL_SAVE_DELAY, help="Pause between local saves in seconds")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    video_path = Path(args.video)
    content_type, _ = mimetypes.guess_type(video_path.name)

    try:
        validate_source_video(video_path.name, content_type, video_path.stat().st_size)
        canvas = Resolution.parse(args.canvas_size)
        if args.video_size:
            video = Resolution.parse(args.video_size)
        else:
            video = probe_video(video_path, ffprobe_binary=args.ffprobe).resolution
        annotations = read_annotations(args.sheet)
    except (ClipMarkError, OSError, ValueError, RuntimeError) as e:
        print(f"✗ {e}")
        sys.exit(1)

    if not annotations:
        print("✗ No valid annotations found in the sheet")
        sys.exit(1)

    if args.drive_token:
        folder_id = extract_folder_id(args.drive_folder or "")
        if folder_id is None:
            print("✗ --drive-folder must be a Drive folder URL")
            sys.exit(1)
        sink = RemoteSink(DriveClient(args.drive_token), folder_id)
    else:
        sink = LocalSink(args.output_dir, delay=args.delay)

    print(f"Video: {video_path.name} ({video.width}x{video.height})")
    print(f"Canvas: {canvas.width}x{canvas.height}")
    print(f"Annotations: {len(annotations)}")
    print("-" * 50)

    def on_progress(percent: float, index: int):
        if 0 <= index < len(annotations):
            print(f"  [{percent:5.1f}%] {index + 1}/{len(annotations)} {annotations[index].filename}")

    engine = TranscodeEngine(ffmpeg_binary=args.ffmpeg)
    error = None
    try:
        results = BatchExporter(engine).run(
            annotations, canvas, video, video_path.read_bytes(), on_progress
        )
    except BatchError as e:
        error = e
        results = e.completed
    finally:
        engine.shutdown()

    exit_code = 0
    if results:
        try:
            report = UploadStage().deliver([artifact for _, artifact in results], sink)
        except DeliveryError as e:
            print(f"✗ Delivery failed: {e}")
            sys.exit(1)
        finally:
            if isinstance(sink, RemoteSink):
                sink.client.close()

        print(f"\n{report.summary()}")
        for outcome in report.outcomes:
            if not outcome.delivered:
                print(f"  ⚠ {outcome.filename}: {outcome.cause}")
        if not report.all_delivered:
            exit_code = 1
    elif isinstance(sink, RemoteSink):
        sink.client.close()

    if error is not None:
        print(f"\n✗ {error}")
        sys.exit(1)

    if exit_code == 0:
        print(f"\n✓ Export complete: {len(results)} clips")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
