"""
Engine module - ffmpeg transcoding, batch export and probing
"""

from engine.transcode import TranscodeEngine, get_transcode_engine, clear_transcode_engine
from engine.batch import BatchExporter, ClipEngine, ProgressRecorder, ProgressSink
from engine.probe import probe_video, VideoProbeInfo

__all__ = [
    "TranscodeEngine", "get_transcode_engine", "clear_transcode_engine",
    "BatchExporter", "ClipEngine", "ProgressRecorder", "ProgressSink",
    "probe_video", "VideoProbeInfo",
]
