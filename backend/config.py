"""
Backend configuration
"""

import os
from pathlib import Path

# Base paths
ROOT_DIR = Path(__file__).parent.parent  # clipmark/
OUTPUT_DIR = os.getenv("OUTPUT_DIR", str(ROOT_DIR / "exports"))

# API settings
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# CORS origins (frontend URL)
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
).split(",")

# ffmpeg settings
FFMPEG_BINARY = os.getenv("FFMPEG_BINARY", "ffmpeg")
FFPROBE_BINARY = os.getenv("FFPROBE_BINARY", "ffprobe")

# Source video limit
MAX_SOURCE_MB = int(os.getenv("MAX_SOURCE_MB", "500"))
MAX_SOURCE_BYTES = MAX_SOURCE_MB * 1024 * 1024

# Clip naming: {CLIP_PREFIX}{0000}.mp4
CLIP_PREFIX = os.getenv("CLIP_PREFIX", "VTV")

# Pause between local saves, in seconds
LOCAL_SAVE_DELAY = float(os.getenv("LOCAL_SAVE_DELAY", "0.1"))

# Google Drive settings
DRIVE_API_URL = os.getenv("DRIVE_API_URL", "https://www.googleapis.com/drive/v3")
DRIVE_UPLOAD_URL = os.getenv(
    "DRIVE_UPLOAD_URL", "https://www.googleapis.com/upload/drive/v3/files"
)
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "120"))
