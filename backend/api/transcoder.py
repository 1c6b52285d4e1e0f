"""
Transcode engine API endpoints - load, status, unload
"""

import logging
from fastapi import APIRouter, HTTPException
from starlette.concurrency import run_in_threadpool

from core.errors import EngineInitError
from engine.transcode import get_transcode_engine, clear_transcode_engine
from backend.config import FFMPEG_BINARY

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/load")
async def load_engine():
    """Load the ffmpeg engine ahead of the first export."""
    engine = get_transcode_engine(FFMPEG_BINARY)
    try:
        await run_in_threadpool(engine.ensure_ready)
    except EngineInitError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": engine.state.value, "version": engine.version}


@router.get("/status")
async def engine_status():
    """Report the engine state."""
    engine = get_transcode_engine(FFMPEG_BINARY)
    return {"state": engine.state.value, "version": engine.version}


@router.post("/unload")
async def unload_engine():
    """Shut the engine down and drop it (also recovers a failed engine)."""
    clear_transcode_engine()
    logger.info("Unloaded ffmpeg engine")
    return {"status": "unloaded"}
