"""
FastAPI application entry point
"""

import sys
import logging
import traceback
from pathlib import Path

# Add parent directory to path so we can import core, engine and delivery modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from backend.config import CORS_ORIGINS, API_HOST, API_PORT
from backend.api import videos, annotations, export, drive, transcoder
from engine.transcode import clear_transcode_engine

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("ClipMark API starting...")
    yield
    # Shutdown
    clear_transcode_engine()
    logger.info("ClipMark API shutting down...")


app = FastAPI(
    title="ClipMark API",
    description="Video annotation API with cropped clip export",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log all unhandled exceptions with full traceback."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}:")
    logger.error(traceback.format_exc())
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(videos.router, prefix="/api/video", tags=["Video"])
app.include_router(annotations.router, prefix="/api/annotations", tags=["Annotations"])
app.include_router(export.router, prefix="/api/export", tags=["Export"])
app.include_router(drive.router, prefix="/api/drive", tags=["Drive"])
app.include_router(transcoder.router, prefix="/api/engine", tags=["Engine"])


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "clipmark-api"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)
