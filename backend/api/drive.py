"""
Google Drive API endpoints - token check and folder selection
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from typing import Optional

from core.errors import DeliveryError, Unauthenticated
from delivery.drive import DriveClient, extract_folder_id
from backend.config import DRIVE_API_URL, DRIVE_UPLOAD_URL, HTTP_TIMEOUT

router = APIRouter()


def make_drive_client(token: Optional[str]) -> DriveClient:
    """Create a Drive client from the configured endpoints."""
    return DriveClient(
        token,
        api_url=DRIVE_API_URL,
        upload_url=DRIVE_UPLOAD_URL,
        timeout=HTTP_TIMEOUT,
    )


class ConnectRequest(BaseModel):
    token: str


class ConnectResponse(BaseModel):
    connected: bool
    user: str


class FolderRequest(BaseModel):
    token: str
    folder_url: str


class FolderResponse(BaseModel):
    folder_id: str
    name: str


@router.post("/connect", response_model=ConnectResponse)
async def connect(request: ConnectRequest):
    """Check that an access token works before enabling Drive uploads."""
    with make_drive_client(request.token) as client:
        try:
            user = await run_in_threadpool(client.validate_token)
        except Unauthenticated as e:
            raise HTTPException(status_code=401, detail=str(e))
        except DeliveryError as e:
            raise HTTPException(status_code=502, detail=str(e))
    return ConnectResponse(connected=True, user=user)


@router.post("/folder", response_model=FolderResponse)
async def select_folder(request: FolderRequest):
    """Resolve a folder URL to its ID and name."""
    folder_id = extract_folder_id(request.folder_url)
    if folder_id is None:
        raise HTTPException(status_code=400, detail="Invalid folder URL format")

    with make_drive_client(request.token) as client:
        try:
            name = await run_in_threadpool(client.get_folder_name, folder_id)
        except Unauthenticated as e:
            raise HTTPException(status_code=401, detail=str(e))
        except DeliveryError as e:
            raise HTTPException(status_code=502, detail=str(e))
    return FolderResponse(folder_id=folder_id, name=name)
