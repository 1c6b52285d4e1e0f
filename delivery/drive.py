"""
Google Drive client - token probe, folder lookup and multipart upload.
"""

import json
import logging
import re
import uuid
from typing import Optional

import httpx

from core.errors import DeliveryError, ItemUploadFailed, Unauthenticated

logger = logging.getLogger(__name__)

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"

FOLDER_ID_PATTERN = re.compile(r"folders/([a-zA-Z0-9-_]+)")


def extract_folder_id(folder_url: str) -> Optional[str]:
    """
    Extract the folder ID from a Drive folder URL.

    E.g., "https://drive.google.com/drive/folders/1AbC-d_E?usp=sharing" -> "1AbC-d_E"
    """
    match = FOLDER_ID_PATTERN.search(folder_url or "")
    return match.group(1) if match else None


def build_multipart_body(
    metadata: dict,
    payload: bytes,
    mime_type: str,
    boundary: str,
) -> bytes:
    """Build a multipart/related body: JSON metadata part, then the file part."""
    head = (
        f"--{boundary}\r\n"
        f"Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + payload + tail


def _json_object(response: httpx.Response) -> dict:
    """Decode a JSON object body; ValueError for anything else (e.g. a proxy's HTML page)."""
    data = response.json()
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


class DriveClient:
    """Bearer-token client for the Drive v3 API."""

    def __init__(
        self,
        token: Optional[str],
        api_url: str = DRIVE_API_URL,
        upload_url: str = DRIVE_UPLOAD_URL,
        timeout: float = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Args:
            token: OAuth access token (None if the user hasn't connected)
            api_url: Base URL of the metadata API
            upload_url: URL of the upload endpoint
            timeout: Request timeout in seconds
            transport: Custom httpx transport (used by tests)
        """
        self.token = (token or "").strip() or None
        self.api_url = api_url.rstrip("/")
        self.upload_url = upload_url
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        self._client = httpx.Client(timeout=timeout, transport=transport, headers=headers)

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def validate_token(self) -> str:
        """
        Confirm the token works.

        Returns:
            The Drive user's display name

        Raises:
            Unauthenticated: If there is no token or Drive rejects it
            DeliveryError: If Drive can't be reached
        """
        if self.token is None:
            raise Unauthenticated("No Google Drive access token provided")

        try:
            response = self._client.get(f"{self.api_url}/about", params={"fields": "user"})
        except httpx.HTTPError as e:
            raise DeliveryError(f"Could not reach Google Drive: {e}") from e

        if response.status_code in (401, 403):
            raise Unauthenticated(f"Google Drive rejected the access token ({response.status_code})")
        if response.is_error:
            raise DeliveryError(f"Google Drive token check failed ({response.status_code})")

        try:
            user = _json_object(response).get("user")
        except ValueError as e:
            raise DeliveryError(f"Unreadable token check response from Google Drive: {e}") from e
        return user.get("displayName", "") if isinstance(user, dict) else ""

    def get_folder_name(self, folder_id: str) -> str:
        """Look up a folder's name, confirming it is accessible."""
        try:
            response = self._client.get(f"{self.api_url}/files/{folder_id}", params={"fields": "name"})
        except httpx.HTTPError as e:
            raise DeliveryError(f"Could not reach Google Drive: {e}") from e

        if response.status_code in (401, 403):
            raise Unauthenticated(f"Access to folder {folder_id} denied ({response.status_code})")
        if response.is_error:
            raise DeliveryError(f"Cannot access folder {folder_id} ({response.status_code})")

        try:
            return _json_object(response).get("name", "")
        except ValueError as e:
            raise DeliveryError(f"Unreadable folder response from Google Drive: {e}") from e

    def upload(self, filename: str, payload: bytes, mime_type: str, folder_id: str) -> str:
        """
        Upload one file into a folder.

        Returns:
            The created file's ID

        Raises:
            ItemUploadFailed: On transport errors or a non-2xx response
        """
        boundary = f"clipmark-{uuid.uuid4().hex}"
        body = build_multipart_body(
            {"name": filename, "parents": [folder_id]},
            payload,
            mime_type,
            boundary,
        )

        try:
            response = self._client.post(
                self.upload_url,
                params={"uploadType": "multipart"},
                content=body,
                headers={"Content-Type": f"multipart/related; boundary={boundary}"},
            )
        except httpx.HTTPError as e:
            raise ItemUploadFailed(filename, str(e)) from e

        if response.is_error:
            raise ItemUploadFailed(
                filename,
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            file_id = _json_object(response).get("id", "")
        except ValueError as e:
            raise ItemUploadFailed(
                filename, f"Unreadable upload response: {e}", status_code=response.status_code
            ) from e
        logger.info(f"Uploaded {filename} to Drive folder {folder_id} (id={file_id})")
        return file_id
