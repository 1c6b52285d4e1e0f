"""
Delivery module - local and Google Drive sinks for exported clips
"""

from delivery.drive import DriveClient, extract_folder_id
from delivery.upload import (
    UploadStage, LocalSink, RemoteSink, DeliveryReport, DeliveryOutcome,
)

__all__ = [
    "DriveClient", "extract_folder_id",
    "UploadStage", "LocalSink", "RemoteSink", "DeliveryReport", "DeliveryOutcome",
]
