"""
Service layer for business logic.
"""
from quickdrop.services.uploader import Uploader, UploadResult, UploadEvent, UploadEventType
from quickdrop.services.cleanup import CleanupAborted, CleanupResult, ExpiryCollector

__all__ = [
    "Uploader",
    "UploadResult",
    "UploadEvent",
    "UploadEventType",
    "ExpiryCollector",
    "CleanupResult",
    "CleanupAborted",
]
