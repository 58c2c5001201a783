"""
Storage module for S3-compatible object storage (Cloudflare R2).

- R2Client: boto3-backed reads, listings and deletes (gateway, collector)
- MemoryObjectStore: in-process stand-in for development and tests
- RequestSigner: SigV4 signing for client-side uploads
"""
from quickdrop.config import Settings
from quickdrop.storage.base import ObjectListing, ObjectStore
from quickdrop.storage.memory import MemoryObjectStore
from quickdrop.storage.r2_client import R2Client
from quickdrop.storage.signer import RequestSigner, SignedRequest


def build_object_store(settings: Settings) -> ObjectStore:
    """
    Build the store selected by configuration.

    Raises:
        ValueError: If R2 is selected but not configured
    """
    if settings.use_memory_store:
        return MemoryObjectStore()
    if not settings.r2_configured:
        raise ValueError(
            "R2 storage not configured. "
            "Set R2_ENDPOINT, R2_ACCESS_KEY, and R2_SECRET_KEY, or USE_MEMORY_STORE=true."
        )
    return R2Client(settings)


__all__ = [
    "build_object_store",
    "ObjectListing",
    "ObjectStore",
    "MemoryObjectStore",
    "R2Client",
    "RequestSigner",
    "SignedRequest",
]
