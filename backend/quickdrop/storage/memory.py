"""
In-process object store.

Stands in for R2 during local development (USE_MEMORY_STORE=true) and in
tests. Listing mirrors the provider's cursor pagination: keys are
returned in lexical order and the cursor is the last key of the page.
"""
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Optional

from quickdrop.core.objects import StoredObject
from quickdrop.storage.base import ObjectListing, ObjectStore


class MemoryObjectStore(ObjectStore):
    """Thread-safe dict-backed store."""

    def __init__(self):
        self._objects: Dict[str, StoredObject] = {}
        self._lock = threading.Lock()

    def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
        uploaded_at: Optional[datetime] = None,
    ) -> StoredObject:
        obj = StoredObject(
            key=key,
            uploaded_at=uploaded_at or datetime.now(timezone.utc),
            content_type=content_type,
            size=len(body),
            metadata=dict(metadata or {}),
            body=bytes(body),
        )
        with self._lock:
            self._objects[key] = obj
        return obj

    def get_object(self, key: str) -> Optional[StoredObject]:
        with self._lock:
            obj = self._objects.get(key)
        return replace(obj) if obj else None

    def head_object(self, key: str) -> Optional[StoredObject]:
        with self._lock:
            obj = self._objects.get(key)
        return replace(obj, body=None) if obj else None

    def list_objects(self, cursor: Optional[str] = None, limit: int = 1000) -> ObjectListing:
        with self._lock:
            keys = sorted(k for k in self._objects if cursor is None or k > cursor)
            page = keys[:limit]
            objects = [replace(self._objects[k], body=None) for k in page]
        next_cursor = page[-1] if len(keys) > limit else None
        return ObjectListing(objects=objects, cursor=next_cursor)

    def delete_object(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)

    def check_health(self) -> bool:
        return True

    def keys(self):
        with self._lock:
            return sorted(self._objects)

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)
