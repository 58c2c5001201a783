"""
Expiry garbage collector.

Full linear scan of the bucket, one page at a time, deleting every object
whose expiry has passed. Expiry is the object's ``expires-at`` metadata
when present, else its upload time plus the default TTL.

Cost per run is ceil(n / page_size) LIST calls plus n HEAD calls (the S3
listing carries no custom metadata). Retention is bounded by the same TTL
this enforces, so n stays bounded; a bucket that outgrows one daily scan
at provider listing throughput needs an index, which this does not keep.

Failure model:
- A failed delete is counted and logged; scanning continues. Keys whose
  metadata read fails are counted the same way (ObjectListing.failed).
- Anything else (listing failure, unexpected error) aborts the run with
  partial progress kept and re-raises for the scheduler to report.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from quickdrop.config import Settings
from quickdrop.exceptions import UpstreamError
from quickdrop.storage.base import ObjectStore
from quickdrop.utils.logging import (
    log_cleanup_completed,
    log_cleanup_failed,
    log_cleanup_started,
    log_storage_failure,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000


@dataclass
class CleanupResult:
    scanned: int = 0
    deleted: int = 0
    failed: int = 0
    pages: int = 0
    duration_ms: float = 0.0
    dry_run: bool = False


class CleanupAborted(Exception):
    """
    Raised when a run stops early. Carries the partial counts; the
    original error is chained as __cause__.
    """

    def __init__(self, result: CleanupResult, error: Exception):
        super().__init__(f"Cleanup aborted after scanning {result.scanned} objects: {error}")
        self.result = result


class ExpiryCollector:
    """
    Deletes expired objects from an ObjectStore.

    Args:
        store: Object store to scan
        default_ttl: TTL applied when an object has no expires-at metadata
        page_size: Objects requested per listing call
    """

    def __init__(self, store: ObjectStore, default_ttl: timedelta, page_size: int = DEFAULT_PAGE_SIZE):
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.store = store
        self.default_ttl = default_ttl
        self.page_size = page_size

    @classmethod
    def from_settings(cls, store: ObjectStore, settings: Settings) -> "ExpiryCollector":
        return cls(
            store,
            default_ttl=timedelta(hours=settings.default_ttl_hours),
            page_size=settings.cleanup_page_size,
        )

    def run(self, now: Optional[datetime] = None, dry_run: bool = False) -> CleanupResult:
        """
        Run one collection pass.

        Args:
            now: Reference time for expiry decisions (defaults to UTC now)
            dry_run: Count what would be deleted without deleting

        Returns:
            CleanupResult with scanned/deleted/failed counts

        Raises:
            CleanupAborted: The run stopped early; partial counts attached
        """
        now = now or datetime.now(timezone.utc)
        result = CleanupResult(dry_run=dry_run)
        start_time = time.time()
        cursor = None

        log_cleanup_started(logger, dry_run=dry_run, page_size=self.page_size)

        try:
            while True:
                listing = self.store.list_objects(cursor=cursor, limit=self.page_size)
                result.pages += 1
                result.scanned += len(listing.objects) + listing.failed
                result.failed += listing.failed

                expired = [obj for obj in listing.objects if obj.is_expired(now, self.default_ttl)]
                self._delete_all(expired, result, dry_run)

                cursor = listing.cursor
                if not cursor:
                    break
        except Exception as e:
            result.duration_ms = (time.time() - start_time) * 1000
            log_cleanup_failed(
                logger,
                scanned=result.scanned,
                deleted=result.deleted,
                error=str(e),
                duration_ms=result.duration_ms
            )
            raise CleanupAborted(result, e) from e

        result.duration_ms = (time.time() - start_time) * 1000
        log_cleanup_completed(
            logger,
            scanned=result.scanned,
            deleted=result.deleted,
            failed=result.failed,
            duration_ms=result.duration_ms,
            dry_run=dry_run
        )
        return result

    def _delete_all(self, expired: List, result: CleanupResult, dry_run: bool):
        for obj in expired:
            if dry_run:
                logger.info(f"[Cleanup] Would delete expired object: {obj.key}")
                result.deleted += 1
                continue

            try:
                self.store.delete_object(obj.key)
            except UpstreamError as e:
                result.failed += 1
                log_storage_failure(
                    logger,
                    operation="delete",
                    error=str(e),
                    key=obj.key,
                    status_code=e.status_code
                )
                continue

            result.deleted += 1
            logger.info(
                f"[Cleanup] Deleted expired object: {obj.key} "
                f"(uploaded: {obj.uploaded_at.isoformat()})"
            )
