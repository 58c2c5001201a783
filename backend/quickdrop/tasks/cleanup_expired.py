"""
Scheduled task that purges expired objects from the bucket.

Runs once per beat tick. A Redis lock keeps runs from overlapping:
concurrent scans would double-delete harmlessly but double-count and
waste listing calls. Failures are re-raised so the scheduler's
monitoring sees them; there is no autoretry, the next tick tries again.
"""
import logging

import redis
from redis.exceptions import LockError

from quickdrop.config import settings
from quickdrop.services.cleanup import CleanupAborted, CleanupResult, ExpiryCollector
from quickdrop.storage import ObjectStore, build_object_store
from quickdrop.utils.metrics import (
    cleanup_delete_failures_total,
    cleanup_duration_seconds,
    cleanup_objects_deleted_total,
    cleanup_objects_scanned_total,
    cleanup_runs_total,
)
from quickdrop.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

CLEANUP_LOCK_NAME = "quickdrop:cleanup-lock"


def get_redis() -> redis.Redis:
    return redis.Redis.from_url(settings.redis_url)


def get_object_store() -> ObjectStore:
    return build_object_store(settings)


def record_cleanup_metrics(result: CleanupResult, status: str):
    cleanup_runs_total.labels(status=status).inc()
    cleanup_duration_seconds.labels(status=status).observe(result.duration_ms / 1000)
    cleanup_objects_scanned_total.inc(result.scanned)
    if not result.dry_run:
        cleanup_objects_deleted_total.inc(result.deleted)
        cleanup_delete_failures_total.inc(result.failed)


@celery_app.task(name="cleanup_expired_objects", bind=True)
def cleanup_expired_objects_task(self, dry_run: bool = False) -> dict:
    """
    Scan the bucket and delete expired objects.

    Args:
        dry_run: Count expired objects without deleting them

    Returns:
        Dict with status and scanned/deleted/failed counts
    """
    lock = get_redis().lock(
        CLEANUP_LOCK_NAME,
        timeout=settings.cleanup_lock_ttl_seconds,
        blocking=False
    )
    if not lock.acquire(blocking=False):
        logger.warning("[Cleanup] Another run holds the cleanup lock, skipping this tick")
        cleanup_runs_total.labels(status="skipped").inc()
        return {"status": "skipped"}

    try:
        collector = ExpiryCollector.from_settings(get_object_store(), settings)
        try:
            result = collector.run(dry_run=dry_run)
        except CleanupAborted as e:
            record_cleanup_metrics(e.result, "failed")
            raise
        record_cleanup_metrics(result, "completed")
    finally:
        try:
            lock.release()
        except LockError:
            # Lock expired mid-run; another worker may already own it
            logger.warning("[Cleanup] Cleanup lock expired before release")

    return {
        "status": "completed",
        "scanned": result.scanned,
        "deleted": result.deleted,
        "failed": result.failed,
        "dry_run": result.dry_run,
        "duration_ms": round(result.duration_ms, 2),
    }
