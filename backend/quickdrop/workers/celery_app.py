"""
Celery application configuration.
Sets up Celery with Redis broker and the beat schedule for the expiry
collector.
"""
import logging

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging, worker_ready
from prometheus_client import start_http_server

from quickdrop.config import settings
from quickdrop.utils.logging import configure_logging

logger = logging.getLogger(__name__)

WORKER_METRICS_PORT = 9090

celery_app = Celery(
    "quickdrop",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "quickdrop.tasks.cleanup_expired",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.cleanup_lock_ttl_seconds,
    task_soft_time_limit=settings.cleanup_lock_ttl_seconds - 60,
    worker_prefetch_multiplier=1,
    beat_schedule={
        # One scan per day; a failed run waits for the next tick
        "cleanup-expired-objects": {
            "task": "cleanup_expired_objects",
            "schedule": crontab(hour=settings.cleanup_schedule_hour, minute=0),
        },
    },
)


@setup_logging.connect
def setup_logging_handler(**kwargs):
    """Replace Celery's logging setup with structured JSON logging."""
    configure_logging('quickdrop-worker', settings.log_level)


@worker_ready.connect
def worker_ready_handler(**kwargs):
    """Expose worker metrics to Prometheus."""
    try:
        start_http_server(WORKER_METRICS_PORT)
        logger.info(f"Metrics server started on port {WORKER_METRICS_PORT}")
    except OSError as e:
        logger.warning(f"Failed to start metrics server: {e}")
