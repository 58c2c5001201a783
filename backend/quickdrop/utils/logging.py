"""
Production logging utility for structured JSON logging.

Provides event-specific logging functions with mandatory fields:
- timestamp (ISO8601)
- level
- service
- event

Optional fields (included when applicable):
- object_id
- key
- duration_ms

Usage:
    from quickdrop.utils.logging import configure_logging, log_upload_completed

    configure_logging('quickdrop-api', 'INFO')
    log_upload_completed(logger, object_id='abc123', key='abc123.png', size=1024)
"""
import logging
import sys
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger


class StructuredLogger:
    """Structured JSON logger with mandatory fields."""

    _service_name = None
    _configured = False

    @classmethod
    def configure(cls, service_name: str, log_level: str = "INFO", stream=None):
        """
        Configure structured JSON logging for the application.

        Args:
            service_name: Service identifier (quickdrop-api, quickdrop-worker, quickdrop-cli)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
            stream: Output stream, stdout by default (the CLI logs to stderr)
        """
        if cls._configured:
            return  # Already configured

        cls._service_name = service_name

        # Remove default handlers
        root_logger = logging.getLogger()
        root_logger.handlers = []

        formatter = jsonlogger.JsonFormatter(
            '%(timestamp)s %(levelname)s %(name)s %(message)s',
            timestamp=True,
            json_ensure_ascii=False
        )

        # Console handler (for docker logs)
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(formatter)

        root_logger.addHandler(handler)
        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        # Add service name to all log records via filter
        class ServiceFilter(logging.Filter):
            def filter(self, record):
                record.service = cls._service_name
                return True

        handler.addFilter(ServiceFilter())
        cls._configured = True


def _build_log_extra(
    event: str,
    object_id: Optional[str] = None,
    key: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> Dict[str, Any]:
    """Build extra fields for structured logging."""
    extra = {
        "event": event,
        **kwargs
    }

    if object_id:
        extra["object_id"] = object_id
    if key:
        extra["key"] = key
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)

    return extra


# Upload events

def log_upload_completed(
    logger: logging.Logger,
    object_id: str,
    key: str,
    size: int,
    encrypted: bool = False,
    duration_ms: Optional[float] = None,
    **kwargs
):
    extra = _build_log_extra(
        event="upload_completed",
        object_id=object_id,
        key=key,
        duration_ms=duration_ms,
        size=size,
        encrypted=encrypted,
        **kwargs
    )
    logger.info(f"Uploaded {size} bytes. ID: {object_id}", extra=extra)


def log_upload_failed(
    logger: logging.Logger,
    object_id: str,
    error: str,
    status_code: Optional[int] = None,
    duration_ms: Optional[float] = None,
    **kwargs
):
    extra = _build_log_extra(
        event="upload_failed",
        object_id=object_id,
        duration_ms=duration_ms,
        error=str(error),
        **kwargs
    )
    if status_code is not None:
        extra["status_code"] = status_code

    logger.error(f"Upload failed: {object_id} - {error}", extra=extra)


# Gateway events

def log_object_served(
    logger: logging.Logger,
    object_id: str,
    representation: str,
    key: Optional[str] = None,
    **kwargs
):
    """
    Log a successful gateway response.

    Args:
        logger: Logger instance
        object_id: Requested identifier
        representation: raw, encrypted, viewer or challenge
        key: Storage key that satisfied the request
    """
    extra = _build_log_extra(
        event="object_served",
        object_id=object_id,
        key=key,
        representation=representation,
        **kwargs
    )
    logger.debug(f"Served {object_id} as {representation}", extra=extra)


def log_storage_failure(
    logger: logging.Logger,
    operation: str,
    error: str,
    key: Optional[str] = None,
    status_code: Optional[int] = None,
    include_traceback: bool = False,
    **kwargs
):
    """
    Log an object store failure with the provider status and body.

    Stack traces are optional; the provider message is usually enough.
    """
    extra = _build_log_extra(
        event="storage_failure",
        key=key,
        operation=operation,
        error=str(error),
        **kwargs
    )
    if status_code is not None:
        extra["status_code"] = status_code

    message = f"Storage failure: {operation} - {error}"
    if include_traceback and sys.exc_info()[0] is not None:
        logger.error(message, extra=extra, exc_info=sys.exc_info())
    else:
        logger.error(message, extra=extra)


# Cleanup events

def log_cleanup_started(logger: logging.Logger, dry_run: bool = False, **kwargs):
    extra = _build_log_extra(event="cleanup_started", dry_run=dry_run, **kwargs)
    logger.info("[Cleanup] Starting cleanup job", extra=extra)


def log_cleanup_completed(
    logger: logging.Logger,
    scanned: int,
    deleted: int,
    failed: int,
    duration_ms: float,
    **kwargs
):
    extra = _build_log_extra(
        event="cleanup_completed",
        duration_ms=duration_ms,
        scanned=scanned,
        deleted=deleted,
        failed=failed,
        **kwargs
    )
    logger.info(
        f"[Cleanup] Cleanup complete in {duration_ms:.0f}ms. "
        f"Scanned: {scanned}, Deleted: {deleted}, Failed: {failed}",
        extra=extra
    )


def log_cleanup_failed(
    logger: logging.Logger,
    scanned: int,
    deleted: int,
    error: str,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """
    Log a cleanup run that aborted. Always includes the stack trace when
    called from an except block, since the run is about to be re-raised.
    """
    extra = _build_log_extra(
        event="cleanup_failed",
        duration_ms=duration_ms,
        scanned=scanned,
        deleted=deleted,
        error=str(error),
        **kwargs
    )
    message = f"[Cleanup] Cleanup job failed. Scanned: {scanned}, Deleted: {deleted} - {error}"

    exc_info = sys.exc_info()
    if exc_info[0] is not None:
        logger.error(message, extra=extra, exc_info=exc_info)
    else:
        logger.error(message, extra=extra)


def configure_logging(service_name: str, log_level: str = "INFO", stream=None):
    """Configure logging (alias for StructuredLogger.configure)."""
    StructuredLogger.configure(service_name, log_level, stream=stream)
