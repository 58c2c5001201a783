"""
ASGI middleware for tracking HTTP request metrics.
Records request count, duration, and errors.
"""
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from quickdrop.utils.metrics import errors_total, http_request_duration_seconds, http_requests_total

# Top-level single-segment paths are object IDs (or junk that failed validation)
_OBJECT_PATH = re.compile(r"^/[^/]+$")
_STATIC_PATHS = {"/", "/metrics", "/favicon.ico", "/api/health"}
OTHER_PATH_LABEL = "/{other}"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        normalized_path = self._normalize_path(request.url.path)

        try:
            response = await call_next(request)
        except Exception:
            errors_total.labels(error_type="exception").inc()
            raise

        status_code = response.status_code
        http_requests_total.labels(
            method=method,
            path=normalized_path,
            status=status_code
        ).inc()
        http_request_duration_seconds.labels(
            method=method,
            path=normalized_path
        ).observe(time.time() - start_time)

        # Track errors (4xx and 5xx)
        if status_code >= 400:
            errors_total.labels(error_type=f"{status_code // 100}xx").inc()

        return response

    def _normalize_path(self, path: str) -> str:
        """
        Normalize path to reduce cardinality.
        Every object URL collapses to /{id}, whatever its suffix; any
        other path (all public, all caught by the gateway) shares one label.
        """
        if path in _STATIC_PATHS:
            return path
        if _OBJECT_PATH.match(path):
            return "/{id}"
        return OTHER_PATH_LABEL
