"""
Prometheus metrics definitions for the gateway and the cleanup worker.
All metrics are registered here and can be imported by other modules.
"""
from prometheus_client import Counter, Histogram

# HTTP request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

errors_total = Counter(
    'errors_total',
    'Total errors',
    ['error_type']
)

# Gateway
objects_served_total = Counter(
    'objects_served_total',
    'Objects served by the gateway',
    ['representation']  # raw, encrypted, viewer, challenge
)

storage_failures_total = Counter(
    'storage_failures_total',
    'Object store calls that failed',
    ['operation']
)

# Uploads
uploads_total = Counter(
    'uploads_total',
    'Upload attempts',
    ['mode', 'status']  # mode: plain/encrypted, status: success/failed
)

upload_bytes_total = Counter(
    'upload_bytes_total',
    'Bytes uploaded to the object store'
)

# Garbage collector
cleanup_runs_total = Counter(
    'cleanup_runs_total',
    'Expiry collector runs',
    ['status']  # completed, failed, skipped
)

cleanup_objects_scanned_total = Counter(
    'cleanup_objects_scanned_total',
    'Objects scanned by the expiry collector'
)

cleanup_objects_deleted_total = Counter(
    'cleanup_objects_deleted_total',
    'Expired objects deleted by the expiry collector'
)

cleanup_delete_failures_total = Counter(
    'cleanup_delete_failures_total',
    'Expired objects the collector failed to delete'
)

cleanup_duration_seconds = Histogram(
    'cleanup_duration_seconds',
    'Expiry collector run duration in seconds',
    ['status'],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0]
)
