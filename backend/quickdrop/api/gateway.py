"""
Object gateway: serves one identifier as raw bytes, an HTML viewer, or a
password challenge.

Request signals:
- path suffix: none, ``.png`` (plain) or ``.enc`` (encrypted)
- raw requested: any suffix, ``?raw``, or an Accept header asking for
  image/* or application/octet-stream without text/html (browser
  navigations list image types too, so they do not count as raw)
- protected: ``?p``

Lookup order without a suffix: ``.enc`` only when ``?p`` is set,
otherwise ``.png`` first and ``.enc`` as fallback, so a plain object wins
if both keys exist for one ID.

The gateway never sees passwords or plaintext of encrypted objects: the
challenge page fetches ``/{id}.enc`` and decrypts in the browser.
"""
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from quickdrop.api.dependencies import get_object_store
from quickdrop.config import Settings, get_settings
from quickdrop.core import crypto
from quickdrop.core.identifiers import is_valid_id
from quickdrop.core.objects import (
    ENCRYPTED_CONTENT_TYPE,
    ENCRYPTED_SUFFIX,
    PLAIN_SUFFIX,
    StoredObject,
    object_key,
)
from quickdrop.exceptions import UpstreamError
from quickdrop.storage import ObjectStore
from quickdrop.utils.logging import log_object_served, log_storage_failure
from quickdrop.utils.metrics import objects_served_total, storage_failures_total

logger = logging.getLogger(__name__)

router = APIRouter(tags=["gateway"])

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATE_DIR))

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, PUT, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, X-Amz-Date, X-Amz-Content-SHA256, Authorization",
    "Access-Control-Max-Age": "86400",
}

NOT_FOUND_MESSAGE = "This image has expired or does not exist"


def split_path(path: str) -> Tuple[str, Optional[str]]:
    """Split ``abc123.enc`` into ("abc123", ".enc"); unknown suffixes stay in the ID."""
    for suffix in (PLAIN_SUFFIX, ENCRYPTED_SUFFIX):
        if path.endswith(suffix):
            return path[: -len(suffix)], suffix
    return path, None


def wants_raw(request: Request, suffix: Optional[str]) -> bool:
    if suffix is not None or "raw" in request.query_params:
        return True
    accept = request.headers.get("accept", "").lower()
    if "text/html" in accept:
        return False
    return "image/" in accept or "application/octet-stream" in accept


def error_page(request: Request, status_code: int, message: str) -> Response:
    return templates.TemplateResponse(
        request,
        "error.html",
        {"status_code": status_code, "message": message},
        status_code=status_code,
    )


def humanize_remaining(remaining: timedelta) -> str:
    seconds = int(remaining.total_seconds())
    if seconds >= 2 * 86400:
        return f"{seconds // 86400} days"
    if seconds >= 2 * 3600:
        return f"{seconds // 3600} hours"
    if seconds >= 120:
        return f"{seconds // 60} minutes"
    return "less than 2 minutes"


async def _lookup(
    store: ObjectStore,
    object_id: str,
    suffix: Optional[str],
    protected: bool,
) -> Optional[StoredObject]:
    """Resolve the key and read its metadata only; bodies are fetched for raw responses."""
    if suffix is not None:
        return await run_in_threadpool(store.head_object, object_id + suffix)
    if protected:
        return await run_in_threadpool(store.head_object, object_key(object_id, encrypted=True))

    obj = await run_in_threadpool(store.head_object, object_key(object_id, encrypted=False))
    if obj is None:
        obj = await run_in_threadpool(store.head_object, object_key(object_id, encrypted=True))
    return obj


def _storage_failure_page(request: Request, operation: str, path: str, error: UpstreamError) -> Response:
    storage_failures_total.labels(operation=operation).inc()
    log_storage_failure(
        logger,
        operation=operation,
        error=str(error),
        key=path,
        status_code=error.status_code,
        provider_body=error.body
    )
    return error_page(request, 500, "An error occurred while loading the image")


def _raw_response(obj: StoredObject, max_age: int) -> Response:
    headers = {
        "Cache-Control": f"public, max-age={max_age}",
        "Access-Control-Allow-Origin": "*",
    }
    if obj.encrypted:
        headers["Content-Disposition"] = f'attachment; filename="{obj.id}{ENCRYPTED_SUFFIX}"'
        media_type = ENCRYPTED_CONTENT_TYPE
    else:
        if obj.filename:
            headers["Content-Disposition"] = f"inline; filename*=UTF-8''{quote(obj.filename, safe='')}"
        media_type = obj.content_type

    return Response(content=obj.body, media_type=media_type, headers=headers)


@router.options("/{path:path}")
async def preflight(path: str):
    """Answer OPTIONS permissively for the verbs the uploading client uses."""
    return Response(status_code=204, headers=CORS_HEADERS)


@router.api_route("/", methods=["GET", "HEAD"])
async def landing(request: Request):
    response = templates.TemplateResponse(request, "landing.html", {})
    response.headers["Cache-Control"] = "public, max-age=3600"
    return response


# HEAD for link-preview crawlers
@router.api_route("/{path:path}", methods=["GET", "HEAD"])
async def serve_object(
    path: str,
    request: Request,
    store: ObjectStore = Depends(get_object_store),
    settings: Settings = Depends(get_settings),
):
    """
    Serve an object by ID.

    Responses:
        400 malformed ID (checked before any lookup)
        404 missing or expired, never distinguished
        500 object store failure
        200 raw bytes, viewer page or password challenge
    """
    object_id, suffix = split_path(path)
    if not is_valid_id(object_id):
        return error_page(request, 400, "Invalid image ID")

    raw = wants_raw(request, suffix)
    protected = "p" in request.query_params

    try:
        obj = await _lookup(store, object_id, suffix, protected)
    except UpstreamError as e:
        return _storage_failure_page(request, "head", path, e)

    now = datetime.now(timezone.utc)
    default_ttl = timedelta(hours=settings.default_ttl_hours)

    # Expired but not yet collected looks exactly like never existed
    if obj is None or obj.is_expired(now, default_ttl):
        return error_page(request, 404, NOT_FOUND_MESSAGE)

    remaining = obj.effective_expiry(default_ttl) - now

    if obj.encrypted and not raw:
        objects_served_total.labels(representation="challenge").inc()
        log_object_served(logger, object_id=object_id, representation="challenge", key=obj.key)
        response = templates.TemplateResponse(
            request,
            "protected.html",
            {
                "object_id": object_id,
                "encrypted_url": f"/{object_key(object_id, encrypted=True)}",
                "salt_length": crypto.SALT_LENGTH,
                "iv_length": crypto.IV_LENGTH,
                "iterations": crypto.PBKDF2_ITERATIONS,
                "expires_in": humanize_remaining(remaining),
            },
        )
        response.headers["Cache-Control"] = "no-cache"
        return response

    if raw:
        try:
            obj = await run_in_threadpool(store.get_object, obj.key)
        except UpstreamError as e:
            return _storage_failure_page(request, "get", path, e)
        # Collected between the metadata read and the body fetch
        if obj is None:
            return error_page(request, 404, NOT_FOUND_MESSAGE)

        representation = "encrypted" if obj.encrypted else "raw"
        objects_served_total.labels(representation=representation).inc()
        log_object_served(logger, object_id=object_id, representation=representation, key=obj.key)
        max_age = max(0, min(settings.raw_cache_max_age_seconds, int(remaining.total_seconds())))
        return _raw_response(obj, max_age)

    objects_served_total.labels(representation="viewer").inc()
    log_object_served(logger, object_id=object_id, representation="viewer", key=obj.key)
    base_url = str(request.base_url).rstrip("/")
    response = templates.TemplateResponse(
        request,
        "viewer.html",
        {
            "object_id": object_id,
            "image_url": f"{base_url}/{obj.key}",
            "filename": obj.filename or f"{object_id}{PLAIN_SUFFIX}",
            "title": obj.title,
            "description": obj.description,
            "size_kb": round(obj.size / 1024, 1),
            "expires_in": humanize_remaining(remaining),
        },
    )
    response.headers["Cache-Control"] = "no-cache"
    return response
