"""
Client-side uploader: encrypt (optional) -> sign -> PUT to R2.

Flow:
1. Validate payload and expiry
2. Draw a short ID (optionally checking it is free with a signed HEAD)
3. Encrypt with the password, if any, and pick the key suffix
4. Sign the PUT with SigV4 and send it with a bounded timeout
5. Return the share link

No retries happen here. A failed upload raises with the provider's
status code and body so the caller can decide whether to try again.

Progress is published as UploadEvent objects on an optional bounded
queue instead of callbacks, so a UI can consume it from its own thread.
"""
import logging
import queue
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from urllib.parse import urlsplit

import httpx

from quickdrop.config import Settings
from quickdrop.core import crypto
from quickdrop.core.identifiers import generate_id
from quickdrop.core.objects import (
    DEFAULT_CONTENT_TYPE,
    ENCRYPTED_CONTENT_TYPE,
    MAX_METADATA_BYTES,
    build_metadata,
    metadata_size,
    object_key,
)
from quickdrop.exceptions import SignatureRejectedError, UpstreamError, ValidationError
from quickdrop.storage.signer import RequestSigner
from quickdrop.utils.logging import log_upload_completed, log_upload_failed
from quickdrop.utils.metrics import upload_bytes_total, uploads_total

logger = logging.getLogger(__name__)


class UploadEventType(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class UploadEvent:
    """Progress notification for whatever sits above the uploader."""
    type: UploadEventType
    object_id: str
    uploaded: int
    total: int
    link: Optional[str] = None
    error: Optional[str] = None

    @property
    def percentage(self) -> int:
        if not self.total:
            return 0
        return int(self.uploaded * 100 / self.total)


@dataclass
class UploadResult:
    id: str
    key: str
    link: str
    size: int
    encrypted: bool
    uploaded_at: datetime
    expires_at: datetime


class Uploader:
    """
    Uploads payloads straight to the bucket with client-held credentials.

    Args:
        endpoint: Store endpoint, e.g. https://<account>.r2.cloudflarestorage.com
        bucket: Bucket name
        access_key_id: R2 access key ID
        secret_access_key: R2 secret access key
        public_base_url: Gateway base URL used to build links
        region: Signing region ("auto" for R2)
        default_ttl_hours: Expiry used when the caller gives none
        max_expiry_hours: Upper bound accepted for expiry_hours
        timeout: Per-request timeout in seconds
        check_collisions: HEAD the key before writing and redraw if taken
        max_id_attempts: Redraws allowed when check_collisions is on
        http_client: httpx.Client to use (tests pass one with a MockTransport)
        events: Bounded queue receiving UploadEvent objects
    """

    def __init__(
        self,
        endpoint: str,
        bucket: str,
        access_key_id: str,
        secret_access_key: str,
        public_base_url: str,
        region: str = "auto",
        default_ttl_hours: int = 24,
        max_expiry_hours: int = 8760,
        timeout: float = 30.0,
        check_collisions: bool = False,
        max_id_attempts: int = 5,
        http_client: Optional[httpx.Client] = None,
        events: Optional[queue.Queue] = None,
    ):
        parts = urlsplit(endpoint)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"Invalid storage endpoint: {endpoint!r}")

        self.endpoint = f"{parts.scheme}://{parts.netloc}"
        self.host = parts.netloc
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.default_ttl_hours = default_ttl_hours
        self.max_expiry_hours = max_expiry_hours
        self.timeout = timeout
        self.check_collisions = check_collisions
        self.max_id_attempts = max_id_attempts
        self.events = events

        self._signer = RequestSigner(access_key_id, secret_access_key, region=region, service="s3")
        self._client = http_client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "Uploader":
        """
        Build an uploader from application settings.

        Raises:
            ValueError: If R2 endpoint or credentials are missing
        """
        if not settings.r2_configured:
            raise ValueError(
                "R2 storage not configured. "
                "Set R2_ENDPOINT, R2_ACCESS_KEY, and R2_SECRET_KEY."
            )
        kwargs.setdefault("check_collisions", settings.check_id_collisions)
        return cls(
            endpoint=settings.r2_endpoint,
            bucket=settings.r2_bucket,
            access_key_id=settings.r2_access_key,
            secret_access_key=settings.r2_secret_key,
            public_base_url=settings.public_base_url,
            region=settings.r2_region,
            default_ttl_hours=settings.default_ttl_hours,
            max_expiry_hours=settings.max_expiry_hours,
            timeout=settings.upload_timeout_seconds,
            **kwargs
        )

    def close(self):
        self._client.close()

    def link_for(self, object_id: str) -> str:
        return f"{self.public_base_url}/{object_id}"

    def upload(
        self,
        payload: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
        filename: Optional[str] = None,
        password: Optional[str] = None,
        expiry_hours: Optional[float] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UploadResult:
        """
        Upload a payload and return its share link.

        Args:
            payload: Raw bytes (plaintext; encrypted here when password is set)
            content_type: Real MIME type, only stored for plain uploads
            filename: Original filename, kept as metadata
            password: Encrypt client-side with this password
            expiry_hours: Hours until expiry, defaults to default_ttl_hours
            title: Caption shown on the viewer page
            description: Text shown under the image (OCR text, notes)
            now: Upload time (defaults to the current UTC time)

        Returns:
            UploadResult with the ID, key and link

        Raises:
            ValidationError: Empty payload or expiry out of range
            SignatureRejectedError: Provider answered 401/403
            UpstreamError: Any other provider or transport failure
        """
        if not payload:
            raise ValidationError("Payload must not be empty")

        hours = self.default_ttl_hours if expiry_hours is None else expiry_hours
        if not 0 < hours <= self.max_expiry_hours:
            raise ValidationError(f"expiry_hours must be in (0, {self.max_expiry_hours}]")

        now = now or datetime.now(timezone.utc)
        expires_at = now + timedelta(hours=hours)
        encrypted = bool(password)
        mode = "encrypted" if encrypted else "plain"

        object_id = self._allocate_id(now)
        key = object_key(object_id, encrypted)

        metadata = build_metadata(
            now, expires_at, filename or f"{object_id}.png", title=title, description=description
        )
        if metadata_size(metadata) > MAX_METADATA_BYTES:
            raise ValidationError(f"Metadata exceeds {MAX_METADATA_BYTES} bytes")

        if encrypted:
            body = crypto.encrypt(payload, password)
            stored_type = ENCRYPTED_CONTENT_TYPE
        else:
            body = payload
            stored_type = content_type

        signed = self._signer.sign_put(
            self.host, self.bucket, key, body, stored_type, metadata=metadata, timestamp=now
        )

        self._publish(UploadEvent(UploadEventType.STARTED, object_id, 0, len(body)))
        start_time = time.time()

        try:
            response = self._client.put(
                f"{self.endpoint}{signed.path}",
                content=body,
                headers=signed.headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            self._fail(object_id, len(body), mode, start_time, f"Upload timed out: {e}")
            raise UpstreamError("Upload timed out", status_code=None, body=str(e)) from e
        except httpx.HTTPError as e:
            self._fail(object_id, len(body), mode, start_time, f"Upload failed: {e}")
            raise UpstreamError("Upload failed", status_code=None, body=str(e)) from e

        if not response.is_success:
            error_text = response.text
            self._fail(
                object_id, len(body), mode, start_time,
                f"{response.status_code} - {error_text}", status_code=response.status_code
            )
            message = f"Upload failed: {response.status_code} - {error_text}"
            if response.status_code in (401, 403):
                raise SignatureRejectedError(message, status_code=response.status_code, body=error_text)
            raise UpstreamError(message, status_code=response.status_code, body=error_text)

        duration = time.time() - start_time
        link = self.link_for(object_id)

        uploads_total.labels(mode=mode, status="success").inc()
        upload_bytes_total.inc(len(body))
        log_upload_completed(
            logger,
            object_id=object_id,
            key=key,
            size=len(body),
            encrypted=encrypted,
            duration_ms=duration * 1000
        )
        self._publish(UploadEvent(UploadEventType.COMPLETED, object_id, len(body), len(body), link=link))

        return UploadResult(
            id=object_id,
            key=key,
            link=link,
            size=len(body),
            encrypted=encrypted,
            uploaded_at=now,
            expires_at=expires_at,
        )

    def _allocate_id(self, now: datetime) -> str:
        """
        Draw an ID. With check_collisions off this is a single draw and a
        collision silently overwrites the older object.
        """
        if not self.check_collisions:
            return generate_id()

        for _ in range(self.max_id_attempts):
            candidate = generate_id()
            # Either suffix makes the ID ambiguous at the gateway
            if not any(self._key_exists(object_key(candidate, enc), now) for enc in (False, True)):
                return candidate
            logger.info(f"ID collision on {candidate}, drawing another")

        raise UpstreamError(f"Could not allocate a free ID after {self.max_id_attempts} attempts")

    def _key_exists(self, key: str, now: datetime) -> bool:
        signed = self._signer.sign("HEAD", self.host, f"/{self.bucket}/{key}", timestamp=now)
        try:
            response = self._client.head(
                f"{self.endpoint}{signed.path}", headers=signed.headers, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            raise UpstreamError("Collision check failed", status_code=None, body=str(e)) from e

        if response.status_code == 404:
            return False
        if response.is_success:
            return True
        if response.status_code in (401, 403):
            raise SignatureRejectedError(
                f"Collision check rejected: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        raise UpstreamError(
            f"Collision check failed: {response.status_code}",
            status_code=response.status_code,
            body=response.text,
        )

    def _fail(self, object_id, total, mode, start_time, error, status_code=None):
        uploads_total.labels(mode=mode, status="failed").inc()
        log_upload_failed(
            logger,
            object_id=object_id,
            error=error,
            status_code=status_code,
            duration_ms=(time.time() - start_time) * 1000
        )
        self._publish(UploadEvent(UploadEventType.FAILED, object_id, 0, total, error=error))

    def _publish(self, event: UploadEvent):
        if self.events is None:
            return
        try:
            self.events.put_nowait(event)
        except queue.Full:
            logger.debug(f"Upload event queue full, dropping {event.type.value} for {event.object_id}")
