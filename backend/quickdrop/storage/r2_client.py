"""
Cloudflare R2 / S3-compatible storage client.

Uses boto3 with the S3-compatible API. Serves the read side of the
system: the gateway fetches objects through it and the garbage collector
lists and deletes through it. Uploads do not go through boto3; clients
sign their own PUTs (see quickdrop.storage.signer).

Listing note: ListObjectsV2 does not return custom metadata, so every
listed key costs one HeadObject to read its expiry.
"""
import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from quickdrop.config import Settings
from quickdrop.core.objects import StoredObject
from quickdrop.exceptions import UpstreamError
from quickdrop.storage.base import ObjectListing, ObjectStore
from quickdrop.utils.logging import log_storage_failure
from quickdrop.utils.metrics import storage_failures_total

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_missing(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _MISSING_CODES


def _upstream(operation: str, key: str, error: Exception) -> UpstreamError:
    """Convert a boto error to UpstreamError, keeping status code and body."""
    status_code = None
    body = str(error)
    if isinstance(error, ClientError):
        status_code = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        body = error.response.get("Error", {}).get("Message", body)
    logger.error(f"R2 {operation} failed for {key}: {error}")
    return UpstreamError(f"Storage {operation} failed", status_code=status_code, body=body)


class R2Client(ObjectStore):
    """
    S3-compatible client for Cloudflare R2.

    Args:
        settings: Endpoint, bucket, credentials and timeouts
        client: Pre-built boto3 S3 client (tests inject a mock here)
    """

    def __init__(self, settings: Settings, client=None):
        self._bucket = settings.r2_bucket

        if client is not None:
            self._client = client
            return

        # Bounded timeouts, no automatic retries: a failed call surfaces to the caller
        self._client = boto3.client(
            's3',
            endpoint_url=settings.r2_endpoint,
            aws_access_key_id=settings.r2_access_key,
            aws_secret_access_key=settings.r2_secret_key,
            region_name=settings.r2_region,
            config=Config(
                signature_version='s3v4',
                s3={'addressing_style': 'path'},  # R2 uses path-style
                connect_timeout=settings.storage_timeout_seconds,
                read_timeout=settings.storage_timeout_seconds,
                retries={'max_attempts': 1, 'mode': 'standard'},
            )
        )
        logger.info(f"R2 client initialized for bucket: {self._bucket}")

    @property
    def bucket(self) -> str:
        return self._bucket

    def get_object(self, key: str) -> Optional[StoredObject]:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            body = response["Body"].read()
        except ClientError as e:
            if _is_missing(e):
                return None
            raise _upstream("get", key, e) from e
        except BotoCoreError as e:
            raise _upstream("get", key, e) from e

        return StoredObject(
            key=key,
            uploaded_at=response["LastModified"],
            content_type=response.get("ContentType") or "application/octet-stream",
            size=response.get("ContentLength", len(body)),
            metadata=dict(response.get("Metadata") or {}),
            body=body,
        )

    def head_object(self, key: str) -> Optional[StoredObject]:
        try:
            response = self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                return None
            raise _upstream("head", key, e) from e
        except BotoCoreError as e:
            raise _upstream("head", key, e) from e

        return StoredObject(
            key=key,
            uploaded_at=response["LastModified"],
            content_type=response.get("ContentType") or "application/octet-stream",
            size=response.get("ContentLength", 0),
            metadata=dict(response.get("Metadata") or {}),
        )

    def list_objects(self, cursor: Optional[str] = None, limit: int = 1000) -> ObjectListing:
        """
        List one page with ListObjectsV2, then HEAD each key for metadata.

        Keys that vanish between LIST and HEAD (deleted concurrently) are
        skipped. A HEAD that fails is counted in ObjectListing.failed and
        skipped too, so one unreadable key cannot stall every run.
        """
        kwargs = {'Bucket': self._bucket, 'MaxKeys': limit}
        if cursor:
            kwargs['ContinuationToken'] = cursor

        try:
            response = self._client.list_objects_v2(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise _upstream("list", self._bucket, e) from e

        objects = []
        failed = 0
        for entry in response.get('Contents', []):
            try:
                obj = self.head_object(entry['Key'])
            except UpstreamError as e:
                failed += 1
                storage_failures_total.labels(operation="head").inc()
                log_storage_failure(
                    logger,
                    operation="head",
                    error=str(e),
                    key=entry['Key'],
                    status_code=e.status_code
                )
                continue
            if obj is None:
                continue
            objects.append(obj)

        next_cursor = response.get('NextContinuationToken') if response.get('IsTruncated') else None
        return ObjectListing(objects=objects, cursor=next_cursor, failed=failed)

    def delete_object(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
            logger.debug(f"Deleted object {key} from R2")
        except ClientError as e:
            # If object doesn't exist, consider it a success (idempotent)
            if _is_missing(e):
                logger.debug(f"Object {key} not found in R2 (already deleted)")
                return
            raise _upstream("delete", key, e) from e
        except BotoCoreError as e:
            raise _upstream("delete", key, e) from e

    def check_health(self) -> bool:
        try:
            self._client.head_bucket(Bucket=self._bucket)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"R2 health check failed: {e}")
            return False
