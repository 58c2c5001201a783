"""
StoredObject model and the key/metadata conventions shared by the
uploader, the gateway and the garbage collector.

Key layout: ``{id}.png`` for plain payloads, ``{id}.enc`` for encrypted
ones. The suffix is fixed at upload and is the only record of whether an
object is encrypted.

Custom metadata (S3 ``x-amz-meta-*``, string values only):
    filename     percent-encoded original filename
    uploaded-at  creation time, epoch milliseconds
    expires-at   absolute expiry, epoch milliseconds
    title        optional percent-encoded caption shown by the viewer
    description  optional percent-encoded text shown by the viewer
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple
from urllib.parse import quote, unquote

PLAIN_SUFFIX = ".png"
ENCRYPTED_SUFFIX = ".enc"

ENCRYPTED_CONTENT_TYPE = "application/octet-stream"
DEFAULT_CONTENT_TYPE = "image/png"

META_FILENAME = "filename"
META_UPLOADED_AT = "uploaded-at"
META_EXPIRES_AT = "expires-at"
META_TITLE = "title"
META_DESCRIPTION = "description"

# S3 limit on user-defined metadata (names + values)
MAX_METADATA_BYTES = 2048


def object_key(object_id: str, encrypted: bool) -> str:
    return object_id + (ENCRYPTED_SUFFIX if encrypted else PLAIN_SUFFIX)


def split_key(key: str) -> Tuple[str, bool]:
    """
    Split a storage key into (id, encrypted).

    Keys without a known suffix are returned unchanged with encrypted=False.
    """
    if key.endswith(ENCRYPTED_SUFFIX):
        return key[: -len(ENCRYPTED_SUFFIX)], True
    if key.endswith(PLAIN_SUFFIX):
        return key[: -len(PLAIN_SUFFIX)], False
    return key, False


def to_epoch_ms(value: datetime) -> str:
    return str(int(value.timestamp() * 1000))


def from_epoch_ms(value: Optional[str]) -> Optional[datetime]:
    """Parse an epoch-milliseconds metadata string; None if missing or malformed."""
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value.strip()) / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def build_metadata(
    uploaded_at: datetime,
    expires_at: Optional[datetime],
    filename: Optional[str] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, str]:
    """Build the string-only metadata map persisted alongside an object."""
    metadata = {META_UPLOADED_AT: to_epoch_ms(uploaded_at)}
    if expires_at is not None:
        metadata[META_EXPIRES_AT] = to_epoch_ms(expires_at)
    if filename:
        # Header values must be ASCII
        metadata[META_FILENAME] = quote(filename, safe="")
    if title:
        metadata[META_TITLE] = quote(title, safe="")
    if description:
        metadata[META_DESCRIPTION] = quote(description, safe="")
    return metadata


def metadata_size(metadata: Dict[str, str]) -> int:
    return sum(len(name.encode("utf-8")) + len(value.encode("utf-8")) for name, value in metadata.items())


@dataclass
class StoredObject:
    """An object as seen through the store: listing entry or fetched body."""

    key: str
    uploaded_at: datetime
    content_type: str = DEFAULT_CONTENT_TYPE
    size: int = 0
    metadata: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    @property
    def id(self) -> str:
        return split_key(self.key)[0]

    @property
    def encrypted(self) -> bool:
        return split_key(self.key)[1]

    @property
    def filename(self) -> Optional[str]:
        value = self.metadata.get(META_FILENAME)
        return unquote(value) if value else None

    @property
    def title(self) -> Optional[str]:
        value = self.metadata.get(META_TITLE)
        return unquote(value) if value else None

    @property
    def description(self) -> Optional[str]:
        value = self.metadata.get(META_DESCRIPTION)
        return unquote(value) if value else None

    @property
    def expires_at(self) -> Optional[datetime]:
        """Explicit expiry from metadata, if the uploader supplied one."""
        return from_epoch_ms(self.metadata.get(META_EXPIRES_AT))

    def effective_expiry(self, default_ttl: timedelta) -> datetime:
        """Explicit expiry if present, else uploaded_at + default_ttl."""
        explicit = self.expires_at
        if explicit is not None:
            return explicit
        return self.uploaded_at + default_ttl

    def is_expired(self, now: datetime, default_ttl: timedelta) -> bool:
        # Strictly past the expiry; an object expiring exactly now survives
        return now > self.effective_expiry(default_ttl)
