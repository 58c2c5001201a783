"""
Test configuration and fixtures.
Uses an in-memory object store and an httpx MockTransport that plays the
part of R2, including SigV4 verification of incoming requests.
"""
import os

# Set test environment before any imports
os.environ["ENVIRONMENT"] = "test"
os.environ["USE_MEMORY_STORE"] = "true"
os.environ["R2_ENDPOINT"] = "https://testaccount.r2.cloudflarestorage.com"
os.environ["R2_BUCKET"] = "quickdrop-test"
os.environ["R2_ACCESS_KEY"] = "test-access-key"
os.environ["R2_SECRET_KEY"] = "test-secret-key"
os.environ["PUBLIC_BASE_URL"] = "https://drop.test"

import hmac
import re
from datetime import datetime, timezone
from typing import AsyncGenerator, Callable, List, Optional

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from quickdrop.config import Settings
from quickdrop.storage.memory import MemoryObjectStore
from quickdrop.storage.signer import AMZ_DATE_FORMAT, META_HEADER_PREFIX, RequestSigner, sha256_hex

ENDPOINT = "https://testaccount.r2.cloudflarestorage.com"
BUCKET = "quickdrop-test"
ACCESS_KEY = "test-access-key"
SECRET_KEY = "test-secret-key"
PUBLIC_BASE_URL = "https://drop.test"

_ALWAYS_SIGNED = {"host", "x-amz-content-sha256", "x-amz-date"}


class FakeR2:
    """
    Minimal S3 endpoint behind httpx.MockTransport.

    Verifies each request's SigV4 signature the way the provider would
    (re-signing from the wire headers) and writes PUTs into a
    MemoryObjectStore, using the request time as the server timestamp.
    """

    def __init__(self, store: MemoryObjectStore, secret_key: str = SECRET_KEY):
        self.store = store
        self.signer = RequestSigner(ACCESS_KEY, secret_key, region="auto")
        self.requests: List[httpx.Request] = []
        self.respond_with: Optional[Callable[[httpx.Request], httpx.Response]] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.respond_with is not None:
            return self.respond_with(request)

        if not self.verify(request):
            return httpx.Response(
                403,
                text="<Error><Code>SignatureDoesNotMatch</Code></Error>"
            )

        _, bucket, key = request.url.path.split("/", 2)
        if bucket != BUCKET:
            return httpx.Response(404, text="<Error><Code>NoSuchBucket</Code></Error>")

        if request.method == "PUT":
            metadata = {
                name[len(META_HEADER_PREFIX):]: value
                for name, value in request.headers.items()
                if name.lower().startswith(META_HEADER_PREFIX)
            }
            self.store.put_object(
                key,
                request.content,
                request.headers["content-type"],
                metadata,
                uploaded_at=self._request_time(request),
            )
            return httpx.Response(200)

        if request.method == "HEAD":
            return httpx.Response(200 if self.store.head_object(key) else 404)

        return httpx.Response(405)

    def verify(self, request: httpx.Request) -> bool:
        authorization = request.headers.get("authorization", "")
        match = re.search(r"SignedHeaders=([^,]+)", authorization)
        if not match or "x-amz-date" not in request.headers:
            return False

        signed_names = match.group(1).split(";")
        extra = {
            name: request.headers[name]
            for name in signed_names
            if name not in _ALWAYS_SIGNED
        }
        expected = self.signer.sign(
            request.method,
            request.headers["host"],
            request.url.path,
            payload=request.content,
            headers=extra,
            timestamp=self._request_time(request),
        )
        return (
            hmac.compare_digest(expected.authorization, authorization)
            and request.headers.get("x-amz-content-sha256") == sha256_hex(request.content)
        )

    @staticmethod
    def _request_time(request: httpx.Request) -> datetime:
        return datetime.strptime(request.headers["x-amz-date"], AMZ_DATE_FORMAT).replace(tzinfo=timezone.utc)


@pytest.fixture
def test_settings() -> Settings:
    """Explicit settings, independent of the process environment."""
    return Settings(
        environment="test",
        use_memory_store=True,
        r2_endpoint=ENDPOINT,
        r2_bucket=BUCKET,
        r2_access_key=ACCESS_KEY,
        r2_secret_key=SECRET_KEY,
        public_base_url=PUBLIC_BASE_URL,
        default_ttl_hours=24,
        raw_cache_max_age_seconds=300,
    )


@pytest.fixture
def store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def fake_r2(store: MemoryObjectStore) -> FakeR2:
    return FakeR2(store)


@pytest.fixture
def http_client(fake_r2: FakeR2):
    with httpx.Client(transport=httpx.MockTransport(fake_r2.handler)) as client:
        yield client


@pytest.fixture
def uploader(test_settings: Settings, http_client: httpx.Client):
    from quickdrop.services.uploader import Uploader

    return Uploader.from_settings(test_settings, http_client=http_client)


@pytest.fixture
async def client(store: MemoryObjectStore, test_settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for gateway testing."""
    from quickdrop.main import app
    from quickdrop.api.dependencies import get_object_store
    from quickdrop.config import get_settings

    app.dependency_overrides[get_object_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: test_settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Clean up overrides
    app.dependency_overrides.clear()
