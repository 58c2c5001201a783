"""
Tests for the object gateway: routing, content negotiation and errors.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from httpx import AsyncClient

from quickdrop.core.objects import build_metadata
from quickdrop.exceptions import UpstreamError
from quickdrop.storage.memory import MemoryObjectStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x01" * 2048
ENC_BYTES = b"\x07" * 100

BROWSER_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8"
IMG_TAG_ACCEPT = "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"


def put(
    store: MemoryObjectStore,
    key: str,
    body: bytes = PNG_BYTES,
    expires_in: Optional[timedelta] = timedelta(hours=1),
    uploaded_ago: timedelta = timedelta(minutes=1),
    **meta
):
    now = datetime.now(timezone.utc)
    uploaded_at = now - uploaded_ago
    expires_at = now + expires_in if expires_in is not None else None
    content_type = "application/octet-stream" if key.endswith(".enc") else "image/png"
    return store.put_object(
        key, body, content_type, build_metadata(uploaded_at, expires_at, **meta), uploaded_at=uploaded_at
    )


class CountingStore(MemoryObjectStore):
    def __init__(self):
        super().__init__()
        self.lookups = []
        self.body_fetches = []

    def head_object(self, key):
        self.lookups.append(key)
        return super().head_object(key)

    def get_object(self, key):
        self.body_fetches.append(key)
        return super().get_object(key)


class FailingStore(MemoryObjectStore):
    def head_object(self, key):
        raise UpstreamError("Storage head failed", status_code=500, body="InternalError")


class FailingBodyStore(MemoryObjectStore):
    """Metadata reads work, body downloads fail."""

    def get_object(self, key):
        raise UpstreamError("Storage get failed", status_code=500, body="InternalError")


class TestLanding:
    """Tests for the root page."""

    @pytest.mark.asyncio
    async def test_landing_page(self, client: AsyncClient):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert response.headers["cache-control"] == "public, max-age=3600"
        assert "QuickDrop" in response.text


class TestIdValidation:
    """Malformed IDs are rejected before any storage lookup."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", [
        "/ABC123",
        "/abc12",
        "/abc1234",
        "/abc-12",
        "/abc123.gif",
        "/abc123.PNG",
        "/a/b",
    ])
    async def test_invalid_id(self, client: AsyncClient, path: str):
        response = await client.get(path)
        assert response.status_code == 400
        assert "Invalid image ID" in response.text

    @pytest.mark.asyncio
    async def test_no_lookup_for_invalid_id(self, client: AsyncClient):
        from quickdrop.api.dependencies import get_object_store
        from quickdrop.main import app

        store = CountingStore()
        app.dependency_overrides[get_object_store] = lambda: store

        response = await client.get("/../../etc/passwd")

        assert response.status_code in (400, 404)
        assert store.lookups == []


class TestPlainObjects:
    """Tests for objects stored under {id}.png."""

    @pytest.mark.asyncio
    async def test_viewer_page(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png", filename="shot.png", title="Build failure", description="CI log")

        response = await client.get("/abc123", headers={"Accept": BROWSER_ACCEPT})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert response.headers["cache-control"] == "no-cache"
        assert "http://test/abc123.png" in response.text
        assert "Build failure" in response.text
        assert "CI log" in response.text
        assert "shot.png" in response.text
        assert "2.0 KB" in response.text
        assert "Expires in" in response.text

    @pytest.mark.asyncio
    async def test_viewer_without_accept(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png")
        response = await client.get("/abc123", headers={"Accept": "*/*"})
        assert response.headers["content-type"].startswith("text/html")

    @pytest.mark.asyncio
    async def test_raw_by_suffix(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png", filename="shot one.png")

        response = await client.get("/abc123.png")

        assert response.status_code == 200
        assert response.content == PNG_BYTES
        assert response.headers["content-type"] == "image/png"
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["content-disposition"] == "inline; filename*=UTF-8''shot%20one.png"

    @pytest.mark.asyncio
    async def test_raw_by_query(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png")
        response = await client.get("/abc123?raw", headers={"Accept": BROWSER_ACCEPT})
        assert response.content == PNG_BYTES

    @pytest.mark.asyncio
    async def test_raw_by_img_accept(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png")
        response = await client.get("/abc123", headers={"Accept": IMG_TAG_ACCEPT})
        assert response.content == PNG_BYTES
        assert response.headers["content-type"] == "image/png"

    @pytest.mark.asyncio
    async def test_raw_cache_capped_by_remaining_lifetime(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png", expires_in=timedelta(seconds=60))
        response = await client.get("/abc123.png")

        max_age = int(response.headers["cache-control"].split("max-age=")[1])
        assert 0 < max_age <= 60

    @pytest.mark.asyncio
    async def test_raw_cache_default_cap(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png", expires_in=timedelta(days=3))
        response = await client.get("/abc123.png")
        assert response.headers["cache-control"] == "public, max-age=300"

    @pytest.mark.asyncio
    async def test_protected_flag_skips_plain(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png")
        response = await client.get("/abc123?p")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_enc_suffix_does_not_find_plain(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png")
        response = await client.get("/abc123.enc")
        assert response.status_code == 404


class TestEncryptedObjects:
    """Tests for objects stored under {id}.enc."""

    @pytest.mark.asyncio
    async def test_challenge_page(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.enc", body=ENC_BYTES)

        response = await client.get("/abc123", headers={"Accept": BROWSER_ACCEPT})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert response.headers["cache-control"] == "no-cache"
        assert '"/abc123.enc"' in response.text
        assert "const ITERATIONS = 100000;" in response.text
        assert "const SALT_LENGTH = 16;" in response.text
        assert "const IV_LENGTH = 12;" in response.text

    @pytest.mark.asyncio
    async def test_challenge_page_with_protected_flag(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.enc", body=ENC_BYTES)
        response = await client.get("/abc123?p", headers={"Accept": BROWSER_ACCEPT})
        assert response.status_code == 200
        assert '"/abc123.enc"' in response.text

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url,accept", [
        ("/abc123?p&raw", BROWSER_ACCEPT),
        ("/abc123?p", "application/octet-stream"),
    ])
    async def test_raw_ciphertext_with_protected_flag(
        self, client: AsyncClient, store: MemoryObjectStore, url: str, accept: str
    ):
        put(store, "abc123.enc", body=ENC_BYTES)

        response = await client.get(url, headers={"Accept": accept})

        assert response.status_code == 200
        assert response.content == ENC_BYTES
        assert response.headers["content-type"] == "application/octet-stream"
        assert response.headers["content-disposition"] == 'attachment; filename="abc123.enc"'

    @pytest.mark.asyncio
    async def test_raw_ciphertext_by_suffix(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.enc", body=ENC_BYTES)

        response = await client.get("/abc123.enc")

        assert response.status_code == 200
        assert response.content == ENC_BYTES
        assert response.headers["content-type"] == "application/octet-stream"
        assert response.headers["content-disposition"] == 'attachment; filename="abc123.enc"'
        assert response.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_raw_ciphertext_by_accept(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.enc", body=ENC_BYTES)
        response = await client.get("/abc123", headers={"Accept": "application/octet-stream"})
        assert response.content == ENC_BYTES

    @pytest.mark.asyncio
    async def test_png_suffix_does_not_find_encrypted(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.enc", body=ENC_BYTES)
        response = await client.get("/abc123.png")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_plain_wins_when_both_exist(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png")
        put(store, "abc123.enc", body=ENC_BYTES)

        response = await client.get("/abc123", headers={"Accept": IMG_TAG_ACCEPT})

        assert response.content == PNG_BYTES


class TestMissingAndExpired:
    """Missing and expired objects look the same."""

    @pytest.mark.asyncio
    async def test_missing(self, client: AsyncClient):
        response = await client.get("/zzz999")
        assert response.status_code == 404
        assert "expired or does not exist" in response.text

    @pytest.mark.asyncio
    async def test_expired_but_not_collected(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png", expires_in=timedelta(seconds=-1))

        missing = await client.get("/zzz999")
        expired = await client.get("/abc123")
        expired_raw = await client.get("/abc123.png")

        assert expired.status_code == 404
        assert expired_raw.status_code == 404
        assert expired.text == missing.text
        assert store.get_object("abc123.png") is not None

    @pytest.mark.asyncio
    async def test_default_ttl_applies_without_expiry_metadata(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "old111.png", expires_in=None, uploaded_ago=timedelta(hours=25))
        put(store, "new111.png", expires_in=None, uploaded_ago=timedelta(hours=23))

        assert (await client.get("/old111.png")).status_code == 404
        assert (await client.get("/new111.png")).status_code == 200

    @pytest.mark.asyncio
    async def test_lookup_order(self, client: AsyncClient):
        from quickdrop.api.dependencies import get_object_store
        from quickdrop.main import app

        store = CountingStore()
        app.dependency_overrides[get_object_store] = lambda: store

        await client.get("/abc123")
        await client.get("/abc123?p")

        assert store.lookups == ["abc123.png", "abc123.enc", "abc123.enc"]
        assert store.body_fetches == []


class TestBodyFetch:
    """Bodies are downloaded only for raw responses."""

    @pytest.fixture
    def counting_store(self):
        from quickdrop.api.dependencies import get_object_store
        from quickdrop.main import app

        store = CountingStore()
        app.dependency_overrides[get_object_store] = lambda: store
        return store

    @pytest.mark.asyncio
    async def test_html_pages_read_metadata_only(self, client: AsyncClient, counting_store: CountingStore):
        put(counting_store, "abc123.png")
        put(counting_store, "def456.enc", body=ENC_BYTES)

        viewer = await client.get("/abc123", headers={"Accept": BROWSER_ACCEPT})
        challenge = await client.get("/def456", headers={"Accept": BROWSER_ACCEPT})

        assert viewer.status_code == 200
        assert challenge.status_code == 200
        assert "2.0 KB" in viewer.text
        assert counting_store.body_fetches == []

    @pytest.mark.asyncio
    async def test_raw_fetches_body_once(self, client: AsyncClient, counting_store: CountingStore):
        put(counting_store, "abc123.png")

        response = await client.get("/abc123.png")

        assert response.content == PNG_BYTES
        assert counting_store.body_fetches == ["abc123.png"]

    @pytest.mark.asyncio
    async def test_expired_raw_skips_body(self, client: AsyncClient, counting_store: CountingStore):
        put(counting_store, "abc123.png", expires_in=timedelta(seconds=-1))

        response = await client.get("/abc123.png")

        assert response.status_code == 404
        assert counting_store.body_fetches == []


class TestHeadRequests:
    """HEAD is answered like GET, for link-preview crawlers."""

    @pytest.mark.asyncio
    async def test_head_raw(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png")

        response = await client.head("/abc123.png")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.headers["content-length"] == str(len(PNG_BYTES))

    @pytest.mark.asyncio
    async def test_head_viewer(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png")

        response = await client.head("/abc123", headers={"Accept": BROWSER_ACCEPT})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")

    @pytest.mark.asyncio
    async def test_head_missing(self, client: AsyncClient):
        response = await client.head("/zzz999")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_head_landing(self, client: AsyncClient):
        response = await client.head("/")
        assert response.status_code == 200


class TestStorageFailure:
    """Object store failures become 500 pages."""

    @pytest.mark.asyncio
    async def test_body_download_error(self, client: AsyncClient):
        from quickdrop.api.dependencies import get_object_store
        from quickdrop.main import app

        store = FailingBodyStore()
        put(store, "abc123.png")
        app.dependency_overrides[get_object_store] = lambda: store

        viewer = await client.get("/abc123", headers={"Accept": BROWSER_ACCEPT})
        raw = await client.get("/abc123.png")

        assert viewer.status_code == 200
        assert raw.status_code == 500
        assert "InternalError" not in raw.text

    @pytest.mark.asyncio
    async def test_upstream_error(self, client: AsyncClient):
        from quickdrop.api.dependencies import get_object_store
        from quickdrop.main import app

        app.dependency_overrides[get_object_store] = lambda: FailingStore()

        response = await client.get("/abc123")

        assert response.status_code == 500
        assert "InternalError" not in response.text


class TestCors:
    """CORS for browser uploads and cross-origin fetches."""

    @pytest.mark.asyncio
    async def test_options_without_preflight_headers(self, client: AsyncClient):
        response = await client.options("/abc123")
        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "*"
        assert "PUT" in response.headers["access-control-allow-methods"]

    @pytest.mark.asyncio
    async def test_preflight(self, client: AsyncClient):
        response = await client.options(
            "/abc123.png",
            headers={
                "Origin": "https://example.com",
                "Access-Control-Request-Method": "PUT",
                "Access-Control-Request-Headers": "content-type, x-amz-date",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "PUT" in response.headers["access-control-allow-methods"]


class TestHealthAndMetrics:
    """Tests for operational endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "storage": "connected"}

    @pytest.mark.asyncio
    async def test_health_unreachable(self, client: AsyncClient):
        from quickdrop.api.dependencies import get_object_store
        from quickdrop.main import app

        class DownStore(MemoryObjectStore):
            def check_health(self):
                return False

        app.dependency_overrides[get_object_store] = lambda: DownStore()

        response = await client.get("/api/health")
        assert response.status_code == 503
        assert response.json()["detail"]["storage"] == "unreachable"

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, client: AsyncClient, store: MemoryObjectStore):
        put(store, "abc123.png")
        await client.get("/abc123.png")

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "objects_served_total" in response.text
        assert 'path="/{id}"' in response.text

    @pytest.mark.asyncio
    async def test_unmatched_paths_share_one_series(self, client: AsyncClient):
        """Arbitrary public URLs must not mint new label sets."""
        from quickdrop.utils.metrics import http_request_duration_seconds, http_requests_total

        def label_sets(metric):
            return {
                tuple(sorted(sample.labels.items()))
                for family in metric.collect()
                for sample in family.samples
            }

        requests_before = label_sets(http_requests_total)
        durations_before = label_sets(http_request_duration_seconds)

        for i in range(50):
            response = await client.get(f"/junk/{i}")
            assert response.status_code == 400

        new_requests = label_sets(http_requests_total) - requests_before
        new_durations = label_sets(http_request_duration_seconds) - durations_before
        assert len(new_requests) <= 1
        assert all(dict(labels)["path"] == "/{other}" for labels in new_requests | new_durations)
