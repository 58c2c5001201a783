"""
Tests for request path normalization in the metrics middleware.
"""
import pytest

from quickdrop.middleware.metrics_middleware import OTHER_PATH_LABEL, MetricsMiddleware


class TestNormalizePath:
    """Labels stay bounded whatever path a client sends."""

    @pytest.fixture
    def middleware(self) -> MetricsMiddleware:
        return MetricsMiddleware(app=None)

    @pytest.mark.parametrize("path", ["/", "/metrics", "/favicon.ico", "/api/health"])
    def test_known_paths_kept(self, middleware: MetricsMiddleware, path: str):
        assert middleware._normalize_path(path) == path

    @pytest.mark.parametrize("path", ["/abc123", "/abc123.png", "/abc123.enc", "/not-an-id"])
    def test_single_segment_is_object(self, middleware: MetricsMiddleware, path: str):
        assert middleware._normalize_path(path) == "/{id}"

    @pytest.mark.parametrize("path", ["/junk/1", "/a/b/c", "/api/unknown", "/api/health/extra"])
    def test_everything_else_collapses(self, middleware: MetricsMiddleware, path: str):
        assert middleware._normalize_path(path) == OTHER_PATH_LABEL
