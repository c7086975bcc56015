"""
Tests for the application shell: service info, metrics, request ids and
the lifespan-managed services.
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from namegen.services.cache import MemoryCache
from namegen.services.creem_provider import CreemProvider
from namegen.services.pdf_renderer import DocumentRenderer
from namegen.services.product_catalog import ProductCatalog


class TestServiceInfo:
    """Tests for the root and metrics endpoints."""

    def test_root_reports_running(self, anonymous_client: TestClient):
        body = anonymous_client.get("/").json()

        assert body["status"] == "running"
        assert body["service"] == "Chinese Name Generator API"
        assert "version" in body

    def test_metrics_exposition(self, anonymous_client: TestClient):
        anonymous_client.get("/")

        response = anonymous_client.get("/metrics")

        assert response.status_code == 200
        assert "namegen_http_requests_total" in response.text
        assert "namegen_paid_operations_total" in response.text

    def test_requests_labelled_by_route_template(self, anonymous_client: TestClient):
        anonymous_client.get("/")
        anonymous_client.get("/wp-login.php")

        text = anonymous_client.get("/metrics").text

        assert 'endpoint="/"' in text
        assert 'endpoint="unmatched"' in text
        assert "wp-login" not in text


class TestRequestId:
    """Tests for the logging middleware."""

    def test_incoming_request_id_is_echoed(self, anonymous_client: TestClient):
        response = anonymous_client.get("/", headers={"X-Request-ID": "req-abc"})

        assert response.headers["X-Request-ID"] == "req-abc"

    def test_request_id_generated_when_absent(self, anonymous_client: TestClient):
        response = anonymous_client.get("/")

        assert len(response.headers["X-Request-ID"]) == 32

    def test_error_body_carries_request_id(self, anonymous_client: TestClient):
        response = anonymous_client.get("/nowhere", headers={"X-Request-ID": "req-404"})

        assert response.status_code == 404
        assert response.json()["requestId"] == "req-404"


class TestLifespan:
    """Process-wide services are created on startup and released on shutdown."""

    def test_services_created_and_released(self, app: FastAPI):
        with TestClient(app) as client:
            assert isinstance(app.state.cache, MemoryCache)
            assert isinstance(app.state.renderer, DocumentRenderer)
            assert isinstance(app.state.catalog, ProductCatalog)
            assert isinstance(app.state.payment_provider, CreemProvider)

            body = client.get("/").json()
            assert body["pdf_renderer"] == {"running": False, "last_start_error": None}

            cache = app.state.cache
            cache.set("k", "v")

        assert len(cache) == 0
        assert cache._sweep_task is None
