"""
Integration tests for request tracking middleware and service endpoints.
"""

import logging
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from dualstore.api.dependencies import get_catalog_store
from dualstore.common.metrics import REGISTRY
from dualstore.main import app


@pytest.fixture
def client():
    return TestClient(app)


class TestRequestTrackingMiddleware:
    """Tests for RequestTrackingMiddleware."""

    def test_generates_request_id(self, client):
        """Middleware should generate request ID if not provided."""
        response = client.get("/live")

        assert "X-Request-ID" in response.headers
        assert len(response.headers["X-Request-ID"]) > 0

    def test_preserves_provided_request_id(self, client):
        """Middleware should preserve provided X-Request-ID."""
        custom_id = "custom-req-id-123"

        response = client.get("/live", headers={"X-Request-ID": custom_id})

        assert response.headers["X-Request-ID"] == custom_id

    def test_different_requests_get_different_ids(self, client):
        """Each request should get unique request ID."""
        id1 = client.get("/live").headers["X-Request-ID"]
        id2 = client.get("/live").headers["X-Request-ID"]

        assert id1 != id2


class TestServiceEndpoints:

    def test_root(self, client):
        body = client.get("/").json()

        assert body["status"] == "running"
        assert body["docs"] == "/docs"

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_ready_when_all_backends_respond(self, client):
        store = Mock()
        store.ping.return_value = True

        with patch("dualstore.catalog.database.check_database_connection", return_value=True), \
                patch("dualstore.storage.factory.get_relational_store", return_value=store), \
                patch("dualstore.storage.factory.get_document_store", return_value=store):
            body = client.get("/ready").json()

        assert body == {
            "status": "ready",
            "catalog": "connected",
            "relational": "connected",
            "documents": "connected",
        }

    def test_not_ready_when_document_store_down(self, client):
        up = Mock()
        up.ping.return_value = True
        down = Mock()
        down.ping.return_value = False

        with patch("dualstore.catalog.database.check_database_connection", return_value=True), \
                patch("dualstore.storage.factory.get_relational_store", return_value=up), \
                patch("dualstore.storage.factory.get_document_store", return_value=down):
            body = client.get("/ready").json()

        assert body["status"] == "not_ready"
        assert body["documents"] == "disconnected"

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert b"ingest_requests_total" in response.content


def http_count(method, route, status):
    return REGISTRY.get_sample_value(
        "http_requests_total", {"method": method, "route": route, "status": status}) or 0.0


class TestRequestAccounting:

    @pytest.fixture
    def dataset_client(self, catalog):
        app.dependency_overrides[get_catalog_store] = lambda: catalog
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_counts_by_route_template(self, dataset_client):
        route = "/api/v1/datasets/{dataset_id}"
        before = http_count("GET", route, "404")

        dataset_client.get("/api/v1/datasets/abc-123")
        dataset_client.get("/api/v1/datasets/def-456")

        assert http_count("GET", route, "404") == before + 2

    def test_logs_dataset_id_from_path(self, dataset_client, caplog):
        with caplog.at_level(logging.INFO, logger="dualstore.common.middleware"):
            dataset_client.get("/api/v1/datasets/abc-123")

        logged = [r for r in caplog.records if r.name == "dualstore.common.middleware"]
        assert logged
        assert logged[-1].extra_fields["dataset_id"] == "abc-123"
        assert logged[-1].extra_fields["route"] == "/api/v1/datasets/{dataset_id}"
        assert logged[-1].extra_fields["status_code"] == 404

    def test_unknown_path_counted_as_unmatched(self, client):
        before = http_count("GET", "unmatched", "404")

        client.get("/no/such/path")

        assert http_count("GET", "unmatched", "404") == before + 1

    def test_health_checks_not_logged_at_info(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="dualstore.common.middleware"):
            client.get("/live")

        assert not [r for r in caplog.records if r.name == "dualstore.common.middleware"]
