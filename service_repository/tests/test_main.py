"""
Unit tests for the repository admin service.
"""

import pytest
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient

from shared.base_service import status_for
from shared.errors import ResolutionError, TransactionError, ValidationError
from service_repository.app.context import get_context
from service_repository.app.envelope import Result
from service_repository.app.main import RepositoryService, create_app


class TestRepositoryService:
    """Test cases for RepositoryService."""

    @pytest.fixture
    def app(self):
        """Create FastAPI app instance."""
        return create_app()

    @pytest.fixture
    def client(self, app):
        """Create test client."""
        return TestClient(app)

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "repository"
        assert data["capabilities"] == ["metrics", "invalidation"]

    def test_health_check(self, client):
        """Test health check endpoint."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert set(data) == {"service", "status", "uptime_seconds", "dependencies"}
        assert data["dependencies"] == {"cache": "NoopCacheAdapter", "store": "unconfigured"}

    def test_health_reports_configured_collaborators(self, client, memory_cache, store):
        data = client.get("/health").json()

        assert data["dependencies"] == {"cache": "MemoryCacheAdapter", "store": "InMemoryDocumentStore"}

    def test_health_check_failure(self, client):
        with patch.object(RepositoryService, "_check_dependencies", AsyncMock(side_effect=RuntimeError("down"))):
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "error"

    def test_prometheus_metrics(self, client):
        get_context().metrics.record_cache_hit()

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "repo_cache_events_total" in response.text

    def test_metrics_snapshot_and_reset(self, client):
        get_context().metrics.record_cache_miss()

        snapshot = client.get("/metrics/snapshot").json()
        assert snapshot["cache"]["misses"] == 1

        response = client.post("/metrics/reset")
        assert response.json() == {"message": "Metrics reset"}
        assert client.get("/metrics/snapshot").json()["cache"]["misses"] == 0

    def test_invalidate_keys_and_prefixes(self, client, memory_cache):
        for key in ["a", "x:1", "x:2", "y:1"]:
            memory_cache.put(key, {"status": True, "data": key}, 60_000)

        response = client.post("/cache/invalidate", json={"keys": ["a"], "prefixes": ["x:"]})

        assert response.status_code == 200
        assert response.json() == {"invalidated": 3}
        assert memory_cache.keys() == ["y:1"]

    def test_invalidate_empty_body(self, client):
        response = client.post("/cache/invalidate", json={})

        assert response.json() == {"invalidated": 0}

    def test_invalidate_failure_maps_to_error_response(self, client):
        failure = Result(False, ValidationError("bad invalidation input"))

        with patch("service_repository.app.main.invalidate_cache", AsyncMock(return_value=failure)):
            response = client.post("/cache/invalidate", json={"keys": "a"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_invalidate_unexpected_failure(self, client):
        failure = Result(False, RuntimeError("cache exploded"))

        with patch("service_repository.app.main.invalidate_cache", AsyncMock(return_value=failure)):
            response = client.post("/cache/invalidate", json={"keys": "a"})

        assert response.status_code == 500


class TestErrorStatus:
    """Repository errors map to HTTP status codes."""

    @pytest.mark.parametrize("error,expected", [
        (ResolutionError("invoices"), 404),
        (ValidationError("bad input"), 400),
        (TransactionError("aborted"), 500),
    ])
    def test_status_for(self, error, expected):
        assert status_for(error) == expected
