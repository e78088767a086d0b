"""Tests for health check endpoints."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from ums.api.routers.health import GIB, check_disk, check_memory

pytestmark = pytest.mark.integration

HEALTHY_REDIS = {"status": "healthy", "version": "7.2.0"}
DOWN_REDIS = {"status": "unhealthy", "error": "Connection refused"}


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_basic_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "timestamp" in data

    def test_liveness_probe(self, client: TestClient):
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    @patch("ums.api.routers.health.check_redis", return_value=HEALTHY_REDIS)
    def test_readiness_probe_healthy(self, mock_redis, client: TestClient):
        response = client.get("/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["database"] == {"status": "healthy", "dialect": "sqlite"}

    @patch("ums.api.routers.health.check_redis", return_value=DOWN_REDIS)
    def test_readiness_probe_redis_down(self, mock_redis, client: TestClient):
        response = client.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["failed"] == ["redis"]

    @patch("ums.api.routers.health.check_redis", return_value=HEALTHY_REDIS)
    def test_health_detailed(self, mock_redis, client: TestClient):
        response = client.get("/health/detailed")
        assert response.status_code in [200, 503]
        checks = response.json()["checks"]
        assert set(checks) == {"database", "redis", "disk", "memory"}
        assert "percent_used" in checks["disk"]


class TestResourceChecks:

    def test_disk_thresholds(self):
        usage = SimpleNamespace(total=100 * GIB, free=4 * GIB, percent=96.0)
        with patch("ums.api.routers.health.psutil.disk_usage", return_value=usage):
            result = check_disk()
        assert result == {"status": "critical", "percent_used": 96.0, "total_gb": 100.0, "free_gb": 4.0}

    def test_memory_warning(self):
        usage = SimpleNamespace(total=8 * GIB, available=1 * GIB, percent=87.5)
        with patch("ums.api.routers.health.psutil.virtual_memory", return_value=usage):
            assert check_memory()["status"] == "warning"

    def test_measure_failure_is_unknown(self):
        with patch("ums.api.routers.health.psutil.virtual_memory", side_effect=OSError("no /proc")):
            result = check_memory()
        assert result == {"status": "unknown", "error": "no /proc"}

    @patch("ums.api.routers.health.check_redis", return_value=HEALTHY_REDIS)
    @patch("ums.api.routers.health.check_memory", return_value={"status": "healthy", "percent_used": 10.0})
    @patch("ums.api.routers.health.check_disk", return_value={"status": "critical", "percent_used": 99.0})
    def test_critical_disk_fails_detailed_probe(self, mock_disk, mock_memory, mock_redis, client: TestClient):
        response = client.get("/health/detailed")
        assert response.status_code == 503
        assert response.json()["failed"] == ["disk"]
