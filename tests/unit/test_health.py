"""
Tests for health check endpoints.
"""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)

HEALTHY_DB = {
    "healthy": True,
    "connection_time_ms": 3.2,
    "pool_stats": {"pool_size": 4, "pool_available": 3, "pool_utilization_percent": 25.0},
}


def test_healthz_endpoint():
    """Test the basic health check endpoint."""
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_readyz_endpoint_all_services_healthy():
    with patch("app.routes.health.db_health_check", AsyncMock(return_value=HEALTHY_DB)):
        response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is True
    assert data["checks"]["database"]["ok"] is True
    assert data["checks"]["database"]["pool_size"] == 4
    assert data["checks"]["configuration"]["ok"] is True


def test_readyz_endpoint_database_unhealthy():
    unhealthy = {"healthy": False, "error": "Pool not initialized"}
    with patch("app.routes.health.db_health_check", AsyncMock(return_value=unhealthy)):
        response = client.get("/readyz")

    # Still 200, overall_ok reports the problem
    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["database"]["error"] == "Pool not initialized"


def test_readyz_endpoint_database_check_raises():
    with patch(
        "app.routes.health.db_health_check", AsyncMock(side_effect=RuntimeError("boom"))
    ):
        response = client.get("/readyz")

    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["database"]["error"] == "RuntimeError: boom"
    assert isinstance(data["checks"]["database"]["latency_ms"], (int, float))


def test_readyz_flags_missing_cron_secret_in_production():
    with (
        patch("app.routes.health.db_health_check", AsyncMock(return_value=HEALTHY_DB)),
        patch("app.routes.health.settings.environment", "production"),
        patch("app.routes.health.settings.CRON_SECRET", None),
    ):
        response = client.get("/readyz")

    data = response.json()
    assert data["overall_ok"] is False
    assert "CRON_SECRET not set" in data["checks"]["configuration"]["issues"]
