"""
Tests for health check endpoints.
"""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)


def _db_health(attribution_ok=True, production_ok=True):
    return {
        "healthy": attribution_ok and production_ok,
        "attribution": {"healthy": attribution_ok, "connection_time_ms": 1.2, "pool_stats": {}},
        "production": (
            {"healthy": True, "connection_time_ms": 2.5, "pool_stats": {}}
            if production_ok
            else {"healthy": False, "error": "Pool not initialized"}
        ),
    }


def test_healthz_endpoint():
    """Test the basic health check endpoint."""
    response = client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "attribution-portal"


def test_readyz_endpoint_all_services_healthy():
    """Test readiness endpoint when all services are healthy."""
    with (
        patch("app.routes.health.fast_redis.ping", AsyncMock(return_value=True)),
        patch("app.routes.health.db_health_check", AsyncMock(return_value=_db_health())),
    ):
        response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is True
    checks = data["checks"]
    assert checks["redis"]["ok"] is True
    assert checks["attribution_database"]["ok"] is True
    assert checks["production_database"]["ok"] is True
    assert isinstance(checks["redis"]["latency_ms"], (int, float))


def test_readyz_endpoint_redis_unhealthy():
    """Test readiness endpoint when Redis is down."""
    with (
        patch("app.routes.health.fast_redis.ping", AsyncMock(return_value=False)),
        patch("app.routes.health.db_health_check", AsyncMock(return_value=_db_health())),
    ):
        response = client.get("/readyz")

    # Should still return 200, but overall_ok should be False
    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["redis"]["ok"] is False


def test_readyz_endpoint_production_database_unhealthy():
    """Test readiness endpoint when the production pool is down."""
    with (
        patch("app.routes.health.fast_redis.ping", AsyncMock(return_value=True)),
        patch(
            "app.routes.health.db_health_check",
            AsyncMock(return_value=_db_health(production_ok=False)),
        ),
    ):
        response = client.get("/readyz")

    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["attribution_database"]["ok"] is True
    assert data["checks"]["production_database"]["ok"] is False
    assert data["checks"]["production_database"]["error"] == "Pool not initialized"


def test_worker_health_reports_heartbeats():
    async def fake_read(job):
        return {"status": "idle"} if job == "attribution_processing" else None

    with patch("app.routes.health.read_heartbeat", fake_read):
        response = client.get("/health/worker")

    assert response.status_code == 200
    data = response.json()
    assert data["attribution_processing"] == {"status": "idle"}
    assert data["client_sync"] is None
