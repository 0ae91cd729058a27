"""
Tests for health check endpoints.

These tests verify:
- Basic health endpoint returns 200
- Readiness check reports database connection status and outbox backlog
- Health degrades gracefully when services are down
"""

from unittest.mock import AsyncMock, MagicMock, patch


def _healthy_mongo(backlog=0):
    """Mongo client mock answering the outbox backlog count."""
    outbox = MagicMock()
    outbox.count_documents = AsyncMock(return_value=backlog)
    client = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1})
    client.__getitem__.return_value.__getitem__.return_value = outbox
    return client


def _healthy_redis():
    redis = AsyncMock()
    redis.ping = AsyncMock(return_value=True)
    return redis


class TestHealthEndpoint:
    """Tests for GET /health endpoint."""

    def test_health_endpoint_returns_200_when_api_running(self, client):
        """Basic health check should return 200 if API is up."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"


class TestReadinessEndpoint:
    """Tests for GET /health/ready endpoint."""

    def test_readiness_returns_200_when_all_services_healthy(self, client):
        """Readiness check should return 200 when all dependencies are up."""
        with patch("app.routers.health.ping_mongo") as mock_mongo, \
             patch("app.routers.health.ping_redis") as mock_redis:

            mock_mongo.return_value = _healthy_mongo(backlog=3)
            mock_redis.return_value = _healthy_redis()

            response = client.get("/health/ready")

            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "healthy"
            assert data["checks"]["mongodb"] == "healthy"
            assert data["checks"]["redis"] == "healthy"
            assert data["outbox_backlog"] == 3

    def test_readiness_reports_mongodb_unhealthy_when_connection_fails(self, client):
        """Readiness should report MongoDB unhealthy when it fails."""
        with patch("app.routers.health.ping_mongo") as mock_mongo, \
             patch("app.routers.health.ping_redis") as mock_redis:

            mock_mongo.side_effect = Exception("Connection refused")
            mock_redis.return_value = _healthy_redis()

            response = client.get("/health/ready")

            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "degraded"
            assert "unhealthy" in data["checks"]["mongodb"]
            assert data["outbox_backlog"] is None

    def test_readiness_reports_redis_unhealthy_when_connection_fails(self, client):
        """Readiness should report Redis unhealthy when it fails."""
        with patch("app.routers.health.ping_mongo") as mock_mongo, \
             patch("app.routers.health.ping_redis") as mock_redis:

            mock_mongo.return_value = _healthy_mongo()
            mock_redis.side_effect = Exception("Connection refused")

            response = client.get("/health/ready")

            assert response.status_code == 200
            data = response.json()
            assert data["status"] == "degraded"
            assert "unhealthy" in data["checks"]["redis"]

    def test_readiness_response_includes_all_check_keys(self, client):
        """Readiness response should include all dependency checks."""
        with patch("app.routers.health.ping_mongo") as mock_mongo, \
             patch("app.routers.health.ping_redis") as mock_redis:

            mock_mongo.side_effect = Exception("test")
            mock_redis.side_effect = Exception("test")

            response = client.get("/health/ready")

            data = response.json()
            assert "checks" in data
            assert "api" in data["checks"]
            assert "mongodb" in data["checks"]
            assert "redis" in data["checks"]
            assert "outbox_backlog" in data
