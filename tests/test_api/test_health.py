"""Tests for health endpoints."""

import pytest

pytestmark = pytest.mark.asyncio


class TestHealthEndpoint:
    """Tests for GET /health."""

    async def test_health_check(self, client):
        """Health check should return healthy status without a token."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestDeliveryHealth:
    """Tests for GET /api/health/delivery."""

    async def test_requires_admin_token(self, client):
        response = await client.get("/api/health/delivery")
        assert response.status_code == 401

    async def test_wrong_token(self, client):
        response = await client.get("/api/health/delivery", headers={"X-Admin-Token": "nope"})
        assert response.status_code == 401

    async def test_snapshot(self, client, admin_headers, subscriber_factory, job_factory):
        subscriber = await subscriber_factory()
        await job_factory(subscriber)

        response = await client.get("/api/health/delivery", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["queue_size"] == 1
        assert data["scheduler_ran_today"] is True
        assert data["status"] in ("healthy", "warning", "critical")

    async def test_job_runs_empty(self, client, admin_headers):
        response = await client.get("/api/jobs/runs", headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == []

    async def test_schedules_without_scheduler(self, client, admin_headers):
        response = await client.get("/api/jobs/schedules", headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == []
