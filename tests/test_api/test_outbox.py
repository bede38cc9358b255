"""Tests for outbox operator endpoints."""

import uuid
from datetime import date

import pytest

from glintup.models.outbox import OutboxStatus

pytestmark = pytest.mark.asyncio


class TestOutboxJobs:
    async def test_list_filters_by_status(self, client, admin_headers, subscriber_factory, job_factory):
        subscriber = await subscriber_factory()
        await job_factory(subscriber, date(2026, 3, 10), "09:00")
        await job_factory(subscriber, date(2026, 3, 10), "12:00", status=OutboxStatus.FAILED)

        response = await client.get("/api/outbox?status=failed", headers=admin_headers)

        assert response.status_code == 200
        jobs = response.json()
        assert len(jobs) == 1
        assert jobs[0]["status"] == "failed"

    async def test_cancel(self, client, admin_headers, subscriber_factory, job_factory):
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber)

        response = await client.post(f"/api/outbox/{job.id}/cancel", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    async def test_cancel_sent_conflict(self, client, admin_headers, subscriber_factory, job_factory):
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber, status=OutboxStatus.SENT)

        response = await client.post(f"/api/outbox/{job.id}/cancel", headers=admin_headers)

        assert response.status_code == 409

    async def test_retry_failed(self, client, admin_headers, subscriber_factory, job_factory):
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber, status=OutboxStatus.FAILED, attempts=3)

        response = await client.post(f"/api/outbox/{job.id}/retry", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "queued"
        assert response.json()["attempts"] == 0

    async def test_missing_job(self, client, admin_headers):
        response = await client.post(f"/api/outbox/{uuid.uuid4()}/retry", headers=admin_headers)
        assert response.status_code == 404


class TestRepairEndpoint:
    async def test_unknown_action_422(self, client, admin_headers):
        response = await client.post("/api/repair/drop-tables", headers=admin_headers)
        assert response.status_code == 422

    async def test_purge(self, client, admin_headers, subscriber_factory):
        await subscriber_factory(phone_number=None, email=None)

        response = await client.post("/api/repair/purge-unreachable", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["affected"] == 1
