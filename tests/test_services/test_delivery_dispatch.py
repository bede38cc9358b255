"""Tests for outbox dispatch."""

import uuid
from datetime import date, datetime, timedelta
from unittest.mock import patch

import httpx
import pytest
import requests
from sqlalchemy import select

from glintup.config import Settings, WhatsAppConfig
from glintup.core.errors import ConfigurationError, InvalidTransitionError, PermanentDeliveryError
from glintup.models.delivery_status import DeliveryStatusRecord
from glintup.models.outbox import OutboxJob, OutboxStatus
from glintup.models.subscriber import Channel
from glintup.services.delivery_dispatch import (
    cancel_job,
    dispatch_due_jobs,
    dispatch_job,
    retry_delay,
    retry_job,
)
from glintup.services.email_service import EmailProvider
from glintup.services.whatsapp_service import WhatsAppProvider

pytestmark = pytest.mark.asyncio

SLOT_DATE = date(2026, 3, 10)
NOW = datetime(2026, 3, 10, 12, 0)


async def _reload(db_session, job_id) -> OutboxJob:
    result = await db_session.execute(
        select(OutboxJob).where(OutboxJob.id == job_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestDispatchDueJobs:
    """Tests for dispatch_due_jobs."""

    async def test_sends_due_jobs_only(self, db_session, subscriber_factory, job_factory, fake_providers):
        subscriber = await subscriber_factory()
        due = await job_factory(subscriber, SLOT_DATE, "09:00")
        later = await job_factory(subscriber, SLOT_DATE, "19:00", position=2)
        providers = fake_providers()

        stats = await dispatch_due_jobs(db_session, providers=providers, now=NOW)

        assert stats.sent == 1
        assert (await _reload(db_session, due.id)).status == OutboxStatus.SENT
        assert (await _reload(db_session, later.id)).status == OutboxStatus.QUEUED
        assert providers[Channel.WHATSAPP].sent[0][0] == "+919876543210"

    async def test_sent_job_records_message_id(
        self, db_session, subscriber_factory, job_factory, fake_providers
    ):
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber, SLOT_DATE, "09:00")

        await dispatch_due_jobs(db_session, providers=fake_providers(), now=NOW)

        job = await _reload(db_session, job.id)
        assert job.provider_message_id.startswith("wamid.")
        assert job.attempts == 1
        records = (
            await db_session.execute(
                select(DeliveryStatusRecord).where(DeliveryStatusRecord.outbox_job_id == job.id)
            )
        ).scalars().all()
        assert [r.status for r in records] == ["sent"]

    async def test_sent_job_never_resent(
        self, db_session, subscriber_factory, job_factory, fake_providers
    ):
        """A second drain, or an explicit dispatch of a sent job, does nothing."""
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber, SLOT_DATE, "09:00")
        providers = fake_providers()

        await dispatch_due_jobs(db_session, providers=providers, now=NOW)
        second = await dispatch_due_jobs(db_session, providers=providers, now=NOW)
        outcome = await dispatch_job(db_session, job.id, providers=providers, now=NOW)

        assert second.processed == 0
        assert outcome.status == "skipped"
        assert len(providers[Channel.WHATSAPP].sent) == 1

    async def test_cancelled_job_not_sent(
        self, db_session, subscriber_factory, job_factory, fake_providers
    ):
        subscriber = await subscriber_factory()
        await job_factory(subscriber, SLOT_DATE, "09:00", status=OutboxStatus.CANCELLED)
        providers = fake_providers()

        stats = await dispatch_due_jobs(db_session, providers=providers, now=NOW)

        assert stats.processed == 0
        assert providers[Channel.WHATSAPP].sent == []

    async def test_transient_error_stays_queued(
        self, db_session, subscriber_factory, job_factory, fake_providers, transient_error
    ):
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber, SLOT_DATE, "09:00")

        stats = await dispatch_due_jobs(
            db_session, providers=fake_providers(whatsapp_error=transient_error()), now=NOW
        )

        job = await _reload(db_session, job.id)
        assert stats.retried == 1
        assert job.status == OutboxStatus.QUEUED
        assert job.attempts == 1
        assert job.error_reason == "provider-unavailable"
        assert job.send_at > NOW + timedelta(minutes=4)

    async def test_transient_error_exhausts_attempts(
        self, db_session, subscriber_factory, job_factory, fake_providers, transient_error
    ):
        """The last allowed attempt turns a transient error into a failure."""
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber, SLOT_DATE, "09:00", attempts=2)

        stats = await dispatch_due_jobs(
            db_session, providers=fake_providers(whatsapp_error=transient_error("timeout", None)), now=NOW
        )

        job = await _reload(db_session, job.id)
        assert stats.failed == 1
        assert job.status == OutboxStatus.FAILED
        assert job.attempts == 3
        assert job.error_reason == "timeout"

    async def test_permanent_error_fails_immediately(
        self, db_session, subscriber_factory, job_factory, fake_providers
    ):
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber, SLOT_DATE, "09:00")
        error = PermanentDeliveryError(
            "template rejected", provider="whatsapp", reason="provider-rejected", status_code=400
        )

        await dispatch_due_jobs(db_session, providers=fake_providers(whatsapp_error=error), now=NOW)

        job = await _reload(db_session, job.id)
        assert job.status == OutboxStatus.FAILED
        assert job.attempts == 1
        assert "template rejected" in job.error_detail

    async def test_configuration_error_fails(
        self, db_session, subscriber_factory, job_factory, fake_providers
    ):
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber, SLOT_DATE, "09:00")

        await dispatch_due_jobs(
            db_session,
            providers=fake_providers(whatsapp_error=ConfigurationError("no token")),
            now=NOW,
        )

        assert (await _reload(db_session, job.id)).error_reason == "configuration"

    async def test_no_address_fails_with_no_target(
        self, db_session, subscriber_factory, job_factory, fake_providers
    ):
        subscriber = await subscriber_factory(phone_number=None, email=None)
        job = await job_factory(subscriber, SLOT_DATE, "09:00")

        stats = await dispatch_due_jobs(db_session, providers=fake_providers(), now=NOW)

        job = await _reload(db_session, job.id)
        assert stats.failed == 1
        assert job.error_reason == "no-target"

    async def test_falls_back_to_email(self, db_session, subscriber_factory, job_factory, fake_providers):
        """A WhatsApp job for a subscriber who dropped their number goes by email."""
        subscriber = await subscriber_factory(phone_number=None, email="reader@example.com")
        job = await job_factory(subscriber, SLOT_DATE, "09:00", channel=Channel.WHATSAPP)
        providers = fake_providers()

        await dispatch_due_jobs(db_session, providers=providers, now=NOW)

        job = await _reload(db_session, job.id)
        assert job.status == OutboxStatus.SENT
        assert job.channel == Channel.EMAIL
        assert providers[Channel.EMAIL].sent[0][0] == "reader@example.com"

    async def test_respects_limit(self, db_session, subscriber_factory, job_factory, fake_providers):
        subscriber = await subscriber_factory()
        for i, slot in enumerate(("08:00", "09:00", "10:00"), start=1):
            await job_factory(subscriber, SLOT_DATE, slot, position=i)

        stats = await dispatch_due_jobs(db_session, providers=fake_providers(), now=NOW, limit=2)

        assert stats.sent == 2

    async def test_permanent_failure_isolation(self, db_session, subscriber_factory, job_factory):
        """One invalid phone number among ten fails alone; the other nine are sent."""
        subscribers = [await subscriber_factory(phone_number=f"+9198765432{i:02d}") for i in range(9)]
        bad = await subscriber_factory(phone_number="12345")
        jobs = [await job_factory(s, SLOT_DATE, "09:00") for s in subscribers]
        bad_job = await job_factory(bad, SLOT_DATE, "09:00")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"messages": [{"id": "wamid.ok"}]})

        provider = WhatsAppProvider(
            config=WhatsAppConfig(
                {"use_template": False},
                Settings(whatsapp_token="token", whatsapp_phone_number_id="1234"),
            ),
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        stats = await dispatch_due_jobs(
            db_session, providers={Channel.WHATSAPP: provider}, now=NOW
        )

        assert stats.sent == 9
        assert stats.failed == 1
        bad_job = await _reload(db_session, bad_job.id)
        assert bad_job.status == OutboxStatus.FAILED
        assert bad_job.error_reason == "invalid-target"
        for job in jobs:
            assert (await _reload(db_session, job.id)).status == OutboxStatus.SENT


class TestUnclassifiedProviderErrors:
    """Provider failures outside the delivery error taxonomy are retried a bounded number of times."""

    async def _status_records(self, db_session, job_id) -> list[DeliveryStatusRecord]:
        result = await db_session.execute(
            select(DeliveryStatusRecord).where(DeliveryStatusRecord.outbox_job_id == job_id)
        )
        return list(result.scalars().all())

    async def test_email_network_error_bounded(self, db_session, subscriber_factory, job_factory):
        subscriber = await subscriber_factory(phone_number=None, email="reader@example.com")
        job = await job_factory(subscriber, SLOT_DATE, "09:00", channel=Channel.EMAIL)
        job_id = job.id
        settings = Settings(resend_api_key="re_test", email_domain="example.com")

        with (
            patch("glintup.services.email_service.get_settings", return_value=settings),
            patch(
                "glintup.services.email_service.resend.Emails.send",
                side_effect=requests.exceptions.ConnectionError("connection refused"),
            ),
        ):
            for day in range(5):
                await dispatch_due_jobs(
                    db_session,
                    providers={Channel.EMAIL: EmailProvider(timeout=5)},
                    now=NOW + timedelta(days=day),
                )

        job = await _reload(db_session, job_id)
        assert job.status == OutboxStatus.FAILED
        assert job.attempts == 3
        assert job.error_reason == "network-error"
        records = await self._status_records(db_session, job_id)
        assert [r.status for r in records].count("retry") == 2
        assert [r.status for r in records].count("failed") == 1

    async def test_unexpected_exception_treated_as_transient(
        self, db_session, subscriber_factory, job_factory, fake_providers
    ):
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber, SLOT_DATE, "09:00")
        job_id = job.id

        stats = await dispatch_due_jobs(
            db_session,
            providers=fake_providers(whatsapp_error=RuntimeError("unexpected payload")),
            now=NOW,
        )

        job = await _reload(db_session, job_id)
        assert stats.retried == 1
        assert stats.errors == []
        assert job.status == OutboxStatus.QUEUED
        assert job.attempts == 1
        assert job.error_reason == "provider-error"
        assert "unexpected payload" in job.error_detail
        records = await self._status_records(db_session, job_id)
        assert [r.status for r in records] == ["retry"]


class TestOperatorActions:
    """Cancel and retry."""

    async def test_cancel_queued(self, db_session, subscriber_factory, job_factory):
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber, SLOT_DATE, "09:00")

        cancelled = await cancel_job(db_session, job.id)

        assert cancelled.status == OutboxStatus.CANCELLED

    async def test_cancel_sent_rejected(self, db_session, subscriber_factory, job_factory):
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber, SLOT_DATE, "09:00", status=OutboxStatus.SENT)

        with pytest.raises(InvalidTransitionError):
            await cancel_job(db_session, job.id)

    async def test_retry_failed_resets_attempts(self, db_session, subscriber_factory, job_factory):
        subscriber = await subscriber_factory()
        job = await job_factory(subscriber, SLOT_DATE, "09:00", status=OutboxStatus.FAILED, attempts=3)

        requeued = await retry_job(db_session, job.id)

        assert requeued.status == OutboxStatus.QUEUED
        assert requeued.attempts == 0
        assert requeued.error_reason is None

    async def test_retry_missing_job(self, db_session):
        assert await retry_job(db_session, uuid.uuid4()) is None


class TestRetryDelay:
    def test_exponential(self):
        assert retry_delay(1, 5) == timedelta(minutes=5)
        assert retry_delay(2, 5) == timedelta(minutes=10)
        assert retry_delay(3, 5) == timedelta(minutes=20)
