"""Tests for recurring trigger setup."""

import pytest
from apscheduler.triggers.cron import CronTrigger

from glintup.core.scheduler import daily_trigger, dispatch_trigger, get_job_schedules, start_scheduler


class TestTriggers:
    def test_daily_trigger_is_cron(self):
        assert isinstance(daily_trigger(), CronTrigger)

    def test_dispatch_trigger_is_cron(self):
        assert isinstance(dispatch_trigger(), CronTrigger)


@pytest.mark.asyncio
class TestStartScheduler:
    async def test_disabled_by_settings(self):
        """SCHEDULER_ENABLED=false leaves no scheduler running."""
        assert await start_scheduler() is None
        assert await get_job_schedules() == []
