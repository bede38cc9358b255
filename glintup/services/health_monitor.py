"""
Delivery health snapshot.

Read-only aggregate signals over the outbox and job history, with the
alert thresholds from config.yml. Repair is never triggered from here.
"""

from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from glintup.config import HealthConfig, get_config
from glintup.core.datetime_utils import day_bounds, get_cutoff, utc_now
from glintup.core.logging import get_logger
from glintup.core.scheduler import DAILY_SCHEDULE_JOB_ID
from glintup.models.job_run import JobRun
from glintup.models.outbox import OutboxJob, OutboxStatus
from glintup.models.subscriber import Subscriber
from glintup.schemas.health import Alert, HealthSnapshot
from glintup.services.outbox_scheduler import reachable_clause

logger = get_logger(__name__)

_LEVEL_RANK = {"healthy": 0, "warning": 1, "critical": 2}


async def _count(db: AsyncSession, query) -> int:
    result = await db.execute(query)
    return int(result.scalar() or 0)


async def scheduler_activity(db: AsyncSession, today: date) -> tuple[bool, datetime | None]:
    """Whether the scheduler ran today, and when it last ran at all."""
    start, end = day_bounds(today)

    last_run = await db.execute(
        select(func.max(JobRun.started_at)).where(
            JobRun.job_id == DAILY_SCHEDULE_JOB_ID, JobRun.outcome == "success"
        )
    )
    last_run_at = last_run.scalar()

    last_created = await db.execute(select(func.max(OutboxJob.created_at)))
    last_created_at = last_created.scalar()

    candidates = [t for t in (last_run_at, last_created_at) if t is not None]
    latest = max(candidates) if candidates else None
    ran_today = latest is not None and start <= latest < end
    return ran_today, latest


def evaluate_alerts(
    *,
    scheduler_ran_today: bool,
    queue_size: int,
    failure_rate: float,
    coverage: float,
    config: HealthConfig,
) -> list[Alert]:
    alerts: list[Alert] = []

    if not scheduler_ran_today:
        alerts.append(
            Alert(
                level="critical",
                code="scheduler_silent",
                message="Daily scheduler has not produced any jobs today",
                action="Trigger manual scheduler run",
            )
        )

    if queue_size > config.backlog_warning:
        alerts.append(
            Alert(
                level="warning",
                code="queue_backlog",
                message=f"{queue_size} messages are waiting in the outbox",
                action="Process outbox messages",
            )
        )

    if failure_rate > config.failure_rate_critical:
        alerts.append(
            Alert(
                level="critical",
                code="high_failure_rate",
                message=f"Delivery failure rate is {failure_rate:.0%}",
                action="Check WhatsApp configuration",
            )
        )
    elif failure_rate > config.failure_rate_warning:
        alerts.append(
            Alert(
                level="warning",
                code="elevated_failure_rate",
                message=f"Delivery failure rate is {failure_rate:.0%}",
                action="Monitor delivery patterns",
            )
        )

    if coverage < config.coverage_warning:
        alerts.append(
            Alert(
                level="warning",
                code="low_coverage",
                message=f"Only {coverage:.0%} of active subscribers have jobs today",
                action="Review user settings",
            )
        )

    return alerts


def overall_status(alerts: list[Alert]) -> str:
    status = "healthy"
    for alert in alerts:
        if _LEVEL_RANK[alert.level] > _LEVEL_RANK[status]:
            status = alert.level
    return status


async def get_health_snapshot(
    db: AsyncSession,
    now: datetime | None = None,
    config: HealthConfig | None = None,
) -> HealthSnapshot:
    """
    Compute the delivery health snapshot.

    Args:
        db: Database session
        now: Reference time (defaults to utc_now()); "today" is its UTC date
        config: Thresholds (defaults to config.yml)

    Returns:
        HealthSnapshot with metrics, alerts and the worst alert level as status
    """
    now = now or utc_now()
    config = config or get_config().health
    today = now.date()
    cutoff = get_cutoff(hours=config.window_hours, now=now)

    scheduler_ran_today, last_run_at = await scheduler_activity(db, today)

    queue_size = await _count(
        db, select(func.count(OutboxJob.id)).where(OutboxJob.status == OutboxStatus.QUEUED)
    )

    outcome_rows = await db.execute(
        select(OutboxJob.status, func.count(OutboxJob.id))
        .where(
            OutboxJob.status.in_([OutboxStatus.SENT, OutboxStatus.FAILED]),
            OutboxJob.last_attempt_at >= cutoff,
        )
        .group_by(OutboxJob.status)
    )
    outcomes = {status: count for status, count in outcome_rows.all()}
    sent = outcomes.get(OutboxStatus.SENT, 0)
    failed = outcomes.get(OutboxStatus.FAILED, 0)
    attempted = sent + failed
    failure_rate = failed / attempted if attempted else 0.0

    active = await _count(
        db,
        select(func.count(Subscriber.id)).where(
            Subscriber.is_active == True,  # noqa: E712
            reachable_clause(),
        ),
    )
    covered = await _count(
        db,
        select(func.count(func.distinct(OutboxJob.subscriber_id)))
        .join(Subscriber, Subscriber.id == OutboxJob.subscriber_id)
        .where(
            OutboxJob.slot_date == today,
            OutboxJob.status != OutboxStatus.CANCELLED,
            Subscriber.is_active == True,  # noqa: E712
        ),
    )
    coverage = min(covered / active, 1.0) if active else 1.0

    alerts = evaluate_alerts(
        scheduler_ran_today=scheduler_ran_today,
        queue_size=queue_size,
        failure_rate=failure_rate,
        coverage=coverage,
        config=config,
    )
    snapshot = HealthSnapshot(
        status=overall_status(alerts),
        checked_at=now,
        scheduler_ran_today=scheduler_ran_today,
        last_run_at=last_run_at,
        queue_size=queue_size,
        sent=sent,
        failed=failed,
        failure_rate=round(failure_rate, 4),
        window_hours=config.window_hours,
        active_subscribers=active,
        subscribers_covered=covered,
        coverage=round(coverage, 4),
        alerts=alerts,
    )

    logger.bind(
        status=snapshot.status,
        queue_size=queue_size,
        failure_rate=snapshot.failure_rate,
        coverage=snapshot.coverage,
        alerts=[a.code for a in alerts],
    ).info("health_snapshot")
    return snapshot
