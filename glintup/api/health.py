"""Delivery health and scheduler history endpoints."""

from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel
from sqlalchemy import select

from glintup.core.scheduler import get_job_schedules
from glintup.dependencies import DBSession
from glintup.models.job_run import JobRun
from glintup.schemas.health import HealthSnapshot
from glintup.services.health_monitor import get_health_snapshot

router = APIRouter()


class ScheduleResponse(BaseModel):
    """Response model for a job schedule."""

    id: str
    task_id: str
    trigger: str
    next_fire_time: str | None
    last_fire_time: str | None


class JobRunResponse(BaseModel):
    """Response model for a job run."""

    id: str
    job_id: str
    scheduled_at: datetime
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    outcome: str
    error: str | None


@router.get("/health/delivery", response_model=HealthSnapshot)
async def delivery_health(db: DBSession) -> HealthSnapshot:
    """Read-only snapshot of scheduling and delivery health with alerts."""
    return await get_health_snapshot(db)


@router.get("/jobs/schedules", response_model=list[ScheduleResponse])
async def list_schedules() -> list[ScheduleResponse]:
    """List the registered recurring triggers and their next fire times."""
    schedules = await get_job_schedules()
    return [ScheduleResponse(**s) for s in schedules]


@router.get("/jobs/runs", response_model=list[JobRunResponse])
async def list_job_runs(
    db: DBSession,
    job_id: str | None = Query(default=None, description="Filter by job ID"),
    limit: int = Query(default=50, le=200),
) -> list[JobRunResponse]:
    """Recent scheduler and dispatcher executions."""
    query = select(JobRun).order_by(JobRun.scheduled_at.desc())
    if job_id:
        query = query.where(JobRun.job_id == job_id)

    result = await db.execute(query.limit(limit))
    return [
        JobRunResponse(
            id=run.id,
            job_id=run.job_id,
            scheduled_at=run.scheduled_at,
            started_at=run.started_at,
            finished_at=run.finished_at,
            duration_seconds=run.duration_seconds,
            outcome=run.outcome,
            error=run.error,
        )
        for run in result.scalars().all()
    ]
