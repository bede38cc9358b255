"""Outbox scheduling, dispatch and per-job operator actions."""

import uuid
from datetime import date

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import select

from glintup.dependencies import DBSession
from glintup.models.outbox import OutboxJob, OutboxStatus
from glintup.schemas.operations import CreateJobsResponse, DispatchResponse, OutboxJobResponse
from glintup.services.delivery_dispatch import cancel_job, dispatch_due_jobs, retry_job
from glintup.services.outbox_scheduler import schedule_today

router = APIRouter()


class ScheduleRequest(BaseModel):
    run_date: date | None = None
    subscriber_ids: list[uuid.UUID] | None = None
    dry_run: bool = False


def _job_response(job: OutboxJob) -> OutboxJobResponse:
    return OutboxJobResponse(
        id=job.id,
        subscriber_id=job.subscriber_id,
        channel=job.channel.value,
        status=job.status.value,
        slot_date=job.slot_date,
        slot_time=job.slot_time,
        attempts=job.attempts,
        error_reason=job.error_reason,
    )


@router.get("/outbox", response_model=list[OutboxJobResponse])
async def list_outbox(
    db: DBSession,
    status_filter: OutboxStatus | None = Query(default=None, alias="status"),
    slot_date: date | None = Query(default=None),
    limit: int = Query(default=100, le=500),
) -> list[OutboxJobResponse]:
    """List outbox jobs, newest slot first."""
    query = select(OutboxJob).order_by(OutboxJob.send_at.desc())
    if status_filter:
        query = query.where(OutboxJob.status == status_filter)
    if slot_date:
        query = query.where(OutboxJob.slot_date == slot_date)
    result = await db.execute(query.limit(limit))
    return [_job_response(job) for job in result.scalars().all()]


@router.post("/outbox/schedule", response_model=CreateJobsResponse)
async def run_schedule(db: DBSession, body: ScheduleRequest | None = None) -> CreateJobsResponse:
    """Force a scheduling run. Subscribers already scheduled for the date are skipped."""
    body = body or ScheduleRequest()
    stats = await schedule_today(
        db, run_date=body.run_date, subscriber_ids=body.subscriber_ids, dry_run=body.dry_run
    )
    return CreateJobsResponse(**stats.as_dict())


@router.post("/outbox/dispatch", response_model=DispatchResponse)
async def run_dispatch(
    db: DBSession,
    limit: int | None = Query(default=None, ge=1),
) -> DispatchResponse:
    """Force a drain of due outbox jobs."""
    stats = await dispatch_due_jobs(db, limit=limit)
    return DispatchResponse(
        processed=stats.processed,
        sent=stats.sent,
        failed=stats.failed,
        retried=stats.retried,
        skipped=stats.skipped,
        errors=stats.errors,
    )


@router.post("/outbox/{job_id}/cancel", response_model=OutboxJobResponse)
async def cancel_outbox_job(job_id: uuid.UUID, db: DBSession) -> OutboxJobResponse:
    """Cancel a queued job before the dispatcher claims it."""
    job = await cancel_job(db, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return _job_response(job)


@router.post("/outbox/{job_id}/retry", response_model=OutboxJobResponse)
async def retry_outbox_job(job_id: uuid.UUID, db: DBSession) -> OutboxJobResponse:
    """Requeue a failed job."""
    job = await retry_job(db, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return _job_response(job)
