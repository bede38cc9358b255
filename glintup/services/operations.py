"""Handlers for the tagged operation requests, one per variant."""

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from glintup.config import get_config
from glintup.core.errors import NotFoundError
from glintup.core.logging import get_logger
from glintup.models.subscriber import Channel
from glintup.pipeline.planner import effective_words_per_day, plan_delivery_times, plan_for_subscriber
from glintup.pipeline.word_selection import WordSelector
from glintup.schemas.operations import (
    CreateJobsRequest,
    CreateJobsResponse,
    DispatchJobRequest,
    DispatchResponse,
    GetHealthRequest,
    OperationRequest,
    OperationResponse,
    PlanScheduleRequest,
    PlanScheduleResponse,
    SelectedWordResponse,
    SelectWordsRequest,
    SelectWordsResponse,
)
from glintup.services.delivery_dispatch import DeliveryProvider, dispatch_due_jobs, dispatch_job
from glintup.services.delivery_settings import ensure_delivery_settings
from glintup.services.health_monitor import get_health_snapshot
from glintup.services.outbox_scheduler import default_selector, load_subscriber, schedule_today
from glintup.services.repair import run_repair

logger = get_logger(__name__)


async def _plan_schedule(db: AsyncSession, request: PlanScheduleRequest) -> PlanScheduleResponse:
    if request.subscriber_id is None:
        times = plan_delivery_times(
            request.words_per_day,
            request.mode,
            request.auto_window_start,
            request.auto_window_end,
            request.custom_times,
        )
        return PlanScheduleResponse(words_per_day=request.words_per_day, mode=request.mode, times=times)

    subscriber = await load_subscriber(db, request.subscriber_id)
    if subscriber is None:
        raise NotFoundError(f"subscriber {request.subscriber_id} not found")
    config = get_config().delivery
    settings = await ensure_delivery_settings(db, subscriber, config)
    times = plan_for_subscriber(
        subscriber, settings, config.free_max_words, config.pro_max_words, config.default_auto_times
    )
    return PlanScheduleResponse(words_per_day=len(times), mode=settings.mode.value, times=times)


async def _select_words(
    db: AsyncSession, request: SelectWordsRequest, selector: WordSelector | None
) -> SelectWordsResponse:
    subscriber = await load_subscriber(db, request.subscriber_id)
    if subscriber is None:
        raise NotFoundError(f"subscriber {request.subscriber_id} not found")

    count = request.count
    if count is None:
        config = get_config().delivery
        settings = await ensure_delivery_settings(db, subscriber, config)
        count = effective_words_per_day(subscriber, settings, config.free_max_words, config.pro_max_words)

    selection = await (selector or default_selector()).select_words(db, subscriber, count)
    await db.commit()
    return SelectWordsResponse(
        subscriber_id=request.subscriber_id,
        source=selection.source.value,
        words=[SelectedWordResponse(**w.to_payload()) for w in selection.words],
    )


async def _dispatch(
    db: AsyncSession,
    request: DispatchJobRequest,
    providers: dict[Channel, DeliveryProvider] | None,
) -> DispatchResponse:
    if request.job_id is None:
        stats = await dispatch_due_jobs(db, providers=providers, limit=request.limit)
        return DispatchResponse(
            processed=stats.processed,
            sent=stats.sent,
            failed=stats.failed,
            retried=stats.retried,
            skipped=stats.skipped,
            errors=stats.errors,
        )

    outcome = await dispatch_job(db, request.job_id, providers=providers)
    return DispatchResponse(
        processed=1 if outcome.status != "missing" else 0,
        sent=int(outcome.status == "sent"),
        failed=int(outcome.status == "failed"),
        retried=int(outcome.status == "retry"),
        skipped=int(outcome.status in ("skipped", "missing")),
        job_id=outcome.job_id,
        job_status=outcome.status,
        reason=outcome.reason,
    )


async def handle_operation(
    db: AsyncSession,
    request: OperationRequest,
    selector: WordSelector | None = None,
    providers: dict[Channel, DeliveryProvider] | None = None,
) -> OperationResponse:
    """Route a validated operation request to its handler."""
    logger.bind(operation=request.operation).info("operation_received")

    result: BaseModel
    if isinstance(request, PlanScheduleRequest):
        result = await _plan_schedule(db, request)
    elif isinstance(request, SelectWordsRequest):
        result = await _select_words(db, request, selector)
    elif isinstance(request, CreateJobsRequest):
        stats = await schedule_today(
            db,
            selector=selector,
            run_date=request.run_date,
            subscriber_ids=request.subscriber_ids,
            dry_run=request.dry_run,
        )
        result = CreateJobsResponse(**stats.as_dict())
    elif isinstance(request, DispatchJobRequest):
        result = await _dispatch(db, request, providers)
    elif isinstance(request, GetHealthRequest):
        result = await get_health_snapshot(db)
    else:
        result = await run_repair(db, request.action, run_date=request.run_date, selector=selector)

    return OperationResponse(operation=request.operation, result=result.model_dump(mode="json"))
