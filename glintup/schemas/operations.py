"""
Tagged operation requests.

Every operation has its own request model keyed by the literal
`operation` field; the union is resolved by pydantic before any handler
runs, so handlers never inspect which optional fields happen to be set.
"""

from datetime import date
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from glintup.schemas.health import RepairAction


class PlanScheduleRequest(BaseModel):
    """Plan send times, either from explicit inputs or a stored subscriber."""

    operation: Literal["plan-schedule"]
    subscriber_id: UUID | None = None
    words_per_day: int = 3
    mode: Literal["auto", "custom"] = "auto"
    auto_window_start: str = "09:00"
    auto_window_end: str = "21:00"
    custom_times: list[str] = Field(default_factory=list)


class SelectWordsRequest(BaseModel):
    operation: Literal["select-words"]
    subscriber_id: UUID
    count: int | None = Field(default=None, ge=1, le=5)


class CreateJobsRequest(BaseModel):
    operation: Literal["create-jobs"]
    run_date: date | None = None
    subscriber_ids: list[UUID] | None = None
    dry_run: bool = False


class DispatchJobRequest(BaseModel):
    """Dispatch one job by id, or drain every due job when no id is given."""

    operation: Literal["dispatch-job"]
    job_id: UUID | None = None
    limit: int | None = Field(default=None, ge=1)


class GetHealthRequest(BaseModel):
    operation: Literal["get-health"]


class RunRepairRequest(BaseModel):
    operation: Literal["run-repair"]
    action: RepairAction
    run_date: date | None = None


OperationVariant = (
    PlanScheduleRequest
    | SelectWordsRequest
    | CreateJobsRequest
    | DispatchJobRequest
    | GetHealthRequest
    | RunRepairRequest
)

OperationRequest = Annotated[OperationVariant, Field(discriminator="operation")]


class PlanScheduleResponse(BaseModel):
    words_per_day: int
    mode: str
    times: list[str]


class SelectedWordResponse(BaseModel):
    word_ref: str
    word: str
    definition: str
    example: str
    category: str
    source: str
    part_of_speech: str | None = None
    pronunciation: str | None = None
    memory_hook: str | None = None


class SelectWordsResponse(BaseModel):
    subscriber_id: UUID
    source: str
    words: list[SelectedWordResponse]


class CreateJobsResponse(BaseModel):
    run_date: date
    processed: int
    jobs_created: int
    skipped_scheduled: int
    skipped_invalid: int
    failed: int
    errors: list[dict[str, str]] = Field(default_factory=list)


class DispatchResponse(BaseModel):
    processed: int
    sent: int
    failed: int
    retried: int
    skipped: int
    errors: list[dict[str, str]] = Field(default_factory=list)
    job_id: str | None = None
    job_status: str | None = None
    reason: str | None = None


class OperationResponse(BaseModel):
    """Envelope for every operation result."""

    operation: str
    result: dict[str, Any]


class OutboxJobResponse(BaseModel):
    id: UUID
    subscriber_id: UUID
    channel: str
    status: str
    slot_date: date
    slot_time: str
    attempts: int
    error_reason: str | None = None
