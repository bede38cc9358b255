"""Tagged operations endpoint."""

from typing import Annotated

from fastapi import APIRouter, Body, Request

from glintup.core.rate_limit import OPERATIONS_LIMIT, limiter
from glintup.dependencies import DBSession
from glintup.schemas.operations import OperationResponse, OperationVariant
from glintup.services.operations import handle_operation

router = APIRouter()


@router.post("/operations", response_model=OperationResponse)
@limiter.limit(OPERATIONS_LIMIT)
async def run_operation(
    request: Request,
    db: DBSession,
    operation: Annotated[OperationVariant, Body(discriminator="operation")],
) -> OperationResponse:
    """
    Run one scheduling or delivery operation.

    The body's `operation` field selects the variant: plan-schedule,
    select-words, create-jobs, dispatch-job, get-health or run-repair.
    """
    return await handle_operation(db, operation)
