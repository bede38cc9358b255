from datetime import date

from fastapi import APIRouter, Query

from glintup.dependencies import DBSession
from glintup.schemas.health import RepairAction, RepairResult
from glintup.services.repair import run_repair

router = APIRouter()


@router.post("/repair/{action}", response_model=RepairResult)
async def repair(
    action: RepairAction,
    db: DBSession,
    run_date: date | None = Query(default=None),
) -> RepairResult:
    """Run one repair action: rerun-scheduler, requeue-failed, backfill-settings or purge-unreachable."""
    return await run_repair(db, action, run_date=run_date)
