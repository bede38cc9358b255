"""
Daily outbox scheduling job.

Run with: python -m glintup.jobs.schedule_today
Dry run:  python -m glintup.jobs.schedule_today --dry-run

This job:
1. Enumerates active subscribers
2. Skips anyone who already has jobs for the date
3. Plans each subscriber's send times
4. Selects that many unseen words (inventory, generation, fallback)
5. Queues one outbox job per (time, word) pair, committing per subscriber

Safe to run any number of times per day.
"""

import argparse
import asyncio
from datetime import date, datetime

from glintup.core.database import AsyncSessionLocal
from glintup.core.logging import get_logger, setup_logging
from glintup.services.outbox_scheduler import ScheduleStats, schedule_today

logger = get_logger(__name__)


async def main(run_date: date | None = None, dry_run: bool = False) -> ScheduleStats:
    """Run the scheduling job."""
    setup_logging()

    logger.bind(run_date=str(run_date) if run_date else "today", dry_run=dry_run).info(
        "schedule_job_started"
    )

    async with AsyncSessionLocal() as db:
        stats = await schedule_today(db, run_date=run_date, dry_run=dry_run)

    print(f"\nSchedule for {stats.run_date}{' (dry run)' if dry_run else ''}")
    print("-" * 40)
    print(f"  Subscribers processed: {stats.processed}")
    print(f"  Jobs created:          {stats.jobs_created}")
    print(f"  Already scheduled:     {stats.skipped_scheduled}")
    print(f"  Invalid settings:      {stats.skipped_invalid}")
    print(f"  Failed:                {stats.failed}")
    for error in stats.errors:
        print(f"    - {error['subscriber_id']}: {error['error']}")

    return stats


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create today's outbox jobs")
    parser.add_argument(
        "--date",
        type=lambda s: datetime.strptime(s, "%Y-%m-%d").date(),
        default=None,
        help="Slot date (YYYY-MM-DD). Default: today (UTC)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Plan and select words without saving anything",
    )
    args = parser.parse_args()
    asyncio.run(main(run_date=args.date, dry_run=args.dry_run))
