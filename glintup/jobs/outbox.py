"""
Outbox drain job.

Run with: python -m glintup.jobs.outbox
Options:
  --limit N    Maximum jobs to attempt (default: delivery.batch_size)

Sends every queued job whose send time has arrived. Transient failures
stay queued for the next run; nothing waits in-process.
"""

import argparse
import asyncio

from glintup.core.database import AsyncSessionLocal
from glintup.core.logging import get_logger, setup_logging
from glintup.services.delivery_dispatch import DispatchStats, dispatch_due_jobs

logger = get_logger(__name__)


async def main(limit: int | None = None) -> DispatchStats:
    """Run the dispatch job."""
    setup_logging()

    logger.bind(limit=limit).info("outbox_job_started")

    async with AsyncSessionLocal() as db:
        stats = await dispatch_due_jobs(db, limit=limit)

    print("\nOutbox dispatch")
    print("-" * 40)
    print(f"  Processed: {stats.processed}")
    print(f"  Sent:      {stats.sent}")
    print(f"  Failed:    {stats.failed}")
    print(f"  Retrying:  {stats.retried}")
    print(f"  Skipped:   {stats.skipped}")
    for error in stats.errors:
        print(f"    - {error['job_id']}: {error['error']}")

    return stats


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Send due outbox jobs")
    parser.add_argument("--limit", type=int, default=None, help="Maximum jobs to attempt")
    args = parser.parse_args()
    asyncio.run(main(limit=args.limit))
