"""
Background eviction sweep for the job store.
One periodic task instead of a timer per job: every interval, drop terminal jobs older than the
retention window and any job that outlived retention + the server-side job timeout.
"""
import asyncio
import logging

from hopper.jobs.store import JobStore

logger = logging.getLogger(__name__)


def sweep_once(store: JobStore, retention_seconds: float, job_timeout_seconds: float) -> int:
    evicted = store.evict_expired(
        retention_seconds=retention_seconds,
        max_age_seconds=retention_seconds + job_timeout_seconds,
    )
    if evicted:
        logger.info("evicted %d expired jobs", evicted)
    return evicted


async def run_sweeper(
    store: JobStore,
    interval_seconds: float,
    retention_seconds: float,
    job_timeout_seconds: float,
) -> None:
    """Sweep forever until cancelled (app shutdown)."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            sweep_once(store, retention_seconds, job_timeout_seconds)
        except Exception:
            logger.exception("job sweep failed")
