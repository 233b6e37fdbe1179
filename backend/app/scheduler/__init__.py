"""
In-process APScheduler for housekeeping jobs.

Only started when ENABLE_SCHEDULER is true; tests and one-off scripts leave it off.
"""

from __future__ import annotations

from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.logging import get_logger

from ..config import get_settings
from . import jobs

logger = get_logger("backend.scheduler")

# job id -> (callable, settings attribute holding the interval, description)
JOB_DEFINITIONS = {
    "prune_revocations": (
        jobs.run_revocation_prune,
        "revocation_prune_interval_seconds",
        "Drop expired entries from the revoked-token list",
    ),
}

scheduler = AsyncIOScheduler(timezone="UTC")


def schedule_default_jobs() -> None:
    settings = get_settings()
    for job_id, (func, interval_attr, _) in JOB_DEFINITIONS.items():
        scheduler.add_job(
            func,
            IntervalTrigger(seconds=getattr(settings, interval_attr)),
            id=job_id,
            replace_existing=True,
            misfire_grace_time=600,
            coalesce=True,
        )


def start_scheduler() -> None:
    if scheduler.running:
        return
    schedule_default_jobs()
    scheduler.start()
    logger.info("scheduler_started", jobs=len(scheduler.get_jobs()))


def shutdown_scheduler() -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")


def list_jobs() -> list[dict[str, Any]]:
    """Job summaries for the debug health endpoint."""
    summaries = []
    for job in scheduler.get_jobs():
        # Pending jobs (scheduler not started) have no next_run_time attribute
        next_run = getattr(job, "next_run_time", None)
        definition = JOB_DEFINITIONS.get(job.id)
        summaries.append(
            {
                "id": job.id,
                "next_run_time": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
                "description": definition[2] if definition else None,
            }
        )
    return summaries
