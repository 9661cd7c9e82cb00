"""
Background job worker: polls queued_jobs and dispatches due jobs to handlers.

Can run as:
  1. FastAPI background task (same process, via startup event)
  2. Standalone worker (separate service): python -m fiefdom.worker

Handles:
  - process_action_queue: one iteration of a player's action queue

Every claimed job gets exactly one attempt within a fixed time budget. A
handler that raises or overruns is not retried; if it defines
failed(db, job, exc) that hook is given a fresh session to clean up.
"""
import asyncio
from typing import Callable, Dict, Optional

from fiefdom.config import get_settings
from fiefdom.database import AsyncSessionLocal
from fiefdom.services import action_queue_service, job_manager
from fiefdom.utils import metrics
from fiefdom.utils.logger import logger


# ---------------------------------------------------------------------------
# Job handler registry
# ---------------------------------------------------------------------------
_handlers: Dict[str, Callable] = {}


def register_handler(job_type: str, handler: Callable) -> None:
    """Register an async handler for a job type."""
    _handlers[job_type] = handler


def get_handler(job_type: str) -> Optional[Callable]:
    return _handlers.get(job_type)


# ---------------------------------------------------------------------------
# Job execution
# ---------------------------------------------------------------------------

async def _run_failure_hook(handler: Callable, job, exc: BaseException) -> None:
    on_failure = getattr(handler, "failed", None)
    if on_failure is None:
        return
    try:
        async with AsyncSessionLocal() as db:
            await on_failure(db, job, exc)
    except Exception as hook_exc:
        # Best effort; the stale-queue reaper catches whatever this misses
        logger.error(
            "worker.failure_hook_error",
            extra={"job_id": job.id, "job_type": job.job_type, "error": str(hook_exc)[:500]},
        )


async def process_next_job(queue: Optional[str] = None, timeout: Optional[float] = None) -> bool:
    """Claim and run one due job. Returns False when nothing was due."""
    if timeout is None:
        timeout = get_settings().action_queue_timeout_seconds

    async with AsyncSessionLocal() as db:
        job = await job_manager.claim_next_job(db, queue=queue)
        if job is None:
            return False
        # Detached so a rollback inside the handler leaves its fields readable
        db.expunge(job)

        handler = get_handler(job.job_type)
        if handler is None:
            logger.warning("worker.no_handler", extra={"job_type": job.job_type, "job_id": job.id})
            await job_manager.fail_job(db, job.id, f"No handler registered for job type: {job.job_type}")
            return True

        try:
            await asyncio.wait_for(handler(db, job), timeout=timeout)
        except asyncio.TimeoutError as exc:
            await db.rollback()
            metrics.inc("worker.timeout")
            logger.error("worker.handler_timeout", extra={"job_id": job.id, "job_type": job.job_type})
            await job_manager.fail_job(db, job.id, f"Timed out after {timeout}s")
            await _run_failure_hook(handler, job, exc)
        except Exception as exc:
            await db.rollback()
            metrics.inc("worker.handler_error")
            logger.error(
                "worker.handler_error",
                extra={"job_id": job.id, "job_type": job.job_type, "error": str(exc)[:500]},
                exc_info=True,
            )
            await job_manager.fail_job(db, job.id, str(exc)[:1000])
            await _run_failure_hook(handler, job, exc)
        else:
            await job_manager.complete_job(db, job.id)
        return True


# ---------------------------------------------------------------------------
# Worker loops
# ---------------------------------------------------------------------------

async def worker_loop(
    queue: Optional[str] = None,
    poll_interval: Optional[float] = None,
    max_idle_interval: Optional[float] = None,
) -> None:
    """
    Poll for due jobs and dispatch to registered handlers.

    Uses adaptive polling: starts at poll_interval, backs off to max_idle_interval
    when no jobs are found, resets on job found.
    """
    settings = get_settings()
    poll_interval = poll_interval or settings.worker_poll_interval
    max_idle_interval = max_idle_interval or settings.worker_max_idle_interval

    current_interval = poll_interval
    logger.info("worker.started", extra={"delay_seconds": poll_interval})

    while True:
        try:
            if await process_next_job(queue=queue):
                current_interval = 0  # Drain everything that is due before sleeping
            else:
                current_interval = min(max(current_interval, poll_interval) * 1.5, max_idle_interval)
        except Exception as exc:
            logger.error("worker.poll_error", extra={"error": str(exc)[:500]})
            current_interval = max_idle_interval

        await asyncio.sleep(current_interval)


async def run_maintenance_once() -> None:
    settings = get_settings()
    async with AsyncSessionLocal() as db:
        reaped = await action_queue_service.cleanup_stale_queues(db)
        deleted = await job_manager.cleanup_old_jobs(db, max_age_hours=settings.job_retention_hours)
    if reaped or deleted:
        logger.info("worker.maintenance", extra={"count": reaped + deleted})


async def run_maintenance(interval_seconds: Optional[int] = None) -> None:
    """Periodically fail stale queues and purge old finished jobs."""
    interval_seconds = interval_seconds or get_settings().worker_maintenance_interval_seconds
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_maintenance_once()
        except Exception as exc:
            logger.error("worker.maintenance_error", extra={"error": str(exc)[:200]})


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

def register_default_handlers() -> None:
    """Register built-in job type handlers."""
    # Import lazily to avoid circular imports
    from fiefdom.jobs.process_action_queue import ProcessActionQueue

    register_handler(action_queue_service.PROCESS_JOB_TYPE, ProcessActionQueue())


async def main() -> None:
    """Run worker as standalone process."""
    from fiefdom.database import init_db
    await init_db()

    register_default_handlers()

    await asyncio.gather(
        worker_loop(queue=action_queue_service.ACTION_QUEUE_CHANNEL),
        run_maintenance(),
    )


if __name__ == "__main__":
    asyncio.run(main())
