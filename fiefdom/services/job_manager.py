"""
Database-backed delayed job queue.

Every scheduled invocation is a row in queued_jobs; the worker claims rows
whose run_at has passed. Chained jobs (a handler scheduling its own
successor) are the only way work repeats, so nothing sleeps in-process.

Usage:
    job_id = await job_manager.enqueue_job(db, "process_action_queue", {"queue_id": 7}, delay_seconds=3)
    job = await job_manager.claim_next_job(db, queue="action-queue")
    await job_manager.complete_job(db, job.id)
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, and_, func
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any
import uuid

from fiefdom.models.queued_job import QueuedJob
from fiefdom.utils.logger import logger


async def enqueue_job(
    db: AsyncSession,
    job_type: str,
    payload: Optional[Dict[str, Any]] = None,
    delay_seconds: float = 0,
    queue: str = "default",
    max_attempts: int = 1,
    commit: bool = True,
) -> str:
    """
    Schedule a job and return its ID.

    With commit=False the row joins the caller's transaction, so the caller's
    own writes and the scheduled successor become visible together.
    """
    job_id = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    job = QueuedJob(
        id=job_id,
        queue=queue,
        job_type=job_type,
        status="pending",
        payload=payload or {},
        run_at=now + timedelta(seconds=delay_seconds),
        max_attempts=max_attempts,
    )
    db.add(job)
    if commit:
        await db.commit()
    logger.info(
        "job.enqueued",
        extra={"job_id": job_id, "job_type": job_type, "delay_seconds": delay_seconds},
    )
    return job_id


async def get_job(db: AsyncSession, job_id: str) -> Optional[QueuedJob]:
    """Get the raw QueuedJob ORM object"""
    result = await db.execute(select(QueuedJob).where(QueuedJob.id == job_id))
    return result.scalar_one_or_none()


async def claim_next_job(
    db: AsyncSession,
    queue: Optional[str] = None,
) -> Optional[QueuedJob]:
    """
    Atomically claim the oldest due job.
    Uses SELECT ... FOR UPDATE SKIP LOCKED for safe concurrent access.
    """
    now = datetime.now(timezone.utc)
    query = (
        select(QueuedJob)
        .where(
            and_(
                QueuedJob.status == "pending",
                QueuedJob.run_at <= now,
                QueuedJob.attempts < QueuedJob.max_attempts,
            )
        )
        .order_by(QueuedJob.run_at.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
    )

    if queue:
        query = query.where(QueuedJob.queue == queue)

    result = await db.execute(query)
    job = result.scalar_one_or_none()

    if job:
        job.status = "processing"
        job.attempts += 1
        await db.commit()
        logger.info("job.claimed", extra={"job_id": job.id, "job_type": job.job_type, "attempt": job.attempts})

    return job


async def complete_job(db: AsyncSession, job_id: str) -> None:
    """Mark job as completed"""
    now = datetime.now(timezone.utc)
    await db.execute(
        update(QueuedJob)
        .where(QueuedJob.id == job_id)
        .values(status="completed", completed_at=now, updated_at=now)
    )
    await db.commit()


async def fail_job(db: AsyncSession, job_id: str, error: str) -> None:
    """Mark job as failed with error message"""
    now = datetime.now(timezone.utc)
    await db.execute(
        update(QueuedJob)
        .where(QueuedJob.id == job_id)
        .values(status="failed", error_message=error, completed_at=now, updated_at=now)
    )
    await db.commit()
    logger.error("job.failed", extra={"job_id": job_id, "error": error})


async def count_pending(db: AsyncSession, job_type: Optional[str] = None) -> int:
    query = select(func.count()).select_from(QueuedJob).where(QueuedJob.status == "pending")
    if job_type:
        query = query.where(QueuedJob.job_type == job_type)
    result = await db.execute(query)
    return result.scalar_one()


async def cleanup_old_jobs(db: AsyncSession, max_age_hours: int = 72) -> int:
    """Delete completed/failed jobs older than max_age_hours. Returns count deleted."""
    cutoff = datetime.now(timezone.utc) - timedelta(hours=max_age_hours)
    result = await db.execute(
        delete(QueuedJob).where(
            QueuedJob.status.in_(("completed", "failed")),
            QueuedJob.created_at < cutoff,
        )
    )
    await db.commit()
    count = result.rowcount
    if count > 0:
        logger.info("job.cleanup", extra={"count": count})
    return count
