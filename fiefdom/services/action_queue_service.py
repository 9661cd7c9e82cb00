"""
Action queue lifecycle: start, cancel, dismiss, lookup and stale-queue reaping.

The queue runner (fiefdom.jobs.process_action_queue) is the only writer of
progress fields; this module only creates records and flips their status.
"""
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fiefdom.config import get_settings
from fiefdom.models.action_queue import (
    ACTION_TYPES,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_FAILED,
    ActionQueue,
)
from fiefdom.models.player import Player
from fiefdom.services import job_manager
from fiefdom.utils.logger import logger

PROCESS_JOB_TYPE = "process_action_queue"
ACTION_QUEUE_CHANNEL = "action-queue"

CANCELLED_BY_PLAYER = "Cancelled by player."
TIMED_OUT_REASON = "Queue timed out after inactivity."


class ActionQueueError(Exception):
    """Base class for rejected queue operations. The message is shown to the player."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AlreadyQueued(ActionQueueError):
    def __init__(self):
        super().__init__("You already have an active queue running.")


class UndismissedQueue(ActionQueueError):
    def __init__(self):
        super().__init__("Dismiss your finished queue before starting a new one.")


class InvalidActionType(ActionQueueError):
    def __init__(self, action_type: str):
        super().__init__(f"Invalid action type: {action_type}.")


class NoActiveQueue(ActionQueueError):
    def __init__(self):
        super().__init__("You don't have an active queue.")


class QueueNotFound(ActionQueueError):
    def __init__(self):
        super().__init__("Queue not found.")


class QueueStillActive(ActionQueueError):
    def __init__(self):
        super().__init__("Cancel the queue before dismissing it.")


async def schedule_iteration(db: AsyncSession, queue_id: int, delay_seconds: float = 0) -> str:
    """Schedule one run of the queue runner inside the caller's transaction."""
    settings = get_settings()
    return await job_manager.enqueue_job(
        db,
        PROCESS_JOB_TYPE,
        {"queue_id": queue_id},
        delay_seconds=delay_seconds,
        queue=ACTION_QUEUE_CHANNEL,
        max_attempts=settings.action_queue_max_attempts,
        commit=False,
    )


async def get_active_queue(db: AsyncSession, player_id: int) -> Optional[ActionQueue]:
    result = await db.execute(
        select(ActionQueue)
        .where(
            ActionQueue.player_id == player_id,
            ActionQueue.status == STATUS_ACTIVE,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_latest_queue(db: AsyncSession, player_id: int) -> Optional[ActionQueue]:
    """Most recent queue the player has not dismissed yet, active or finished."""
    result = await db.execute(
        select(ActionQueue)
        .where(
            ActionQueue.player_id == player_id,
            ActionQueue.dismissed_at.is_(None),
        )
        .order_by(ActionQueue.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def start_queue(
    db: AsyncSession,
    player: Player,
    action_type: str,
    action_params: Optional[Dict[str, Any]],
    total: int,
) -> ActionQueue:
    """
    Create an active queue and schedule its first iteration immediately.

    action_params are stored as given; their shape is checked by the executor
    on the first iteration, which fails the queue like any other failed action.
    """
    player_id = player.id
    if action_type not in ACTION_TYPES:
        raise InvalidActionType(action_type)

    latest = await get_latest_queue(db, player_id)
    if latest is not None:
        if latest.is_active():
            raise AlreadyQueued()
        raise UndismissedQueue()

    queue = ActionQueue(
        player_id=player_id,
        action_type=action_type,
        action_params=dict(action_params or {}),
        status=STATUS_ACTIVE,
        total=total,
        completed=0,
        total_xp=0,
        total_quantity=0,
    )
    db.add(queue)
    try:
        # The partial unique index settles concurrent starts
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.info("action_queue.start_rejected", extra={"player_id": player_id, "action_type": action_type})
        raise AlreadyQueued()

    await schedule_iteration(db, queue.id)
    await db.commit()

    logger.info(
        "action_queue.started",
        extra={"queue_id": queue.id, "player_id": player_id, "action_type": action_type, "total": total},
    )
    return queue


async def cancel_queue(db: AsyncSession, player: Player) -> int:
    """
    Flip the player's active queue to cancelled. The runner notices on its next
    scheduled iteration and stops without doing more work.
    """
    queue = await get_active_queue(db, player.id)
    if queue is None:
        raise NoActiveQueue()

    result = await db.execute(
        update(ActionQueue)
        .where(ActionQueue.id == queue.id, ActionQueue.status == STATUS_ACTIVE)
        .values(status=STATUS_CANCELLED, stop_reason=CANCELLED_BY_PLAYER)
    )
    await db.commit()
    if result.rowcount == 0:
        # Finished between the read and the update
        raise NoActiveQueue()

    logger.info("action_queue.cancelled", extra={"queue_id": queue.id, "player_id": player.id})
    return queue.id


async def dismiss_queue(db: AsyncSession, player: Player, queue_id: int) -> ActionQueue:
    """Hide a finished queue from the player's state. Dismissing twice is harmless."""
    result = await db.execute(
        select(ActionQueue)
        .where(
            ActionQueue.id == queue_id,
            ActionQueue.player_id == player.id,
        )
        .execution_options(populate_existing=True)
    )
    queue = result.scalar_one_or_none()
    if queue is None:
        raise QueueNotFound()
    if queue.is_active():
        raise QueueStillActive()

    if queue.dismissed_at is None:
        queue.dismissed_at = datetime.now(timezone.utc)
        await db.commit()
        logger.info("action_queue.dismissed", extra={"queue_id": queue.id, "player_id": player.id})
    return queue


async def cleanup_stale_queues(db: AsyncSession, stale_minutes: Optional[int] = None) -> int:
    """
    Fail active queues that have not advanced for stale_minutes.

    An iteration that crashed or timed out leaves its queue active with no
    successor scheduled; this is what eventually releases it.
    """
    if stale_minutes is None:
        stale_minutes = get_settings().action_queue_stale_minutes
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=stale_minutes)
    result = await db.execute(
        update(ActionQueue)
        .where(
            ActionQueue.status == STATUS_ACTIVE,
            ActionQueue.updated_at < cutoff,
        )
        .values(status=STATUS_FAILED, stop_reason=TIMED_OUT_REASON)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    count = result.rowcount
    if count:
        logger.warning("action_queue.reaped", extra={"count": count})
    return count
