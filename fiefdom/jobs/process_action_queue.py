"""
Queue runner: advances one action queue by exactly one action per invocation.

Each invocation reads the queue fresh, performs one action through the
matching executor, records the outcome and, if the queue should keep going,
schedules its own successor after action_queue_delay_seconds. The record is
the only state carried between invocations, so a restart loses at most the
iteration in flight.

Every write is conditioned on status == 'active' in the same statement, so a
cancel that lands mid-iteration wins and no terminal record is touched twice.
"""
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fiefdom.config import get_settings
from fiefdom.models.action_queue import (
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_FAILED,
    ActionQueue,
)
from fiefdom.models.player import Player
from fiefdom.models.queued_job import QueuedJob
from fiefdom.services import action_queue_service
from fiefdom.services.executors import ActionResult, ExecutorRegistry, registry as default_registry
from fiefdom.services.player_state import check_interruption, resolve_location
from fiefdom.utils import metrics
from fiefdom.utils.logger import logger

PLAYER_NOT_FOUND = "Player not found."
DEFAULT_FAILURE = "Action failed."
UNEXPECTED_ERROR = "An unexpected error occurred."


class ProcessActionQueue:
    def __init__(self, executors: ExecutorRegistry = None, delay_seconds: Optional[float] = None):
        self.executors = executors or default_registry
        self.delay_seconds = delay_seconds

    @property
    def delay(self) -> float:
        if self.delay_seconds is not None:
            return self.delay_seconds
        return get_settings().action_queue_delay_seconds

    async def __call__(self, db: AsyncSession, job: QueuedJob) -> None:
        await self.handle(db, int(job.payload["queue_id"]))

    async def handle(self, db: AsyncSession, queue_id: int) -> None:
        result = await db.execute(
            select(ActionQueue)
            .where(ActionQueue.id == queue_id)
            .execution_options(populate_existing=True)
        )
        queue = result.scalar_one_or_none()

        if queue is None or not queue.is_active():
            # Cancelled or dismissed since this run was scheduled
            logger.debug("action_queue.skip_inactive", extra={"queue_id": queue_id})
            return

        result = await db.execute(
            select(Player)
            .where(Player.id == queue.player_id)
            .execution_options(populate_existing=True)
        )
        player = result.scalar_one_or_none()

        if player is None:
            await self._finish(db, queue, STATUS_FAILED, PLAYER_NOT_FOUND)
            return

        interruption = check_interruption(player)
        if interruption:
            await self._finish(db, queue, interruption.status, interruption.reason)
            return

        params: Dict[str, Any] = dict(queue.action_params or {})
        location = resolve_location(params, player)

        executor = self.executors.get(queue.action_type)
        if executor is None:
            outcome = ActionResult.failure("Unknown action type.")
        else:
            async with metrics.track_duration("executor", queue.action_type):
                outcome = await executor(db, player, params, location)

        if not outcome.should_continue(queue.action_type):
            metrics.inc("action_queue.iteration.stopped")
            await self._finish(db, queue, STATUS_FAILED, outcome.message or DEFAULT_FAILURE)
            return

        await self._advance(db, queue, outcome)

    async def _advance(self, db: AsyncSession, queue: ActionQueue, outcome: ActionResult) -> None:
        queue_id = queue.id
        completed = queue.completed + 1
        values = {
            "completed": completed,
            "total_xp": queue.total_xp + (outcome.xp_awarded or 0),
            "total_quantity": queue.total_quantity + outcome.quantity_produced,
        }
        if outcome.produced is not None:
            values["item_name"] = outcome.produced.name
        if outcome.level_up:
            values["last_level_up"] = outcome.level_up

        finished = not queue.is_infinite() and completed >= queue.total
        if finished:
            values["status"] = STATUS_COMPLETED

        result = await db.execute(
            update(ActionQueue)
            .where(ActionQueue.id == queue_id, ActionQueue.status == STATUS_ACTIVE)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # Cancelled while this action ran; keep the action's effects, stop the chain
            await db.commit()
            logger.info("action_queue.superseded", extra={"queue_id": queue_id})
            return

        if not finished:
            await action_queue_service.schedule_iteration(db, queue_id, delay_seconds=self.delay)
        await db.commit()

        metrics.inc("action_queue.iteration.advanced")
        logger.info(
            "action_queue.iteration",
            extra={"queue_id": queue_id, "completed": completed, "total": queue.total},
        )
        if finished:
            logger.info("action_queue.terminal", extra={"queue_id": queue_id, "status": STATUS_COMPLETED})

    async def _finish(self, db: AsyncSession, queue: ActionQueue, status: str, reason: str) -> None:
        await mark_terminal(db, queue.id, status, reason)

    async def failed(self, db: AsyncSession, job: QueuedJob, exc: Optional[BaseException]) -> None:
        """Worker hook for crashed or timed-out runs: fail the queue if it is still active."""
        queue_id = int(job.payload["queue_id"])
        await mark_terminal(db, queue_id, STATUS_FAILED, UNEXPECTED_ERROR)
        logger.error(
            "action_queue.run_failed",
            extra={"queue_id": queue_id, "error": str(exc)[:500] if exc else None},
        )


async def mark_terminal(db: AsyncSession, queue_id: int, status: str, reason: str) -> bool:
    """Move an active queue to a terminal status. Returns False if it already left active."""
    result = await db.execute(
        update(ActionQueue)
        .where(ActionQueue.id == queue_id, ActionQueue.status == STATUS_ACTIVE)
        .values(status=status, stop_reason=reason)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount:
        metrics.inc(f"action_queue.terminal.{status}")
        logger.info("action_queue.terminal", extra={"queue_id": queue_id, "status": status, "stop_reason": reason})
        return True
    return False
