"""Tests for queue lifecycle operations: start, cancel, dismiss and the stale reaper."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select, update

from fiefdom.database import AsyncSessionLocal
from fiefdom.models.action_queue import ActionQueue
from fiefdom.services import action_queue_service
from fiefdom.services.action_queue_service import (
    AlreadyQueued,
    InvalidActionType,
    NoActiveQueue,
    QueueNotFound,
    QueueStillActive,
    UndismissedQueue,
)
from tests.helpers import create_player, fetch_queue, pending_jobs


async def count_active(player_id: int) -> int:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(func.count()).select_from(ActionQueue).where(
                ActionQueue.player_id == player_id,
                ActionQueue.status == "active",
            )
        )
        return result.scalar_one()


async def finish(queue_id: int, status: str = "completed") -> None:
    async with AsyncSessionLocal() as session:
        await session.execute(update(ActionQueue).where(ActionQueue.id == queue_id).values(status=status))
        await session.commit()


class TestStart:
    async def test_creates_active_record_and_schedules_first_run(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {"activity": "mining"}, 5)

        stored = await fetch_queue(queue.id)
        assert stored.status == "active"
        assert (stored.completed, stored.total, stored.total_xp, stored.total_quantity) == (0, 5, 0, 0)
        assert stored.action_params == {"activity": "mining"}

        jobs = await pending_jobs()
        assert len(jobs) == 1
        assert jobs[0].job_type == action_queue_service.PROCESS_JOB_TYPE
        assert jobs[0].payload == {"queue_id": queue.id}
        assert jobs[0].queue == "action-queue"

    async def test_zero_total_is_infinite(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 0)
        assert queue.is_infinite()

    async def test_invalid_action_type(self, db, player):
        with pytest.raises(InvalidActionType):
            await action_queue_service.start_queue(db, player, "juggle", {}, 5)
        assert await pending_jobs() == []

    async def test_params_are_not_validated_at_start(self, db, player):
        """A bad recipe is the first iteration's problem, not start's."""
        queue = await action_queue_service.start_queue(db, player, "craft", {"recipe": "no_such_thing"}, 5)
        assert queue.is_active()

    async def test_second_start_rejected(self, db, player):
        await action_queue_service.start_queue(db, player, "gather", {}, 5)

        with pytest.raises(AlreadyQueued) as excinfo:
            await action_queue_service.start_queue(db, player, "cook", {}, 5)

        assert excinfo.value.message == "You already have an active queue running."
        assert await count_active(player.id) == 1
        assert len(await pending_jobs()) == 1

    async def test_undismissed_terminal_blocks_start(self, db, player):
        first = await action_queue_service.start_queue(db, player, "gather", {}, 5)
        await finish(first.id)

        with pytest.raises(UndismissedQueue):
            await action_queue_service.start_queue(db, player, "gather", {}, 5)

    async def test_start_after_dismiss(self, db, player):
        first = await action_queue_service.start_queue(db, player, "gather", {}, 5)
        await finish(first.id)
        await action_queue_service.dismiss_queue(db, player, first.id)

        second = await action_queue_service.start_queue(db, player, "cook", {}, 2)
        assert second.id != first.id

    async def test_race_settled_by_unique_index(self, db, player, monkeypatch):
        """Both starts pass the lookup; the database still admits only one."""
        await action_queue_service.start_queue(db, player, "gather", {}, 5)

        async def nothing_yet(db, player_id):
            return None

        monkeypatch.setattr(action_queue_service, "get_latest_queue", nothing_yet)

        async with AsyncSessionLocal() as other:
            from fiefdom.models.player import Player
            same_player = (await other.execute(select(Player).where(Player.id == player.id))).scalar_one()
            with pytest.raises(AlreadyQueued):
                await action_queue_service.start_queue(other, same_player, "cook", {}, 5)

        assert await count_active(player.id) == 1
        assert len(await pending_jobs()) == 1

    async def test_players_are_independent(self, db, player):
        other_player, _ = await create_player("brienne")
        await action_queue_service.start_queue(db, player, "gather", {}, 5)

        async with AsyncSessionLocal() as session:
            from fiefdom.models.player import Player
            loaded = (await session.execute(select(Player).where(Player.id == other_player.id))).scalar_one()
            queue = await action_queue_service.start_queue(session, loaded, "gather", {}, 5)

        assert queue.player_id == other_player.id
        assert await count_active(player.id) == 1
        assert await count_active(other_player.id) == 1


class TestCancel:
    async def test_cancel_marks_cancelled(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 10)

        cancelled_id = await action_queue_service.cancel_queue(db, player)

        stored = await fetch_queue(queue.id)
        assert cancelled_id == queue.id
        assert stored.status == "cancelled"
        assert stored.stop_reason == "Cancelled by player."

    async def test_cancel_without_active_queue(self, db, player):
        with pytest.raises(NoActiveQueue):
            await action_queue_service.cancel_queue(db, player)

    async def test_cancel_after_completion(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 10)
        await finish(queue.id)

        with pytest.raises(NoActiveQueue):
            await action_queue_service.cancel_queue(db, player)
        assert (await fetch_queue(queue.id)).status == "completed"


class TestDismiss:
    async def test_dismiss_hides_latest(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 5)
        await finish(queue.id)

        await action_queue_service.dismiss_queue(db, player, queue.id)

        assert (await fetch_queue(queue.id)).dismissed_at is not None
        assert await action_queue_service.get_latest_queue(db, player.id) is None

    async def test_dismiss_twice_is_harmless(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 5)
        await finish(queue.id, "cancelled")
        await action_queue_service.dismiss_queue(db, player, queue.id)
        first_dismissed_at = (await fetch_queue(queue.id)).dismissed_at

        await action_queue_service.dismiss_queue(db, player, queue.id)

        assert (await fetch_queue(queue.id)).dismissed_at == first_dismissed_at

    async def test_active_queue_cannot_be_dismissed(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 5)

        with pytest.raises(QueueStillActive):
            await action_queue_service.dismiss_queue(db, player, queue.id)
        assert (await fetch_queue(queue.id)).dismissed_at is None

    async def test_other_players_queue_untouched(self, db, player):
        owner, _ = await create_player("brienne")
        async with AsyncSessionLocal() as session:
            theirs = ActionQueue(player_id=owner.id, action_type="gather", action_params={}, status="completed", total=5)
            session.add(theirs)
            await session.commit()
            their_id = theirs.id

        with pytest.raises(QueueNotFound):
            await action_queue_service.dismiss_queue(db, player, their_id)
        assert (await fetch_queue(their_id)).dismissed_at is None

    async def test_unknown_id(self, db, player):
        with pytest.raises(QueueNotFound):
            await action_queue_service.dismiss_queue(db, player, 424242)


class TestLatestQueue:
    async def test_none_when_nothing_started(self, db, player):
        assert await action_queue_service.get_latest_queue(db, player.id) is None

    async def test_returns_finished_undismissed(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 5)
        await finish(queue.id, "failed")

        latest = await action_queue_service.get_latest_queue(db, player.id)

        assert latest.id == queue.id


class TestStaleReaper:
    async def age(self, queue_id: int, minutes: int) -> None:
        async with AsyncSessionLocal() as session:
            await session.execute(
                update(ActionQueue)
                .where(ActionQueue.id == queue_id)
                .values(updated_at=datetime.now(timezone.utc) - timedelta(minutes=minutes))
            )
            await session.commit()

    async def test_stale_queue_fails(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 5)
        await self.age(queue.id, 11)

        reaped = await action_queue_service.cleanup_stale_queues(db)

        stored = await fetch_queue(queue.id)
        assert reaped == 1
        assert stored.status == "failed"
        assert "timed out" in stored.stop_reason

    async def test_recent_queue_left_alone(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 5)
        await self.age(queue.id, 5)

        assert await action_queue_service.cleanup_stale_queues(db) == 0
        assert (await fetch_queue(queue.id)).status == "active"

    async def test_terminal_queue_left_alone(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 5)
        await finish(queue.id)
        await self.age(queue.id, 60)

        assert await action_queue_service.cleanup_stale_queues(db) == 0
        assert (await fetch_queue(queue.id)).status == "completed"
