"""Shared test helpers: direct database access and scripted executors."""

from typing import List

from sqlalchemy import select

from fiefdom.database import AsyncSessionLocal
from fiefdom.models import ActionQueue, Player, QueuedJob
from fiefdom.services.executors import ActionResult, ExecutorRegistry


async def create_player(username: str = "aldric", **attrs):
    """Insert a player and return (player, plaintext_api_key)."""
    attrs.setdefault("current_location_type", "village")
    attrs.setdefault("current_location_id", 1)
    async with AsyncSessionLocal() as session:
        player = Player.create_player(username=username, **attrs)
        api_key = player._plaintext_api_key
        session.add(player)
        await session.commit()
        return player, api_key


async def fetch_queue(queue_id: int) -> ActionQueue:
    """Read a queue record in a session of its own (bypasses any identity map)."""
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(ActionQueue).where(ActionQueue.id == queue_id))
        return result.scalar_one()


async def fetch_player(player_id: int) -> Player:
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(Player).where(Player.id == player_id))
        return result.scalar_one()


async def pending_jobs() -> List[QueuedJob]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(QueuedJob).where(QueuedJob.status == "pending").order_by(QueuedJob.run_at)
        )
        return list(result.scalars().all())


async def all_jobs() -> List[QueuedJob]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(QueuedJob).order_by(QueuedJob.created_at))
        return list(result.scalars().all())


class ScriptedExecutor:
    """
    Executor that returns canned results in order, repeating the last one.

    `before` runs against the live player before each result is returned, so
    a test can change world state mid-queue (start traveling, lose energy).
    """

    def __init__(self, *results: ActionResult, before=None):
        self.results = list(results)
        self.before = before
        self.calls = 0

    async def __call__(self, db, player, params, location):
        index = min(self.calls, len(self.results) - 1)
        self.calls += 1
        if self.before:
            self.before(player, self.calls)
        return self.results[index]


class ExplodingExecutor:
    def __init__(self, exc: Exception = None):
        self.exc = exc or RuntimeError("executor blew up")
        self.calls = 0

    async def __call__(self, db, player, params, location):
        self.calls += 1
        raise self.exc


def registry_with(**executors) -> ExecutorRegistry:
    registry = ExecutorRegistry()
    for action_type, executor in executors.items():
        registry.register(action_type, executor)
    return registry
