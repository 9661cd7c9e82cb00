"""Tests for the job worker: dispatch, single-attempt failures, timeouts and maintenance."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from fiefdom import worker
from fiefdom.database import AsyncSessionLocal
from fiefdom.jobs.process_action_queue import UNEXPECTED_ERROR, ProcessActionQueue
from fiefdom.models.action_queue import ActionQueue
from fiefdom.models.queued_job import QueuedJob
from fiefdom.services import action_queue_service, job_manager
from fiefdom.services.action_queue_service import ACTION_QUEUE_CHANNEL, PROCESS_JOB_TYPE
from fiefdom.services.executors import ActionResult
from tests.helpers import ExplodingExecutor, ScriptedExecutor, all_jobs, fetch_queue, registry_with

SUCCESS = ActionResult(success=True, xp_awarded=5)


@pytest.fixture
def use_runner(monkeypatch):
    """Install a runner as the process_action_queue handler for one test."""
    def install(runner):
        monkeypatch.setitem(worker._handlers, PROCESS_JOB_TYPE, runner)
        return runner
    return install


async def drain(limit: int = 50) -> int:
    processed = 0
    while processed < limit and await worker.process_next_job(queue=ACTION_QUEUE_CHANNEL):
        processed += 1
    return processed


class TestDispatch:
    async def test_nothing_due(self):
        assert await worker.process_next_job() is False

    async def test_runs_queue_to_completion(self, db, player, use_runner):
        executor = ScriptedExecutor(SUCCESS)
        use_runner(ProcessActionQueue(executors=registry_with(gather=executor), delay_seconds=0))
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 3)

        processed = await drain()

        stored = await fetch_queue(queue.id)
        assert processed == 3
        assert executor.calls == 3
        assert stored.status == "completed"
        assert stored.total_xp == 15
        assert {job.status for job in await all_jobs()} == {"completed"}

    async def test_successor_waits_for_its_delay(self, db, player, use_runner):
        use_runner(ProcessActionQueue(executors=registry_with(gather=ScriptedExecutor(SUCCESS)), delay_seconds=3))
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 3)

        assert await drain() == 1

        assert (await fetch_queue(queue.id)).completed == 1
        statuses = sorted(job.status for job in await all_jobs())
        assert statuses == ["completed", "pending"]

    async def test_job_lookup_tracks_status(self, db):
        job_id = await job_manager.enqueue_job(db, PROCESS_JOB_TYPE, {"queue_id": 1}, queue=ACTION_QUEUE_CHANNEL)
        assert (await job_manager.get_job(db, job_id)).status == "pending"
        assert await job_manager.count_pending(db, PROCESS_JOB_TYPE) == 1

        await job_manager.complete_job(db, job_id)

        async with AsyncSessionLocal() as session:
            job = await job_manager.get_job(session, job_id)
        assert job.status == "completed"
        assert job.completed_at is not None

    async def test_unknown_job_type_fails(self, db):
        await job_manager.enqueue_job(db, "mystery", {}, queue=ACTION_QUEUE_CHANNEL)

        assert await worker.process_next_job() is True

        (job,) = await all_jobs()
        assert job.status == "failed"
        assert "No handler" in job.error_message


class TestFailures:
    async def test_handler_exception_fails_queue_once(self, db, player, use_runner):
        executor = ExplodingExecutor()
        use_runner(ProcessActionQueue(executors=registry_with(gather=executor), delay_seconds=0))
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 5)

        await drain()

        stored = await fetch_queue(queue.id)
        assert executor.calls == 1
        assert stored.status == "failed"
        assert stored.stop_reason == UNEXPECTED_ERROR
        (job,) = await all_jobs()
        assert job.status == "failed"
        assert job.attempts == 1

    async def test_timeout_fails_queue(self, db, player, use_runner):
        class Slow:
            async def __call__(self, db, player, params, location):
                await asyncio.sleep(5)
                return SUCCESS

        use_runner(ProcessActionQueue(executors=registry_with(gather=Slow()), delay_seconds=0))
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 5)

        assert await worker.process_next_job(timeout=0.05) is True

        stored = await fetch_queue(queue.id)
        assert stored.status == "failed"
        assert stored.stop_reason == UNEXPECTED_ERROR
        (job,) = await all_jobs()
        assert job.status == "failed"
        assert "Timed out" in job.error_message

    async def test_failure_hook_leaves_finished_queue_alone(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 5)
        async with AsyncSessionLocal() as session:
            await session.execute(
                update(ActionQueue).where(ActionQueue.id == queue.id).values(status="cancelled", stop_reason="Cancelled by player.")
            )
            await session.commit()

        job = QueuedJob(id="x", job_type=PROCESS_JOB_TYPE, payload={"queue_id": queue.id})
        async with AsyncSessionLocal() as session:
            await ProcessActionQueue().failed(session, job, RuntimeError("late"))

        stored = await fetch_queue(queue.id)
        assert stored.status == "cancelled"
        assert stored.stop_reason == "Cancelled by player."

    async def test_exhausted_job_is_never_claimed_again(self, db):
        job_id = await job_manager.enqueue_job(db, PROCESS_JOB_TYPE, {"queue_id": 1}, queue=ACTION_QUEUE_CHANNEL)
        async with AsyncSessionLocal() as session:
            await session.execute(update(QueuedJob).where(QueuedJob.id == job_id).values(attempts=1))
            await session.commit()

        async with AsyncSessionLocal() as session:
            assert await job_manager.claim_next_job(session, queue=ACTION_QUEUE_CHANNEL) is None


class TestMaintenance:
    async def test_reaps_stale_queues(self, db, player):
        queue = await action_queue_service.start_queue(db, player, "gather", {}, 5)
        async with AsyncSessionLocal() as session:
            await session.execute(
                update(ActionQueue)
                .where(ActionQueue.id == queue.id)
                .values(updated_at=datetime.now(timezone.utc) - timedelta(minutes=15))
            )
            await session.commit()

        await worker.run_maintenance_once()

        stored = await fetch_queue(queue.id)
        assert stored.status == "failed"
        assert stored.stop_reason == action_queue_service.TIMED_OUT_REASON

    async def test_purges_old_finished_jobs(self, db):
        old_id = await job_manager.enqueue_job(db, PROCESS_JOB_TYPE, {}, queue=ACTION_QUEUE_CHANNEL)
        fresh_id = await job_manager.enqueue_job(db, PROCESS_JOB_TYPE, {}, queue=ACTION_QUEUE_CHANNEL)
        await job_manager.complete_job(db, old_id)
        await job_manager.complete_job(db, fresh_id)
        async with AsyncSessionLocal() as session:
            await session.execute(
                update(QueuedJob)
                .where(QueuedJob.id == old_id)
                .values(created_at=datetime.now(timezone.utc) - timedelta(days=7))
            )
            await session.commit()

        await worker.run_maintenance_once()

        assert [job.id for job in await all_jobs()] == [fresh_id]
