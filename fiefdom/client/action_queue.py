"""
Client-side queue controller.

Gives a UI one view of "is a queue running and how far along is it",
whether the queue is a single immediate action (client mode, count == 1) or
a server-tracked queue (server mode, count > 1 or 0 for "until stopped").

In server mode the controller never counts progress itself. It polls the
shared state snapshot and mirrors whatever the server recorded; the server's
record is the only source of truth for progress and termination.

Only one controller per QueueSession may run a queue at a time. Share one
session between every controller acting for the same player in a process.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

import httpx

from fiefdom.client.api import QueueApi
from fiefdom.client.notifications import LoggingNotifier, Notifier
from fiefdom.services.executors.base import ActionResult
from fiefdom.utils.logger import get_logger

logger = get_logger()

MODE_CLIENT = "client"
MODE_SERVER = "server"

NETWORK_ERROR = "Lost connection to the server."


@dataclass
class QueueStats:
    completed: int = 0
    total: int = 0  # 0 = until stopped
    total_xp: int = 0
    total_quantity: int = 0
    item_name: Optional[str] = None
    last_level_up: Optional[Dict[str, Any]] = None
    cancelled: bool = False
    stop_reason: Optional[str] = None

    @property
    def is_infinite(self) -> bool:
        return self.total == 0

    def record(self, result: ActionResult) -> None:
        """Fold one successful (or continuation-eligible) action into the totals."""
        self.completed += 1
        self.total_xp += result.xp_awarded or 0
        self.total_quantity += result.quantity_produced
        if result.produced is not None:
            self.item_name = result.produced.name
        if result.level_up:
            self.last_level_up = result.level_up

    def mirror(self, snapshot: Dict[str, Any]) -> None:
        self.completed = snapshot.get("completed", 0)
        self.total = snapshot.get("total", 0)
        self.total_xp = snapshot.get("total_xp", 0)
        self.total_quantity = snapshot.get("total_quantity", 0)
        self.item_name = snapshot.get("item_name")
        self.last_level_up = snapshot.get("last_level_up")


class QueueSession:
    """Single-owner lock shared by the controllers of one player."""

    def __init__(self):
        self._owner: Optional[object] = None

    @property
    def owner(self) -> Optional[object]:
        return self._owner

    def acquire(self, owner: object) -> bool:
        if self._owner is not None and self._owner is not owner:
            return False
        self._owner = owner
        return True

    def release(self, owner: object) -> None:
        if self._owner is owner:
            self._owner = None

    def is_locked_for(self, owner: object) -> bool:
        return self._owner is not None and self._owner is not owner


def summarize(stats: QueueStats) -> str:
    """'Completed 12x Copper Ore (+204 XP)' style summary."""
    qty = f"{stats.total_quantity}x " if stats.total_quantity > 0 else ""
    item_part = f"{qty}{stats.item_name}" if stats.item_name else f"{stats.completed} actions"
    return f"Completed {item_part} (+{stats.total_xp:,} XP)"


class ActionQueueController:
    def __init__(
        self,
        api: QueueApi,
        session: QueueSession,
        action_type: str,
        build_params: Callable[[], Dict[str, Any]] = dict,
        on_action_complete: Optional[Callable[[ActionResult], None]] = None,
        on_queue_complete: Optional[Callable[[QueueStats], None]] = None,
        notifier: Optional[Notifier] = None,
        cooldown_ms: int = 3000,
        poll_interval: float = 3.0,
        reload_props: Sequence[str] = ("sidebar",),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api = api
        self.session = session
        self.action_type = action_type
        self.build_params = build_params
        self.on_action_complete = on_action_complete
        self.on_queue_complete = on_queue_complete
        self.notifier = notifier or LoggingNotifier()
        self.cooldown_length_ms = cooldown_ms
        self.poll_interval = poll_interval
        self.reload_props = list(reload_props)
        self.clock = clock

        self.mode: Optional[str] = None
        self.queue_id: Optional[int] = None
        self.stats = QueueStats()
        self._active = False
        self._loading = False
        self._run = 0  # Bumped per run; responses from an older run are dropped
        self._cancel_requested = False
        self._cooldown_started: Optional[float] = None
        self._poll_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def is_queue_active(self) -> bool:
        return self._active

    @property
    def queue_progress(self) -> Dict[str, int]:
        return {"completed": self.stats.completed, "total": self.stats.total}

    @property
    def is_action_loading(self) -> bool:
        return self._loading

    @property
    def cooldown_ms(self) -> int:
        if self._cooldown_started is None:
            return 0
        elapsed_ms = (self.clock() - self._cooldown_started) * 1000
        return max(0, int(self.cooldown_length_ms - elapsed_ms))

    @property
    def is_globally_locked(self) -> bool:
        return self.session.is_locked_for(self)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start_queue(self, count: int) -> bool:
        """
        Start `count` actions (0 = until stopped). Returns False without side
        effects if another controller owns the session or a queue is running.
        """
        if count < 0 or self._active or not self.session.acquire(self):
            return False

        if count != 1:
            self.notifier.request_permission()

        self._run += 1
        self.stats = QueueStats(total=count)
        self.queue_id = None
        self._active = True
        self._cancel_requested = False

        if count == 1:
            self.mode = MODE_CLIENT
            await self._run_single()
        else:
            self.mode = MODE_SERVER
            await self._start_server_queue(count)
        return True

    async def perform_single_action(self) -> bool:
        return await self.start_queue(1)

    async def cancel_queue(self) -> None:
        if not self._active:
            return
        self._cancel_requested = True

        if self.mode == MODE_CLIENT:
            # No server record exists; stopping is purely local
            await self._finish(cancelled=True)
            return

        if self.queue_id is None:
            # Start still in flight; the cancel is sent once the server answers
            return
        await self._send_cancel()

    async def mount(self, snapshot: Optional[Dict[str, Any]]) -> None:
        """
        Pick up where a previous page left off.

        An active record is adopted and polled as if this controller had
        started it. A finished record nobody dismissed is cleaned up quietly.
        """
        if snapshot is None or self._active:
            return
        if not self.session.acquire(self):
            return

        if snapshot.get("status") == "active":
            self.mode = MODE_SERVER
            self._run += 1
            self.queue_id = snapshot["id"]
            self.stats = QueueStats()
            self.stats.mirror(snapshot)
            self._active = True
            self._cancel_requested = False
            self._start_polling()
            logger.info("action_queue.client.resumed", extra={"queue_id": self.queue_id})
            return

        # Lock stays held until the dismissal and refresh both land
        try:
            await self.api.dismiss(snapshot["id"])
            await self.api.reload(self.reload_props)
        except httpx.HTTPError as exc:
            logger.warning("action_queue.client.dismiss_failed", extra={"queue_id": snapshot.get("id"), "error": str(exc)})
        finally:
            self.session.release(self)

    async def apply_snapshot(self, snapshot: Optional[Dict[str, Any]]) -> None:
        """Reconcile local state with the server's view of our queue."""
        if self.mode != MODE_SERVER or not self._active:
            return

        if snapshot is None:
            # Dismissed elsewhere (another tab finished it first)
            await self._finish(cancelled=False, dismiss=False)
            return

        if snapshot.get("id") != self.queue_id:
            return

        self.stats.mirror(snapshot)

        status = snapshot.get("status")
        if status != "active":
            await self._finish(
                cancelled=status == "cancelled",
                stop_reason=snapshot.get("stop_reason"),
            )

    async def unmount(self) -> None:
        """Stop watching. A server-side queue keeps running and is resumed on the next mount."""
        self._stop_polling()
        self._active = False
        self._loading = False
        self.session.release(self)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _send_cancel(self) -> None:
        run = self._run
        try:
            response = await self.api.cancel()
        except httpx.HTTPError as exc:
            logger.warning("action_queue.client.cancel_failed", extra={"queue_id": self.queue_id, "error": str(exc)})
            if run == self._run:
                await self._finish(cancelled=False, stop_reason=NETWORK_ERROR, dismiss=False)
            return
        if not response.get("success"):
            # Already terminal on the server; the next snapshot finalizes it
            logger.info("action_queue.client.cancel_rejected", extra={"queue_id": self.queue_id})

    def _is_current(self, run: int) -> bool:
        return run == self._run and self._active

    async def _run_single(self) -> None:
        run = self._run
        self._loading = True
        try:
            result = await self.api.perform(self.action_type, self.build_params())
        except httpx.HTTPError as exc:
            logger.warning("action_queue.client.action_failed", extra={"action_type": self.action_type, "error": str(exc)})
            if self._is_current(run):
                await self._finish(cancelled=False, stop_reason=NETWORK_ERROR)
            return

        if not self._is_current(run):
            # Cancelled (and maybe restarted) while the request was in flight
            logger.info("action_queue.client.stale_result", extra={"action_type": self.action_type})
            return
        self._loading = False

        if self.on_action_complete:
            self.on_action_complete(result)

        keep_going = result.should_continue(self.action_type)
        if keep_going:
            self.stats.record(result)
        self._cooldown_started = self.clock()

        await self._finish(cancelled=False, stop_reason=None if keep_going else result.message)

    async def _start_server_queue(self, count: int) -> None:
        run = self._run
        self._loading = True
        try:
            response = await self.api.start(self.action_type, self.build_params(), count)
        except httpx.HTTPError as exc:
            logger.warning("action_queue.client.start_failed", extra={"action_type": self.action_type, "error": str(exc)})
            if self._is_current(run):
                await self._finish(cancelled=False, stop_reason=NETWORK_ERROR, dismiss=False)
            return

        if not self._is_current(run):
            # Unmounted mid-start; a server queue that did start is resumed on the next mount
            return
        self._loading = False

        if not response.get("success"):
            await self._finish(cancelled=False, stop_reason=response.get("message"), dismiss=False)
            return

        self.queue_id = response["queue"]["id"]
        self.stats.mirror(response["queue"])
        self._start_polling()
        logger.info("action_queue.client.started", extra={"queue_id": self.queue_id, "total": count})

        if self._cancel_requested:
            await self._send_cancel()

    def _start_polling(self) -> None:
        self._stop_polling()
        self._poll_task = asyncio.create_task(self._poll())

    def _stop_polling(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _poll(self) -> None:
        while self._active and self.mode == MODE_SERVER:
            await asyncio.sleep(self.poll_interval)
            try:
                snapshot = await self.api.snapshot()
            except httpx.HTTPError as exc:
                logger.warning("action_queue.client.poll_failed", extra={"queue_id": self.queue_id, "error": str(exc)})
                await self._finish(cancelled=False, stop_reason=NETWORK_ERROR, dismiss=False)
                return
            await self.apply_snapshot(snapshot)

    async def _finish(self, cancelled: bool, stop_reason: Optional[str] = None, dismiss: bool = True) -> None:
        if not self._active:
            return
        self._active = False
        self._loading = False

        if self.mode == MODE_SERVER and dismiss and self.queue_id is not None:
            try:
                await self.api.dismiss(self.queue_id)
            except httpx.HTTPError as exc:
                logger.warning("action_queue.client.dismiss_failed", extra={"queue_id": self.queue_id, "error": str(exc)})

        self._stop_polling()
        self.session.release(self)

        stats = self.stats
        stats.cancelled = cancelled
        stats.stop_reason = stop_reason

        if stats.total != 1:
            self._notify(stats)

        try:
            await self.api.reload(self.reload_props)
        except httpx.HTTPError as exc:
            logger.warning("action_queue.client.reload_failed", extra={"error": str(exc)})

        logger.info(
            "action_queue.client.finished",
            extra={"queue_id": self.queue_id, "completed": stats.completed, "stop_reason": stop_reason},
        )
        if self.on_queue_complete:
            self.on_queue_complete(stats)

    def _notify(self, stats: QueueStats) -> None:
        if not self.notifier.can_notify():
            return
        summary = summarize(stats)
        player_cancelled = stats.cancelled and self._cancel_requested
        if stats.stop_reason and not player_cancelled:
            self.notifier.notify("Queue stopped", f"{summary}. {stats.stop_reason}")
        elif stats.cancelled:
            self.notifier.notify("Queue cancelled", summary)
        else:
            self.notifier.notify("Queue finished", summary)
