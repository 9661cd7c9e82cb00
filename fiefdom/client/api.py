"""
HTTP adapter used by the queue controller.

Wraps an httpx.AsyncClient pointed at the game backend. Rejected queue
operations (HTTP 422 with {success: false, message}) are returned as data so
the controller can react to them; any other HTTP or transport failure raises
httpx.HTTPError.
"""
from typing import Any, Dict, Iterable, Optional

import httpx

from fiefdom.services.executors.base import ActionResult


class QueueApi:
    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _post(self, url: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self.client.post(url, json=json)
        if response.status_code == 422:
            body = response.json()
            if isinstance(body, dict) and "success" in body:
                return body
        response.raise_for_status()
        return response.json()

    async def start(self, action_type: str, action_params: Dict[str, Any], total: int) -> Dict[str, Any]:
        return await self._post(
            "/action-queue/start",
            {"action_type": action_type, "action_params": action_params, "total": total},
        )

    async def cancel(self) -> Dict[str, Any]:
        return await self._post("/action-queue/cancel")

    async def dismiss(self, queue_id: int) -> Dict[str, Any]:
        return await self._post("/action-queue/dismiss", {"queue_id": queue_id})

    async def perform(self, action_type: str, params: Dict[str, Any]) -> ActionResult:
        """Run one action immediately (client mode)."""
        data = await self._post(f"/actions/{action_type}", params)
        return ActionResult.from_payload(data)

    async def reload(self, only: Iterable[str]) -> Dict[str, Any]:
        """Fetch the named regions of the shared state."""
        response = await self.client.get("/state", params={"only": ",".join(only)})
        response.raise_for_status()
        return response.json()

    async def snapshot(self) -> Optional[Dict[str, Any]]:
        """The caller's latest undismissed queue, or None."""
        state = await self.reload(["action_queue"])
        return state.get("action_queue")
