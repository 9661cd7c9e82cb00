"""Action Queue Routes - start, cancel and dismiss a player's repeated action"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from typing import Any, Dict

from fiefdom.config import get_settings
from fiefdom.database import get_db
from fiefdom.middleware.auth import get_current_player
from fiefdom.middleware.correlation import get_correlation_id
from fiefdom.middleware.rate_limit import limiter
from fiefdom.models.player import Player
from fiefdom.services import action_queue_service
from fiefdom.services.action_queue_service import ActionQueueError
from fiefdom.utils.logger import get_logger

router = APIRouter()
logger = get_logger()
settings = get_settings()


class StartQueueRequest(BaseModel):
    action_type: str
    action_params: Dict[str, Any] = Field(default_factory=dict)
    total: int = Field(..., ge=0)  # 0 = repeat until stopped


class DismissQueueRequest(BaseModel):
    queue_id: int


def rejected(exc: ActionQueueError, player_id: int) -> JSONResponse:
    logger.info(
        "action_queue.rejected",
        extra={"player_id": player_id, "error": exc.message, "correlation_id": get_correlation_id()},
    )
    return JSONResponse(status_code=422, content={"success": False, "message": exc.message})


@router.post("/start")
@limiter.limit(settings.queue_start_rate_limit)
async def start_queue(
    request: Request,
    body: StartQueueRequest,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """
    Start a server-tracked queue of repeated actions.

    The first iteration runs as soon as a worker picks it up; progress is
    observed through GET /state.
    """
    player_id = player.id
    try:
        queue = await action_queue_service.start_queue(
            db, player, body.action_type, body.action_params, body.total
        )
    except ActionQueueError as exc:
        return rejected(exc, player_id)

    return {"success": True, "queue": queue.to_snapshot()}


@router.post("/cancel")
async def cancel_queue(
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """Cancel the caller's active queue. The final status shows up in the next snapshot."""
    player_id = player.id
    try:
        queue_id = await action_queue_service.cancel_queue(db, player)
    except ActionQueueError as exc:
        return rejected(exc, player_id)

    return {"success": True, "queue_id": queue_id}


@router.post("/dismiss")
async def dismiss_queue(
    body: DismissQueueRequest,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    player_id = player.id
    try:
        queue = await action_queue_service.dismiss_queue(db, player, body.queue_id)
    except ActionQueueError as exc:
        return rejected(exc, player_id)

    return {"success": True, "queue_id": queue.id}
