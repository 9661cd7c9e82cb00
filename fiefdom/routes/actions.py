"""
Single-action endpoints (cook, craft, smelt, gather, train, agility).

A client that wants exactly one action calls these directly instead of
starting a queue. The response is the executor result as-is, the same shape
the queue runner consumes.
"""

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict, Optional

from fiefdom.database import get_db
from fiefdom.middleware.auth import get_current_player
from fiefdom.models.action_queue import ACTION_TYPES
from fiefdom.models.player import Player
from fiefdom.services.executors import ActionResult, registry
from fiefdom.services.player_state import check_interruption, resolve_location
from fiefdom.utils import metrics
from fiefdom.utils.logger import get_logger

router = APIRouter()
logger = get_logger()


@router.post("/{action_type}")
async def perform_action(
    action_type: str,
    params: Optional[Dict[str, Any]] = Body(None),
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    executor = registry.get(action_type) if action_type in ACTION_TYPES else None
    if executor is None:
        raise HTTPException(status_code=404, detail=f"Unknown action type: {action_type}")

    params = params or {}
    interruption = check_interruption(player)
    if interruption:
        return ActionResult.failure(interruption.reason).to_payload()

    location = resolve_location(params, player)
    async with metrics.track_duration("executor", action_type):
        result = await executor(db, player, params, location)

    # Slipped agility attempts still earn XP, so commit either way
    await db.commit()

    logger.info(
        "action.performed",
        extra={
            "player_id": player.id,
            "action_type": action_type,
            "status": "success" if result.success else "failed",
        },
    )
    return result.to_payload()
