"""Shared page state - the snapshot clients poll while a queue runs"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict, Optional

from fiefdom.database import get_db
from fiefdom.middleware.auth import get_current_player
from fiefdom.models.player import Player
from fiefdom.services import action_queue_service, inventory_service

router = APIRouter()

STATE_REGIONS = ("sidebar", "inventory", "skills", "action_queue")


def _skills(player: Player) -> list:
    return [
        {
            "skill": skill.skill_name,
            "level": skill.level,
            "xp": skill.xp,
            "xp_to_next_level": skill.xp_to_next_level(),
        }
        for skill in sorted(player.skills, key=lambda s: s.skill_name)
    ]


async def _action_queue(db: AsyncSession, player: Player) -> Optional[Dict[str, Any]]:
    queue = await action_queue_service.get_latest_queue(db, player.id)
    return queue.to_snapshot() if queue else None


@router.get("")
async def get_state(
    only: Optional[str] = Query(None, description="Comma-separated regions to return"),
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """
    Return the caller's shared state.

    `only` limits the response to the named regions (sidebar, inventory,
    skills, action_queue); by default every region is returned. The
    action_queue region is the caller's latest undismissed queue or null.
    """
    if only:
        regions = [r.strip() for r in only.split(",") if r.strip()]
        unknown = [r for r in regions if r not in STATE_REGIONS]
        if unknown:
            raise HTTPException(status_code=400, detail=f"Unknown state region(s): {', '.join(unknown)}")
    else:
        regions = list(STATE_REGIONS)

    state: Dict[str, Any] = {}
    if "sidebar" in regions:
        state["sidebar"] = player.sidebar()
    if "inventory" in regions:
        state["inventory"] = await inventory_service.get_inventory(db, player)
    if "skills" in regions:
        state["skills"] = _skills(player)
    if "action_queue" in regions:
        state["action_queue"] = await _action_queue(db, player)
    return state
