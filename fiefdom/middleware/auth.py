from fastapi import Header, HTTPException, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional
from fiefdom.database import get_db
from fiefdom.middleware.correlation import request_player_id_var
from fiefdom.models.player import Player
from fiefdom.utils.logger import logger


async def get_current_player(
    x_api_key: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db)
) -> Player:
    """
    Dependency to get the authenticated player from the X-API-Key header

    Usage:
        @router.post("/endpoint")
        async def protected_endpoint(player: Player = Depends(get_current_player)):
            ...
    """
    if not x_api_key:
        raise HTTPException(
            status_code=401,
            detail="API key required. Provide X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    # O(1) lookup: query by key prefix, then verify with bcrypt
    prefix = Player.get_key_prefix(x_api_key)
    result = await db.execute(
        select(Player).where(Player.api_key_prefix == prefix)
    )
    candidates = result.scalars().all()

    player = None
    for candidate in candidates:
        if candidate.api_key and Player.verify_api_key(x_api_key, candidate.api_key):
            player = candidate
            break

    if not player:
        logger.warning("[Auth] Invalid API key", extra={"error": "invalid_api_key"})
        raise HTTPException(
            status_code=401,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    if not player.is_active:
        raise HTTPException(
            status_code=403,
            detail="Player account is disabled"
        )

    request_player_id_var.set(str(player.id))
    return player
