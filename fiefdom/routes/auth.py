from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, Field
from fiefdom.database import get_db
from fiefdom.middleware.auth import get_current_player
from fiefdom.middleware.rate_limit import limiter
from fiefdom.models.player import Player

router = APIRouter()


class PlayerCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=64)


@router.post("/register")
@limiter.limit("5/hour")  # Rate limit: 5 registrations per hour per IP
async def register_player(
    request: Request,
    player_data: PlayerCreate,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new player and get an API key

    Returns:
        - API key for authentication (save this securely!)
    """
    result = await db.execute(
        select(Player).where(Player.username == player_data.username)
    )
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Username already taken")

    player = Player.create_player(username=player_data.username)

    # Get plaintext key before it's lost (only available during creation)
    plaintext_api_key = player._plaintext_api_key

    db.add(player)
    await db.commit()

    return {
        "id": player.id,
        "username": player.username,
        "api_key": plaintext_api_key,  # Return plaintext key ONCE (hashed in DB)
        "created_at": player.created_at.isoformat(),
        "warning": "Save this API key - it won't be shown again!"
    }


@router.get("/me")
async def get_current_player_info(player: Player = Depends(get_current_player)):
    """Get current authenticated player info (requires authentication)"""
    return {
        **player.sidebar(),
        "created_at": player.created_at.isoformat() if player.created_at else None,
        "is_active": player.is_active,
    }
