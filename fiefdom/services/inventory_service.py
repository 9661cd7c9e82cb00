"""
Player inventory helpers. Every distinct item occupies one slot; quantities stack.
"""
from typing import Dict, List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from fiefdom.models.inventory_item import InventoryItem
from fiefdom.models.player import Player

MAX_SLOTS = 28


async def _get_stack(db: AsyncSession, player: Player, item_name: str):
    result = await db.execute(
        select(InventoryItem).where(
            InventoryItem.player_id == player.id,
            InventoryItem.item_name == item_name,
        )
    )
    return result.scalar_one_or_none()


async def count_item(db: AsyncSession, player: Player, item_name: str) -> int:
    stack = await _get_stack(db, player, item_name)
    return stack.quantity if stack else 0


async def has_item(db: AsyncSession, player: Player, item_name: str, quantity: int = 1) -> bool:
    return await count_item(db, player, item_name) >= quantity


async def has_room_for(db: AsyncSession, player: Player, item_name: str) -> bool:
    """True if the item can stack onto an existing slot or a slot is free."""
    if await _get_stack(db, player, item_name) is not None:
        return True
    result = await db.execute(
        select(func.count(InventoryItem.id)).where(
            InventoryItem.player_id == player.id,
            InventoryItem.quantity > 0,
        )
    )
    return result.scalar_one() < MAX_SLOTS


async def add_item(db: AsyncSession, player: Player, item_name: str, quantity: int = 1) -> None:
    stack = await _get_stack(db, player, item_name)
    if stack is None:
        db.add(InventoryItem(player_id=player.id, item_name=item_name, quantity=quantity))
    else:
        stack.quantity += quantity
    await db.flush()


async def remove_item(db: AsyncSession, player: Player, item_name: str, quantity: int = 1) -> bool:
    stack = await _get_stack(db, player, item_name)
    if stack is None or stack.quantity < quantity:
        return False
    stack.quantity -= quantity
    if stack.quantity == 0:
        await db.delete(stack)
    await db.flush()
    return True


async def get_inventory(db: AsyncSession, player: Player) -> List[Dict[str, int]]:
    result = await db.execute(
        select(InventoryItem)
        .where(InventoryItem.player_id == player.id, InventoryItem.quantity > 0)
        .order_by(InventoryItem.item_name.asc())
    )
    return [stack.to_dict() for stack in result.scalars().all()]
