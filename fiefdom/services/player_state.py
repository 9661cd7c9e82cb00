"""
Checks against live player state shared by the queue runner and the
single-action endpoints.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fiefdom.models.action_queue import STATUS_CANCELLED
from fiefdom.models.player import Player

TRAVELING_REASON = "You started traveling."
INFIRMARY_REASON = "You were sent to the infirmary."


@dataclass(frozen=True)
class Location:
    type: Optional[str]
    id: Optional[int]


@dataclass(frozen=True)
class Interruption:
    """World state that stops a queued action before it runs."""
    status: str
    reason: str


def check_interruption(player: Player) -> Optional[Interruption]:
    """Return why the player cannot act right now, or None."""
    if player.is_currently_traveling():
        return Interruption(STATUS_CANCELLED, TRAVELING_REASON)
    if player.is_currently_in_infirmary():
        return Interruption(STATUS_CANCELLED, INFIRMARY_REASON)
    return None


def resolve_location(params: Dict[str, Any], player: Player) -> Location:
    """Prefer the location captured with the action, fall back to where the player is now."""
    location_type = params.get("location_type") or player.current_location_type
    location_id = params.get("location_id")
    if location_id is None:
        location_id = player.current_location_id
    try:
        location_id = int(location_id) if location_id is not None else None
    except (TypeError, ValueError):
        location_id = player.current_location_id
    return Location(type=location_type, id=location_id)
