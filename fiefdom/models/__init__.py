# Database models package
from fiefdom.models.player import Player
from fiefdom.models.player_skill import PlayerSkill
from fiefdom.models.inventory_item import InventoryItem
from fiefdom.models.action_queue import ActionQueue
from fiefdom.models.queued_job import QueuedJob

__all__ = [
    "Player",
    "PlayerSkill",
    "InventoryItem",
    "ActionQueue",
    "QueuedJob",
]
