"""Mining, fishing and woodcutting."""
import random
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from fiefdom.models.player import Player
from fiefdom.services import inventory_service
from fiefdom.services.executors.base import ActionResult, ProducedResource, text_param
from fiefdom.services.player_state import Location
from fiefdom.services.skills import award_xp

ACTIVITIES = {
    "mining": {
        "skill": "mining",
        "energy_cost": 5,
        "base_xp": 17,
        "location_types": ("village", "town", "barony", "wilderness"),
        "resources": [
            {"name": "Copper Ore", "weight": 60, "min_level": 1, "xp_bonus": 0},
            {"name": "Tin Ore", "weight": 40, "min_level": 1, "xp_bonus": 8},
            {"name": "Iron Ore", "weight": 30, "min_level": 10, "xp_bonus": 23},
            {"name": "Coal", "weight": 25, "min_level": 15, "xp_bonus": 33},
            {"name": "Silver Ore", "weight": 15, "min_level": 25, "xp_bonus": 58},
            {"name": "Gold Ore", "weight": 10, "min_level": 40, "xp_bonus": 108},
        ],
    },
    "fishing": {
        "skill": "fishing",
        "energy_cost": 4,
        "base_xp": 10,
        "location_types": ("village", "town", "wilderness"),
        "resources": [
            {"name": "Raw Shrimp", "weight": 50, "min_level": 1, "xp_bonus": 0},
            {"name": "Raw Sardine", "weight": 40, "min_level": 1, "xp_bonus": 10},
            {"name": "Raw Trout", "weight": 35, "min_level": 10, "xp_bonus": 30},
            {"name": "Raw Salmon", "weight": 25, "min_level": 20, "xp_bonus": 50},
        ],
    },
    "woodcutting": {
        "skill": "woodcutting",
        "energy_cost": 4,
        "base_xp": 12,
        "location_types": ("village", "barony", "wilderness"),
        "resources": [
            {"name": "Wood", "weight": 60, "min_level": 1, "xp_bonus": 0},
            {"name": "Oak Wood", "weight": 35, "min_level": 10, "xp_bonus": 15},
            {"name": "Willow Wood", "weight": 25, "min_level": 20, "xp_bonus": 30},
        ],
    },
}


def available_resources(activity: str, level: int) -> List[Dict[str, Any]]:
    return [r for r in ACTIVITIES[activity]["resources"] if r["min_level"] <= level]


class Gathering:
    def __init__(self, rng: random.Random = None):
        self.rng = rng or random.Random()

    def pick(self, resources: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self.rng.choices(resources, weights=[r["weight"] for r in resources], k=1)[0]

    async def __call__(self, db: AsyncSession, player: Player, params: Dict[str, Any], location: Location) -> ActionResult:
        activity = text_param(params, "activity")
        config = ACTIVITIES.get(activity)
        if not config:
            return ActionResult.failure("Invalid activity.")

        if location.type not in config["location_types"]:
            return ActionResult.failure("You cannot do this activity here.")

        if not player.has_energy(config["energy_cost"]):
            return ActionResult.failure(f"Not enough energy. Need {config['energy_cost']} energy.")

        level = player.get_skill_level(config["skill"])
        resources = available_resources(activity, level)
        if not resources:
            return ActionResult.failure("No resources available at your skill level.")

        requested = text_param(params, "resource")
        if requested:
            matches = [r for r in resources if r["name"] == requested]
            if not matches:
                return ActionResult.failure("Invalid resource or level too low.")
            resource = matches[0]
        else:
            resource = self.pick(resources)

        if not await inventory_service.has_room_for(db, player, resource["name"]):
            return ActionResult.failure("Your inventory is full.")

        player.consume_energy(config["energy_cost"])
        quantity = 1
        await inventory_service.add_item(db, player, resource["name"], quantity)

        xp_awarded = (config["base_xp"] + resource["xp_bonus"]) * quantity
        leveled_up, new_level = award_xp(player, config["skill"], xp_awarded)
        await db.flush()

        return ActionResult(
            success=True,
            message=f"You gathered {resource['name']}!",
            xp_awarded=xp_awarded,
            produced=ProducedResource(name=resource["name"], quantity=quantity),
            skill=config["skill"],
            leveled_up=leveled_up,
            new_level=new_level,
            energy_remaining=player.energy,
        )
