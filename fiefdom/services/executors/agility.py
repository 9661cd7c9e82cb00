"""
Agility obstacle courses.

A slip still costs energy and grants a quarter of the XP. It is reported as
success=False, failed=True so a queue keeps running, while "could not attempt
at all" (wrong place, level, energy) is success=False without the flag.
"""
import math
import random
from typing import Any, Callable, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from fiefdom.models.player import Player
from fiefdom.services.executors.base import ActionResult, text_param
from fiefdom.services.player_state import Location
from fiefdom.services.skills import award_xp

COURSE_LOCATIONS = ("village", "town", "barony", "duchy")

OBSTACLES = {
    "log_balance": {"name": "Log Balance", "min_level": 1, "energy_cost": 2, "base_xp": 8,
                    "base_success_rate": 95, "location_types": COURSE_LOCATIONS},
    "rope_swing": {"name": "Rope Swing", "min_level": 1, "energy_cost": 2, "base_xp": 10,
                   "base_success_rate": 92, "location_types": COURSE_LOCATIONS},
    "hurdles": {"name": "Hurdles", "min_level": 5, "energy_cost": 3, "base_xp": 15,
                "base_success_rate": 90, "location_types": COURSE_LOCATIONS},
    "stepping_stones": {"name": "Stepping Stones", "min_level": 5, "energy_cost": 3, "base_xp": 18,
                        "base_success_rate": 88, "location_types": COURSE_LOCATIONS},
    "wall_climb": {"name": "Wall Climb", "min_level": 10, "energy_cost": 4, "base_xp": 22,
                   "base_success_rate": 85, "location_types": COURSE_LOCATIONS},
    "legendary_course": {"name": "Legendary Course", "min_level": 90, "energy_cost": 16, "base_xp": 400,
                         "base_success_rate": 40, "is_legendary": True, "location_types": ("duchy",)},
}

FAILURE_XP_SHARE = 0.25


def success_rate(player_level: int, config: Dict[str, Any]) -> float:
    # +0.5% per level above the requirement, at most +20%
    bonus = min(20, (player_level - config["min_level"]) * 0.5)
    rate = config["base_success_rate"] + bonus
    if config.get("is_legendary"):
        return max(5, min(60, rate))
    return max(10, min(98, rate))


class AgilityCourse:
    """Callable executor; the dice roll is injectable for tests."""

    def __init__(self, roll: Callable[[], int] = None):
        self.roll = roll or (lambda: random.randint(1, 100))

    async def __call__(self, db: AsyncSession, player: Player, params: Dict[str, Any], location: Location) -> ActionResult:
        obstacle_id = text_param(params, "obstacle")
        config = OBSTACLES.get(obstacle_id)
        if not config:
            return ActionResult.failure("Invalid obstacle.")

        if location.type not in config["location_types"]:
            return ActionResult.failure("This obstacle is not available at your location.")

        level = player.get_skill_level("agility")
        if level < config["min_level"]:
            return ActionResult.failure(f"You need level {config['min_level']} Agility to attempt this.")

        if not player.consume_energy(config["energy_cost"]):
            return ActionResult.failure(f"Not enough energy. Need {config['energy_cost']} energy.")

        if self.roll() <= success_rate(level, config):
            leveled_up, new_level = award_xp(player, "agility", config["base_xp"])
            await db.flush()
            return ActionResult(
                success=True,
                message=f"You successfully completed the {config['name']}!",
                xp_awarded=config["base_xp"],
                skill="agility",
                leveled_up=leveled_up,
                new_level=new_level,
                energy_remaining=player.energy,
            )

        xp_awarded = int(math.ceil(config["base_xp"] * FAILURE_XP_SHARE))
        award_xp(player, "agility", xp_awarded)
        await db.flush()
        return ActionResult(
            success=False,
            failed=True,
            message=f"You slipped and failed the {config['name']}. Try again!",
            xp_awarded=xp_awarded,
            energy_remaining=player.energy,
        )
