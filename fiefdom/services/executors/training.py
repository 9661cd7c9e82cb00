"""Combat training at a village, town or barony training ground."""
from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from fiefdom.models.player import Player
from fiefdom.services.executors.base import ActionResult, text_param
from fiefdom.services.player_state import Location
from fiefdom.services.skills import award_xp

TRAINING_LOCATIONS = ("village", "town", "barony")

EXERCISES = {
    "attack": {"name": "Combat Drills", "skill": "attack", "energy_cost": 10, "base_xp": 25},
    "strength": {"name": "Heavy Labor", "skill": "strength", "energy_cost": 10, "base_xp": 25},
    "defense": {"name": "Sparring Practice", "skill": "defense", "energy_cost": 10, "base_xp": 25},
}


def xp_for_session(base_xp: int, level: int) -> int:
    # Diminishing returns: -1% per level above 5, never below half
    modifier = max(0.5, 1 - (level - 5) * 0.01)
    return int(round(base_xp * modifier))


async def train(db: AsyncSession, player: Player, params: Dict[str, Any], location: Location) -> ActionResult:
    exercise = text_param(params, "exercise")
    config = EXERCISES.get(exercise)
    if not config:
        return ActionResult.failure("Invalid exercise.")

    if location.type not in TRAINING_LOCATIONS:
        return ActionResult.failure(
            "You cannot train here. Find a training ground in a village, town, or barony."
        )

    if not player.consume_energy(config["energy_cost"]):
        return ActionResult.failure(f"Not enough energy. Need {config['energy_cost']} energy.")

    xp_awarded = xp_for_session(config["base_xp"], player.get_skill_level(config["skill"]))
    leveled_up, new_level = award_xp(player, config["skill"], xp_awarded)
    await db.flush()

    return ActionResult(
        success=True,
        message=f"You completed {config['name']}!",
        xp_awarded=xp_awarded,
        skill=config["skill"],
        leveled_up=leveled_up,
        new_level=new_level,
        energy_remaining=player.energy,
    )
