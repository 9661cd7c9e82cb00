from typing import Tuple

from fiefdom.models.player import Player
from fiefdom.models.player_skill import PlayerSkill


def award_xp(player: Player, skill_name: str, amount: int) -> Tuple[bool, int]:
    """Add XP to a skill, creating it at its starting level if needed.

    Returns (leveled_up, new_level).
    """
    skill = player.get_skill(skill_name)
    if skill is None:
        skill = PlayerSkill.new_for(skill_name)
        player.skills.append(skill)
    leveled_up = skill.add_xp(amount)
    return leveled_up, skill.level
