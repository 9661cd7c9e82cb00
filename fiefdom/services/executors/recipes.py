"""
Recipe-driven production: crafting, smithing (smelting and forging) and cooking.

All three consume materials from the inventory and put an item back, so they
share one executor parameterised by recipe book.
"""
from typing import Any, Dict, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from fiefdom.models.player import Player
from fiefdom.services import inventory_service
from fiefdom.services.executors.base import ActionResult, ProducedItem, text_param
from fiefdom.services.player_state import Location
from fiefdom.services.skills import award_xp

CRAFTING_LOCATIONS = ("village", "town", "barony", "duchy")

CRAFTING_RECIPES = {
    "wooden_arrow": {
        "name": "Wooden Arrow", "category": "crafting", "skill": "crafting",
        "required_level": 1, "xp_reward": 5, "energy_cost": 1,
        "materials": [{"name": "Wood", "quantity": 1}],
        "output": {"name": "Wooden Arrow", "quantity": 15},
    },
    "oak_plank": {
        "name": "Oak Plank", "category": "crafting", "skill": "crafting",
        "required_level": 10, "xp_reward": 15, "energy_cost": 2,
        "materials": [{"name": "Oak Wood", "quantity": 1}],
        "output": {"name": "Oak Plank", "quantity": 2},
    },
    "bronze_bar": {
        "name": "Bronze Bar", "category": "smelting", "skill": "smithing",
        "required_level": 1, "xp_reward": 6, "energy_cost": 2,
        "materials": [{"name": "Copper Ore", "quantity": 1}, {"name": "Tin Ore", "quantity": 1}],
        "output": {"name": "Bronze Bar", "quantity": 1},
    },
    "iron_bar": {
        "name": "Iron Bar", "category": "smelting", "skill": "smithing",
        "required_level": 15, "xp_reward": 12, "energy_cost": 3,
        "materials": [{"name": "Iron Ore", "quantity": 1}, {"name": "Coal", "quantity": 1}],
        "output": {"name": "Iron Bar", "quantity": 1},
    },
    "bronze_sword": {
        "name": "Bronze Sword", "category": "smithing", "skill": "smithing",
        "required_level": 4, "xp_reward": 12, "energy_cost": 3,
        "materials": [{"name": "Bronze Bar", "quantity": 1}],
        "output": {"name": "Bronze Sword", "quantity": 1},
    },
}

COOKING_RECIPES = {
    "cooked_shrimp": {
        "name": "Cooked Shrimp", "category": "cooking", "skill": "cooking",
        "required_level": 1, "xp_reward": 18, "energy_cost": 2,
        "materials": [{"name": "Raw Shrimp", "quantity": 1}],
        "output": {"name": "Cooked Shrimp", "quantity": 1},
    },
    "cooked_trout": {
        "name": "Cooked Trout", "category": "cooking", "skill": "cooking",
        "required_level": 15, "xp_reward": 40, "energy_cost": 2,
        "materials": [{"name": "Raw Trout", "quantity": 1}],
        "output": {"name": "Cooked Trout", "quantity": 1},
    },
}


class RecipeExecutor:
    def __init__(self, recipes: Dict[str, Dict[str, Any]], categories: Iterable[str] = None,
                 locations: Iterable[str] = CRAFTING_LOCATIONS):
        self.recipes = recipes
        self.categories = set(categories) if categories else None
        self.locations = tuple(locations)

    async def __call__(self, db: AsyncSession, player: Player, params: Dict[str, Any], location: Location) -> ActionResult:
        recipe = self.recipes.get(text_param(params, "recipe"))
        if not recipe or (self.categories and recipe["category"] not in self.categories):
            return ActionResult.failure("Invalid recipe.")

        if location.type not in self.locations:
            return ActionResult.failure("You cannot craft here.")

        if player.get_skill_level(recipe["skill"]) < recipe["required_level"]:
            return ActionResult.failure(
                f"You need level {recipe['required_level']} {recipe['skill']} to make this."
            )

        if not player.has_energy(recipe["energy_cost"]):
            return ActionResult.failure(f"Not enough energy. Need {recipe['energy_cost']} energy.")

        for material in recipe["materials"]:
            if not await inventory_service.has_item(db, player, material["name"], material["quantity"]):
                return ActionResult.failure(f"You don't have enough {material['name']}.")

        output = recipe["output"]
        if not await inventory_service.has_room_for(db, player, output["name"]):
            return ActionResult.failure("Your inventory is full.")

        player.consume_energy(recipe["energy_cost"])
        for material in recipe["materials"]:
            await inventory_service.remove_item(db, player, material["name"], material["quantity"])
        await inventory_service.add_item(db, player, output["name"], output["quantity"])

        leveled_up, new_level = award_xp(player, recipe["skill"], recipe["xp_reward"])
        await db.flush()

        return ActionResult(
            success=True,
            message=f"You made {output['quantity']}x {output['name']}!",
            xp_awarded=recipe["xp_reward"],
            produced=ProducedItem(name=output["name"], quantity=output["quantity"]),
            skill=recipe["skill"],
            leveled_up=leveled_up,
            new_level=new_level,
            energy_remaining=player.energy,
        )
