"""Tests for the concrete action executors and the skill curve."""

import random

import pytest

from fiefdom.models.player_skill import MAX_LEVEL, PlayerSkill
from fiefdom.services import inventory_service
from fiefdom.services.executors import ProducedItem, ProducedResource, build_default_registry
from fiefdom.services.executors.agility import OBSTACLES, AgilityCourse, success_rate
from fiefdom.services.executors.gathering import Gathering
from fiefdom.services.executors.recipes import COOKING_RECIPES, CRAFTING_RECIPES, RecipeExecutor
from fiefdom.services.executors.training import train, xp_for_session
from fiefdom.services.player_state import Location

VILLAGE = Location(type="village", id=1)
WILDERNESS = Location(type="wilderness", id=None)


class TestSkillCurve:
    def test_xp_thresholds(self):
        assert PlayerSkill.xp_for_level(1) == 0
        assert PlayerSkill.xp_for_level(2) == 60
        assert PlayerSkill.xp_for_level(3) == 300
        assert PlayerSkill.xp_for_level(5) == 1800

    def test_level_from_xp(self):
        assert PlayerSkill.level_from_xp(0) == 1
        assert PlayerSkill.level_from_xp(59) == 1
        assert PlayerSkill.level_from_xp(60) == 2
        assert PlayerSkill.level_from_xp(10 ** 9) == MAX_LEVEL

    def test_combat_skills_start_at_five(self):
        assert PlayerSkill.new_for("attack").level == 5
        assert PlayerSkill.new_for("mining").level == 1

    def test_add_xp_reports_level_up(self):
        skill = PlayerSkill.new_for("mining")
        assert skill.add_xp(59) is False
        assert skill.add_xp(1) is True
        assert skill.level == 2


class TestTraining:
    async def test_train_spends_energy_and_awards_xp(self, db, player):
        result = await train(db, player, {"exercise": "strength"}, VILLAGE)

        assert result.success
        assert result.skill == "strength"
        assert result.xp_awarded == 25
        assert result.produced is None
        assert player.energy == 90
        assert player.get_skill("strength").xp == PlayerSkill.xp_for_level(5) + 25

    async def test_wrong_location(self, db, player):
        result = await train(db, player, {"exercise": "attack"}, WILDERNESS)

        assert not result.success
        assert not result.failed
        assert player.energy == 100

    async def test_invalid_exercise(self, db, player):
        result = await train(db, player, {}, VILLAGE)
        assert result.message == "Invalid exercise."

    async def test_out_of_energy(self, db, player):
        player.energy = 5
        result = await train(db, player, {"exercise": "attack"}, VILLAGE)

        assert not result.success
        assert "energy" in result.message

    def test_diminishing_returns(self):
        assert xp_for_session(25, 5) == 25
        assert xp_for_session(25, 25) == 20
        assert xp_for_session(25, 99) == 12


class TestAgility:
    async def test_success(self, db, player):
        course = AgilityCourse(roll=lambda: 1)

        result = await course(db, player, {"obstacle": "log_balance"}, VILLAGE)

        assert result.success
        assert result.xp_awarded == OBSTACLES["log_balance"]["base_xp"]
        assert result.skill == "agility"

    async def test_slip_is_continuation_eligible(self, db, player):
        course = AgilityCourse(roll=lambda: 100)

        result = await course(db, player, {"obstacle": "rope_swing"}, VILLAGE)

        assert result.success is False
        assert result.failed is True
        assert result.xp_awarded == 3  # ceil(10 * 0.25)
        assert result.should_continue("agility")
        assert player.energy == 98

    async def test_cannot_attempt_is_terminal(self, db, player):
        course = AgilityCourse(roll=lambda: 1)

        result = await course(db, player, {"obstacle": "wall_climb"}, VILLAGE)

        assert result.success is False
        assert result.failed is False
        assert not result.should_continue("agility")

    def test_success_rate_bounds(self):
        assert success_rate(1, OBSTACLES["log_balance"]) == 95
        assert success_rate(99, OBSTACLES["log_balance"]) == 98
        assert success_rate(99, OBSTACLES["legendary_course"]) == 44.5


class TestGathering:
    async def test_gather_adds_resource(self, db, player):
        gathering = Gathering(rng=random.Random(7))

        result = await gathering(db, player, {"activity": "mining", "resource": "Copper Ore"}, VILLAGE)

        assert result.success
        assert result.produced == ProducedResource(name="Copper Ore", quantity=1)
        assert await inventory_service.count_item(db, player, "Copper Ore") == 1
        assert result.to_payload()["resource"] == {"name": "Copper Ore", "quantity": 1}

    async def test_resource_above_level(self, db, player):
        result = await Gathering()(db, player, {"activity": "mining", "resource": "Gold Ore"}, VILLAGE)
        assert not result.success

    async def test_random_pick_respects_level(self, db, player):
        gathering = Gathering(rng=random.Random(1))
        for _ in range(5):
            result = await gathering(db, player, {"activity": "fishing"}, VILLAGE)
            assert result.produced.name in {"Raw Shrimp", "Raw Sardine"}

    async def test_full_inventory(self, db, player):
        for i in range(inventory_service.MAX_SLOTS):
            await inventory_service.add_item(db, player, f"Junk {i}")

        result = await Gathering()(db, player, {"activity": "woodcutting", "resource": "Wood"}, VILLAGE)

        assert not result.success
        assert result.message == "Your inventory is full."


class TestRecipes:
    async def test_cook_consumes_and_produces(self, db, player):
        await inventory_service.add_item(db, player, "Raw Shrimp", 2)
        cook = RecipeExecutor(COOKING_RECIPES)

        result = await cook(db, player, {"recipe": "cooked_shrimp"}, VILLAGE)

        assert result.success
        assert result.produced == ProducedItem(name="Cooked Shrimp", quantity=1)
        assert await inventory_service.count_item(db, player, "Raw Shrimp") == 1
        assert await inventory_service.count_item(db, player, "Cooked Shrimp") == 1

    async def test_missing_materials(self, db, player):
        result = await RecipeExecutor(CRAFTING_RECIPES)(db, player, {"recipe": "wooden_arrow"}, VILLAGE)

        assert not result.success
        assert "Wood" in result.message

    async def test_batch_output_quantity(self, db, player):
        await inventory_service.add_item(db, player, "Wood", 1)

        result = await RecipeExecutor(CRAFTING_RECIPES)(db, player, {"recipe": "wooden_arrow"}, VILLAGE)

        assert result.quantity_produced == 15
        assert await inventory_service.has_item(db, player, "Wooden Arrow", 15)

    async def test_smelt_only_accepts_smelting(self, db, player):
        smelt = build_default_registry().get("smelt")

        result = await smelt(db, player, {"recipe": "wooden_arrow"}, VILLAGE)

        assert result.message == "Invalid recipe."

    async def test_level_requirement(self, db, player):
        await inventory_service.add_item(db, player, "Bronze Bar", 1)

        result = await RecipeExecutor(CRAFTING_RECIPES)(db, player, {"recipe": "bronze_sword"}, VILLAGE)

        assert not result.success
        assert "level 4" in result.message


@pytest.mark.parametrize("action_type", ["cook", "craft", "smelt", "gather", "train", "agility"])
def test_every_action_type_has_an_executor(action_type):
    assert build_default_registry().get(action_type) is not None


@pytest.mark.parametrize(
    "action_type,params,message",
    [
        ("craft", {"recipe": []}, "Invalid recipe."),
        ("cook", {"recipe": {"name": "x"}}, "Invalid recipe."),
        ("gather", {"activity": ["mining"]}, "Invalid activity."),
        ("train", {"exercise": {}}, "Invalid exercise."),
        ("agility", {"obstacle": ["log_balance"]}, "Invalid obstacle."),
    ],
)
async def test_malformed_params_are_rejected_by_message(db, player, action_type, params, message):
    result = await build_default_registry().get(action_type)(db, player, params, VILLAGE)

    assert result.success is False
    assert result.message == message


async def test_non_string_resource_falls_back_to_random_pick(db, player):
    result = await Gathering()(db, player, {"activity": "mining", "resource": ["Copper Ore"]}, VILLAGE)

    assert result.success is True
