"""
Action executor registry.

Maps every queueable action type to the executor that performs one unit of it.
Tests and alternate game modes swap executors with ExecutorRegistry.register().
"""
from typing import Dict, Optional

from fiefdom.services.executors.agility import AgilityCourse
from fiefdom.services.executors.base import ActionExecutor, ActionResult, ProducedItem, ProducedResource
from fiefdom.services.executors.gathering import Gathering
from fiefdom.services.executors.recipes import COOKING_RECIPES, CRAFTING_RECIPES, RecipeExecutor
from fiefdom.services.executors.training import train


class ExecutorRegistry:
    def __init__(self):
        self._executors: Dict[str, ActionExecutor] = {}

    def register(self, action_type: str, executor: ActionExecutor) -> None:
        self._executors[action_type] = executor

    def get(self, action_type: str) -> Optional[ActionExecutor]:
        return self._executors.get(action_type)


def build_default_registry() -> ExecutorRegistry:
    registry = ExecutorRegistry()
    registry.register("cook", RecipeExecutor(COOKING_RECIPES))
    registry.register("craft", RecipeExecutor(CRAFTING_RECIPES))
    registry.register("smelt", RecipeExecutor(CRAFTING_RECIPES, categories=("smelting",)))
    registry.register("gather", Gathering())
    registry.register("train", train)
    registry.register("agility", AgilityCourse())
    return registry


registry = build_default_registry()

__all__ = [
    "ActionExecutor",
    "ActionResult",
    "ExecutorRegistry",
    "ProducedItem",
    "ProducedResource",
    "build_default_registry",
    "registry",
]
