"""
The contract every action executor satisfies.

An executor performs one unit of work (one cook, one swing of the pickaxe,
one lap of the course) and reports it as an ActionResult. The same result is
returned by the single-action endpoints and consumed by the queue runner, so
its wire shape is fixed:

    {success, failed?, message, xp_awarded?, item?: {name, quantity},
     resource?: {name, quantity}, leveled_up?, new_level?, skill?}
"""
from typing import Annotated, Any, Dict, Literal, Optional, Protocol, Union

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from fiefdom.models.player import Player
from fiefdom.services.player_state import Location


def text_param(params: Dict[str, Any], key: str) -> Optional[str]:
    """A string action param, or None when missing or of any other type."""
    value = params.get(key)
    return value if isinstance(value, str) else None


class ProducedItem(BaseModel):
    kind: Literal["item"] = "item"
    name: str
    quantity: int = 1


class ProducedResource(BaseModel):
    kind: Literal["resource"] = "resource"
    name: str
    quantity: int = 1


ProducedThing = Annotated[Union[ProducedItem, ProducedResource], Field(discriminator="kind")]


class ActionResult(BaseModel):
    success: bool
    message: str = ""
    failed: bool = False  # Attempted but did not succeed (agility slips)
    xp_awarded: Optional[int] = None
    produced: Optional[ProducedThing] = None
    leveled_up: bool = False
    new_level: Optional[int] = None
    skill: Optional[str] = None
    energy_remaining: Optional[int] = None

    @classmethod
    def failure(cls, message: str) -> "ActionResult":
        return cls(success=False, message=message)

    def should_continue(self, action_type: str) -> bool:
        """Whether this result advances a queue rather than stopping it.

        Agility reports a slipped obstacle as success=False, failed=True; the
        attempt still counts. Any other unsuccessful result is terminal.
        """
        return self.success or (action_type == "agility" and self.failed)

    @property
    def quantity_produced(self) -> int:
        return self.produced.quantity if self.produced else 1

    @property
    def level_up(self) -> Optional[Dict[str, Any]]:
        if self.leveled_up and self.new_level and self.skill:
            return {"skill": self.skill, "level": self.new_level}
        return None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.failed:
            payload["failed"] = True
        if self.xp_awarded is not None:
            payload["xp_awarded"] = self.xp_awarded
        if self.produced is not None:
            payload[self.produced.kind] = {"name": self.produced.name, "quantity": self.produced.quantity}
        if self.leveled_up:
            payload["leveled_up"] = True
        if self.new_level is not None:
            payload["new_level"] = self.new_level
        if self.skill is not None:
            payload["skill"] = self.skill
        if self.energy_remaining is not None:
            payload["energy_remaining"] = self.energy_remaining
        return payload

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ActionResult":
        produced = None
        if data.get("item"):
            produced = ProducedItem(
                name=data["item"]["name"],
                quantity=data["item"].get("quantity", 1),
            )
        elif data.get("resource"):
            produced = ProducedResource(
                name=data["resource"]["name"],
                quantity=data["resource"].get("quantity", data.get("quantity", 1)),
            )
        return cls(
            success=bool(data.get("success")),
            message=data.get("message") or "",
            failed=bool(data.get("failed")),
            xp_awarded=data.get("xp_awarded"),
            produced=produced,
            leveled_up=bool(data.get("leveled_up")),
            new_level=data.get("new_level"),
            skill=data.get("skill"),
            energy_remaining=data.get("energy_remaining"),
        )


class ActionExecutor(Protocol):
    async def __call__(
        self,
        db: AsyncSession,
        player: Player,
        params: Dict[str, Any],
        location: Location,
    ) -> ActionResult:
        ...
