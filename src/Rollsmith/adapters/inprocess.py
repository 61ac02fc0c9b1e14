"""In-process collaborators for the roll pipeline.

Hosts with a UI replace these; the CLI and the tests use them as-is.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from Rollsmith.interfaces import SlotSelection
from Rollsmith.results import CompositeResult
from Rollsmith.rules.types import EvaluatedRoll
from Rollsmith.schemas import Actor, Item
from Rollsmith.services.renderer import render_text

log = structlog.get_logger()


class PlainTextRenderer:
    async def render(self, result: CompositeResult) -> str:
        return render_text(result)


class FixedSlotDialog:
    """Answers every cast-level prompt with the same selection; ``None`` cancels."""

    def __init__(self, selection: SlotSelection | None) -> None:
        self.selection = selection
        self.asked: list[str] = []

    async def choose(self, item: Item) -> SlotSelection | None:
        self.asked.append(item.name)
        return self.selection


class AllowAllConsumer:
    async def consume(self, item: Item) -> bool:
        return True


class ActorResourceConsumer:
    """Consumes linked ammunition from the owning actor's inventory.

    Other consume types (attributes, materials, charges) are the host's
    business and are always allowed here.
    """

    def __init__(self, actor: Actor) -> None:
        self.actor = actor

    async def consume(self, item: Item) -> bool:
        if item.consume.type != "ammo":
            return True
        ammo = self.actor.get_item(item.consume.target)
        amount = item.consume.amount or 1
        if ammo is None or ammo.quantity < amount:
            log.info("adapters.ammo.refused", item=item.name, target=item.consume.target)
            return False
        ammo.quantity -= amount
        return True


class RecordingTemplatePlacer:
    def __init__(self) -> None:
        self.placed: list[str] = []

    def place(self, item: Item) -> None:
        self.placed.append(item.name)


class NullDicePresenter:
    def __init__(self) -> None:
        self.shown: list[tuple[EvaluatedRoll, ...]] = []

    async def show(self, rolls: Sequence[EvaluatedRoll]) -> None:
        self.shown.append(tuple(rolls))
