"""Boundary contracts consumed by the roll pipeline."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from Rollsmith.rules.types import EvaluatedRoll

if TYPE_CHECKING:
    from Rollsmith.results import CompositeResult
    from Rollsmith.schemas import Item


@dataclass(frozen=True)
class SlotSelection:
    """Answer from the cast-level dialog. ``level`` may be ``"pact"``."""

    level: int | str
    consume_slot: bool = False
    place_template: bool = False


class RandomSource(Protocol):
    def evaluate(self, formula: str, bindings: Mapping[str, Any] | None = None) -> EvaluatedRoll:
        """Evaluate a formula once with fresh randomness."""


class PresentationRenderer(Protocol):
    async def render(self, result: CompositeResult) -> Any:
        """Turn a composite result into host markup. The pipeline never inspects it."""


class SlotSelectionDialog(Protocol):
    async def choose(self, item: Item) -> SlotSelection | None:
        """Ask for a cast level; ``None`` means the user cancelled."""


class ResourceConsumptionCollaborator(Protocol):
    async def consume(self, item: Item) -> bool:
        """Consume the item's linked resource; ``False`` refuses the roll."""


class TemplatePlacer(Protocol):
    def place(self, item: Item) -> None:
        """Start area-effect placement for the item."""


class DicePresenter(Protocol):
    async def show(self, rolls: Sequence[EvaluatedRoll]) -> None:
        """Receive every evaluated roll of a successful run, once."""
