"""Spell casting configuration: cast level, slot availability, template placement."""

from __future__ import annotations

from dataclasses import dataclass

from Rollsmith.interfaces import SlotSelectionDialog
from Rollsmith.logging_utils import log_event, reject
from Rollsmith.metrics import inc_counter
from Rollsmith.results import ErrorCode, RollError
from Rollsmith.schemas import Actor, Item

PACT = "pact"


@dataclass(frozen=True)
class SpellCast:
    level: int
    slot_key: str | None = None
    place_template: bool = False


def slot_key_for(level: int, pact: bool) -> str:
    return PACT if pact else f"spell{level}"


async def configure_spell(
    item: Item, actor: Actor, dialog: SlotSelectionDialog | None
) -> SpellCast | RollError:
    """Ask for a cast level and check the slot it would spend.

    Cantrips (and every cast when no dialog is wired) use the item's own level.
    The slot is only decremented later by ``commit_slot`` once the whole roll
    succeeded.
    """
    if item.level <= 0 or dialog is None:
        return SpellCast(level=item.level)

    selection = await dialog.choose(item)
    if selection is None:
        return reject(
            "spells",
            ErrorCode.SLOT_SELECTION_CANCELLED,
            f"Casting {item.name} was cancelled.",
            item=item.name,
        )

    pact = selection.level == PACT
    if pact:
        pact_slot = actor.spells.get(PACT)
        level = (pact_slot.level if pact_slot else None) or item.level
    else:
        level = int(selection.level)

    slot_key = None
    if selection.consume_slot and level != 0:
        slot_key = slot_key_for(level, pact)
        slot = actor.spells.get(slot_key)
        if slot is None or not slot.value:
            return reject(
                "spells",
                ErrorCode.NO_SLOTS_AVAILABLE,
                f"No {slot_key} slots remaining to cast {item.name}.",
                item=item.name,
                slot=slot_key,
            )

    log_event("spells", "configured", item=item.name, level=level, slot=slot_key)
    return SpellCast(level=level, slot_key=slot_key, place_template=selection.place_template)


def commit_slot(actor: Actor, cast: SpellCast) -> None:
    if cast.slot_key is None:
        return
    slot = actor.spells[cast.slot_key]
    slot.value = max(slot.value - 1, 0)
    inc_counter("spells.slot.consumed")
