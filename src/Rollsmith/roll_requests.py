"""Declarative roll requests.

A run is an ordered list of these; each type has exactly one resolver in the
pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from Rollsmith.schemas import Item

ALL: Literal["all"] = "all"

DamageIndex = int | tuple[int, ...] | Literal["all"]
CritOverride = bool | Literal["never"] | None


@dataclass(frozen=True)
class Attack:
    adv: int | None = None
    disadv: int | None = None
    bonus: str | None = None
    triggers_crit: bool = True
    crit_threshold: int | None = None


@dataclass(frozen=True)
class Check:
    adv: int | None = None
    disadv: int | None = None
    bonus: str | None = None
    triggers_crit: bool = True
    crit_threshold: int | None = None
    title: str | None = None


@dataclass(frozen=True)
class Damage:
    index: DamageIndex = 0
    versatile: bool = False
    # True forces crit dice, "never" suppresses them, None follows the run
    crit: CritOverride = None
    context: str | None = None
    # Set by the expansion pass for ammunition damage lines
    item: Item | None = field(default=None, compare=False)

    def indices(self, item: Item) -> list[int]:
        if self.index == ALL:
            return list(range(len(item.damage.parts)))
        if isinstance(self.index, int):
            return [self.index]
        return list(self.index)


@dataclass(frozen=True)
class SaveDC:
    ability: str | None = None
    dc: int | None = None


@dataclass(frozen=True)
class Other:
    pass


@dataclass(frozen=True)
class Custom:
    title: str | None = None
    formula: str = "1d20"
    rolls: int = 1
    roll_state: Literal["adv", "disadv"] | None = None


@dataclass(frozen=True)
class Text:
    text: str = ""


@dataclass(frozen=True)
class Description:
    pass


@dataclass(frozen=True)
class Flavor:
    text: str | None = None


@dataclass(frozen=True)
class CritExtra:
    index: int | None = None


RollRequest = Attack | Check | Damage | SaveDC | Other | Custom | Text | Description | Flavor | CritExtra

REQUEST_KINDS: dict[type, str] = {
    Attack: "attack",
    Check: "check",
    Damage: "damage",
    SaveDC: "savedc",
    Other: "other",
    Custom: "custom",
    Text: "text",
    Description: "description",
    Flavor: "flavor",
    CritExtra: "crit",
}


def request_kind(request: RollRequest) -> str:
    return REQUEST_KINDS[type(request)]
