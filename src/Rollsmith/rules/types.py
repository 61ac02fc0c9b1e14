from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class DieResult:
    result: int
    active: bool = True
    rerolled: bool = False


@dataclass(frozen=True)
class DiceTermResult:
    faces: int
    number: int
    sign: int
    results: tuple[DieResult, ...]

    @property
    def total(self) -> int:
        return sum(r.result for r in self.results if r.active)

    @property
    def values(self) -> list[int]:
        return [r.result for r in self.results if r.active]


@dataclass(frozen=True)
class EvaluatedRoll:
    formula: str
    total: int
    dice: tuple[DiceTermResult, ...] = ()

    @property
    def has_dice(self) -> bool:
        return len(self.dice) > 0


class CritType(Enum):
    NONE = "none"
    SUCCESS = "success"
    FAILURE = "failure"
    MIXED = "mixed"


@dataclass(frozen=True)
class CritClassification:
    crit_type: CritType
    is_crit: bool
    high: int = 0
    low: int = 0


class Selection(Enum):
    NONE = "none"
    HIGHEST = "highest"
    LOWEST = "lowest"


@dataclass(frozen=True)
class MultiRollEntry:
    roll: EvaluatedRoll
    ignored: bool
    classification: CritClassification | None = None

    @property
    def total(self) -> int:
        return self.roll.total


@dataclass(frozen=True)
class MultiRollOutcome:
    formula: str
    entries: tuple[MultiRollEntry, ...]
    selection: Selection
    crit_type: CritType
    is_crit: bool
    triggers_crit: bool = False
    title: str | None = None

    @property
    def rolls(self) -> list[EvaluatedRoll]:
        return [e.roll for e in self.entries]

    @property
    def chosen(self) -> list[MultiRollEntry]:
        return [e for e in self.entries if not e.ignored]

    @property
    def total(self) -> int:
        """Total of the first chosen evaluation."""
        return self.chosen[0].total
