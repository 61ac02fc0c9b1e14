"""Outputs of a pipeline run: per-request field results, errors, the composite."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from Rollsmith.rules.types import CritClassification, EvaluatedRoll, MultiRollOutcome


class ErrorCode(Enum):
    INSUFFICIENT_USES = "insufficient_uses"
    NOT_RECHARGED = "not_recharged"
    RESOURCE_CONSUMPTION_REFUSED = "resource_consumption_refused"
    SLOT_SELECTION_CANCELLED = "slot_selection_cancelled"
    NO_SLOTS_AVAILABLE = "no_slots_available"


@dataclass(frozen=True)
class RollError:
    """Normalized representation of a terminal run failure."""

    code: ErrorCode
    message: str
    detail: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.detail:
            payload["detail"] = dict(self.detail)
        return payload


@dataclass(frozen=True)
class Failure:
    error: RollError
    ok: bool = False


@dataclass(frozen=True)
class MultiRollField:
    kind: str  # "attack" | "check" | "custom"
    outcome: MultiRollOutcome
    title: str | None = None


@dataclass(frozen=True)
class DamageField:
    kind: str  # "damage" | "other"
    base: EvaluatedRoll
    crit: EvaluatedRoll | None = None
    base_classification: CritClassification | None = None
    crit_classification: CritClassification | None = None
    index: int | None = None
    damage_type: str = ""
    versatile: bool = False
    labels: Mapping[int, str] = field(default_factory=dict)
    crit_text: str = ""
    max_roll: int = 0
    max_crit: int | None = None
    item_name: str = ""

    @property
    def total(self) -> int:
        return self.base.total + (self.crit.total if self.crit else 0)


@dataclass(frozen=True)
class SaveDCField:
    ability: str
    dc: int | None
    hidden: bool = False
    kind: str = "savedc"


@dataclass(frozen=True)
class TextField:
    kind: str  # "text" | "flavor"
    text: str


FieldResult = MultiRollField | DamageField | SaveDCField | TextField


class ConsumptionStatus(Enum):
    SUCCESS = "success"
    DESTROY = "destroy"


@dataclass(frozen=True)
class CompositeResult:
    item_name: str
    actor_name: str
    fields: tuple[FieldResult, ...]
    is_crit: bool
    dice_pool: tuple[EvaluatedRoll, ...] = ()
    properties: tuple[str, ...] | None = None
    slot_level: int | None = None
    title: str | None = None
    consumption: ConsumptionStatus = ConsumptionStatus.SUCCESS
    content: Any = None
    ok: bool = True

    @property
    def item_destroyed(self) -> bool:
        return self.consumption is ConsumptionStatus.DESTROY


RunResult = CompositeResult | Failure
