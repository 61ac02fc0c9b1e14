"""Standalone actor rolls: skill checks, ability checks and saving throws.

These run outside an item pipeline and return the MultiRollOutcome directly.
"""

from __future__ import annotations

from typing import Any

from Rollsmith.config import RollConfig
from Rollsmith.interfaces import RandomSource
from Rollsmith.rules import engine, multiroll
from Rollsmith.rules.types import MultiRollOutcome, Selection
from Rollsmith.schemas import Actor


def _roll_count(config: RollConfig, selection: Selection) -> int:
    count = config.d20_mode
    if selection is not Selection.NONE and count == 1:
        count = 2
    return count


def _has_bonus(value: str) -> bool:
    return bool(value) and value.strip() != "0"


def roll_skill_check(
    source: RandomSource,
    actor: Actor,
    skill: str,
    *,
    adv: int = 0,
    disadv: int = 0,
    config: RollConfig | None = None,
    crit_threshold: int | None = None,
    triggers_crit: bool = False,
) -> MultiRollOutcome:
    config = config or RollConfig()
    data = actor.skills.get(skill)
    parts = ["@mod"]
    bindings: dict[str, Any] = {"mod": data.total if data else 0}
    if _has_bonus(actor.bonuses.skill):
        parts.append("@skillBonus")
        bindings["skillBonus"] = actor.bonuses.skill

    selection = multiroll.selection_from_advantage(adv, disadv)
    return multiroll.resolve(
        source,
        _roll_count(config, selection),
        engine.d20_die(actor),
        parts,
        bindings,
        crit_threshold=crit_threshold,
        selection=selection,
        triggers_crit=triggers_crit,
    )


def roll_ability_check(
    source: RandomSource,
    actor: Actor,
    ability: str,
    *,
    adv: int = 0,
    disadv: int = 0,
    config: RollConfig | None = None,
    crit_threshold: int | None = None,
) -> MultiRollOutcome:
    config = config or RollConfig()
    parts = ["@mod"]
    bindings = actor.roll_data()
    bindings["mod"] = actor.ability_mod(ability)

    # The dedicated ability-check bonus wins over the generic check bonus
    if _has_bonus(actor.bonuses.ability_check):
        parts.append("@checkBonus")
        bindings["checkBonus"] = actor.bonuses.ability_check
    elif _has_bonus(actor.bonuses.check):
        parts.append("@secondCheckBonus")
        bindings["secondCheckBonus"] = actor.bonuses.check

    if actor.flags.jack_of_all_trades:
        parts.append("@halfProf")
        bindings["halfProf"] = actor.prof // 2

    selection = multiroll.selection_from_advantage(adv, disadv)
    return multiroll.resolve(
        source,
        _roll_count(config, selection),
        engine.d20_die(actor),
        parts,
        bindings,
        crit_threshold=crit_threshold,
        selection=selection,
    )


def roll_ability_save(
    source: RandomSource,
    actor: Actor,
    ability: str,
    *,
    adv: int = 0,
    disadv: int = 0,
    config: RollConfig | None = None,
    crit_threshold: int | None = None,
) -> MultiRollOutcome:
    config = config or RollConfig()
    data = actor.abilities[ability]
    mods = [
        str(data.mod) if data.mod else "",
        str(int(data.proficient * actor.prof)),
        actor.bonuses.save,
    ]
    mod = " + ".join(m for m in mods if _has_bonus(m))
    parts = ["@mod"] if mod else []

    selection = multiroll.selection_from_advantage(adv, disadv)
    return multiroll.resolve(
        source,
        _roll_count(config, selection),
        engine.d20_die(actor),
        parts,
        {"mod": mod},
        crit_threshold=crit_threshold,
        selection=selection,
    )
