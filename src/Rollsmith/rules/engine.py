# rules/engine.py

"""Formula assembly for item rolls.

Pure helpers: they look at an item, its owner and the roll config, and return
formula parts, bindings, thresholds and labels. Nothing here draws dice except
``crit_roll``, which evaluates through the supplied random source.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from Rollsmith.config import CritBehavior, RollConfig
from Rollsmith.interfaces import RandomSource
from Rollsmith.rules.dice import maximize
from Rollsmith.rules.formula import alter, format_formula, parse_formula, strip_flat_terms
from Rollsmith.rules.scaling import cantrip_steps, scale, slot_steps
from Rollsmith.rules.types import EvaluatedRoll, Selection
from Rollsmith.schemas import Actor, Item

MAX_CRIT_THRESHOLD = 20

HEALING_TYPES = {"healing": "Healing", "temphp": "Healing (Temporary)"}
DAMAGE_TYPES = {
    "acid",
    "bludgeoning",
    "cold",
    "fire",
    "force",
    "lightning",
    "necrotic",
    "piercing",
    "poison",
    "psychic",
    "radiant",
    "slashing",
    "thunder",
}
ELVEN_ACCURACY_ABILITIES = ("dex", "int", "wis", "cha")


@dataclass
class RollParts:
    """Extra terms appended to the d20 plus the bindings they reference."""

    parts: list[str] = field(default_factory=list)
    bindings: dict[str, Any] = field(default_factory=dict)
    title_suffix: str = ""


def roll_data(actor: Actor, item: Item, slot_level: int | None = None) -> dict[str, Any]:
    data = actor.roll_data()
    item_data = item.model_dump()
    if slot_level is not None:
        item_data["level"] = slot_level
    data["item"] = item_data
    data["prof"] = actor.prof
    return data


def d20_die(actor: Actor) -> str:
    # Halfling luck rerolls natural ones once
    return "1d20r<2" if actor.flags.halfling_lucky else "1d20"


def attack_ability(item: Item, actor: Actor) -> str:
    if item.type == "spell":
        return item.ability or actor.spellcasting
    if item.type == "weapon":
        if item.properties.get("fin") and item.ability in ("str", "dex", ""):
            return "str" if actor.ability_mod("str") >= actor.ability_mod("dex") else "dex"
        if item.ability:
            return item.ability
        return {"mwak": "str", "rwak": "dex"}.get(item.action_type, "")
    return item.ability


def damage_ability(item: Item, actor: Actor, index: int) -> str:
    """Ability whose modifier is bound as ``@mod`` for one damage line."""
    if item.type == "spell":
        return item.ability or actor.spellcasting
    if item.ability:
        return item.ability
    # Weapons and feats only get a derived ability on their first line
    if item.type == "weapon" and index == 0:
        return attack_ability(item, actor)
    return ""


def crit_threshold(item: Item, actor: Actor, explicit: int | None = None) -> int:
    if explicit:
        return explicit
    item_crit = item.flags.crit_threshold or MAX_CRIT_THRESHOLD
    if item.is_weapon_attack:
        actor_crit = actor.flags.weapon_critical_threshold or MAX_CRIT_THRESHOLD
        return min(MAX_CRIT_THRESHOLD, actor_crit, item_crit)
    return min(MAX_CRIT_THRESHOLD, item_crit)


def attack_parts(
    item: Item, actor: Actor, ammo: Item | None = None, bonus: str | None = None
) -> RollParts:
    out = RollParts()
    abl = attack_ability(item, actor)
    if abl:
        out.parts.append("@abl")
        out.bindings["abl"] = actor.ability_mod(abl)

    if item.type in ("spell", "feat") or item.proficient:
        out.parts.append("@prof")
        out.bindings["prof"] = actor.prof

    if item.attack_bonus:
        out.parts.append("@bonus")
        out.bindings["bonus"] = item.attack_bonus

    if ammo is not None and ammo.attack_bonus:
        out.parts.append("@ammo")
        out.bindings["ammo"] = ammo.attack_bonus
        out.title_suffix = f" [{ammo.name}]"

    if bonus:
        out.parts.append(bonus)

    action_bonus = actor.bonuses.actions.get(item.action_type)
    if item.is_attack and action_bonus and action_bonus.attack:
        out.parts.append(f"@{item.action_type}")
        out.bindings[item.action_type] = action_bonus.attack
    return out


def check_parts(item: Item, actor: Actor, bonus: str | None = None) -> RollParts:
    out = RollParts()
    if item.ability:
        mod = actor.ability_mod(item.ability)
        if mod:
            out.parts.append("@mod")
            out.bindings["mod"] = mod
    if item.proficient:
        out.parts.append("@prof")
        out.bindings["prof"] = int(item.proficient * actor.prof)
    if item.bonus:
        out.parts.append("@bonus")
        out.bindings["bonus"] = item.bonus
    if bonus:
        out.parts.append(bonus)
    return out


def attack_roll_count(selection: Selection, d20_mode: int, actor: Actor, ability: str) -> int:
    count = 2 if selection is not Selection.NONE else d20_mode
    if (
        count == 2
        and actor.flags.elven_accuracy
        and ability in ELVEN_ACCURACY_ABILITIES
        and selection is not Selection.LOWEST
    ):
        count = 3
    return count


def damage_formula(
    item: Item,
    actor: Actor,
    index: int,
    versatile: bool,
    slot_level: int | None,
    bindings: Mapping[str, Any] | None = None,
) -> tuple[str, bool]:
    """Return ``(formula, used_versatile)`` for one damage line, scaled and bonused."""
    use_versatile = versatile and bool(item.damage.versatile)
    formula = item.damage.versatile if use_versatile else item.damage.parts[index][0]
    if not formula:
        return "", use_versatile

    if index == 0 and item.type == "spell":
        steps = 0
        if item.scaling.mode == "cantrip":
            steps = cantrip_steps(actor.caster_level)
        elif item.scaling.mode == "level":
            steps = slot_steps(slot_level, item.level)
        if steps:
            if use_versatile:
                formula = scale(item.damage.versatile, item.damage.versatile, steps, bindings)
            else:
                formula = scale(formula, item.scaling.formula, steps, bindings)

    action_bonus = actor.bonuses.actions.get(item.action_type)
    if index == 0 and item.is_attack and action_bonus and action_bonus.damage:
        formula = f"{formula} + {action_bonus.damage}"
    return formula, use_versatile


def damage_type_label(damage_type: str) -> str:
    if damage_type in HEALING_TYPES:
        return HEALING_TYPES[damage_type]
    return damage_type.capitalize()


def place_labels(
    config: RollConfig,
    title: str,
    context: str | None,
    damage_string: str = "",
    *,
    use_damage: bool = True,
) -> dict[int, str]:
    """Distribute title/context/damage-type strings into the three label slots."""
    labels: dict[int, list[str]] = {1: [], 2: [], 3: []}
    title_at = config.damage_title_placement
    context_at = config.damage_context_placement
    damage_at = config.damage_roll_placement

    pushed_title = False
    replaced = config.context_replaces_title and context and title_at == context_at
    if title_at and title and not replaced:
        labels[title_at].append(title)
        pushed_title = True

    if context and context_at:
        if context_at == title_at and pushed_title:
            labels[context_at][0] = f"{labels[context_at][0]} ({context})"
        else:
            labels[context_at].append(context)

    if use_damage and damage_at and damage_string:
        replaced = config.context_replaces_damage and context and damage_at == context_at
        if not replaced:
            labels[damage_at].append(damage_string)

    return {slot: " - ".join(parts) for slot, parts in labels.items()}


def damage_labels(
    config: RollConfig,
    damage_type: str,
    context: str | None,
    versatile: bool,
) -> dict[int, str]:
    # Healing lines carry no "Damage" prefix
    title = "Damage" if damage_type in DAMAGE_TYPES else ""
    damage_string = " ".join(
        s for s in (damage_type_label(damage_type), "(Versatile)" if versatile else "") if s
    )
    return place_labels(config, title, context, damage_string)


def crit_roll(
    source: RandomSource,
    item: Item,
    actor: Actor,
    base: EvaluatedRoll,
    behavior: CritBehavior,
) -> EvaluatedRoll | None:
    """Extra roll a crit adds to ``base``; ``None`` when the base has no dice.

    Flat terms are dropped. Savage attacks add one die per dice term on
    weapons. The maximize variants evaluate the crit dice at their maximum, and
    ``MAXIMIZE_ALL`` also adds the gap between the base's maximum and its total.
    """
    if behavior is CritBehavior.NONE:
        return None
    dice_only = strip_flat_terms(parse_formula(base.formula))
    if dice_only is None:
        return None
    savage = item.type == "weapon" and actor.flags.savage_attacks
    crit_formula = format_formula(alter(dice_only, 1, 1 if savage else 0))

    if behavior is CritBehavior.BONUS_DICE:
        return source.evaluate(crit_formula)
    if behavior is CritBehavior.MAXIMIZE_CRIT_DICE:
        return maximize(crit_formula)
    gap = maximize(base.formula).total - base.total
    return maximize(f"{crit_formula} + {gap}")
