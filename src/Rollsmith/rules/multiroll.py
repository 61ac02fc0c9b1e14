from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from Rollsmith.interfaces import RandomSource
from Rollsmith.rules.crit import classification_from_counts, classify, count_crit_dice
from Rollsmith.rules.formula import join_parts
from Rollsmith.rules.types import (
    EvaluatedRoll,
    MultiRollEntry,
    MultiRollOutcome,
    Selection,
)

log = structlog.get_logger()


CRIT_DIE_FACES = (20,)


def crit_faces(roll: EvaluatedRoll) -> tuple[int, ...]:
    """Crit checks on multi-rolls only count d20s, whatever the formula rolls."""
    return CRIT_DIE_FACES


def selection_from_advantage(adv: int = 0, disadv: int = 0) -> Selection:
    if adv > disadv:
        return Selection.HIGHEST
    if disadv > adv:
        return Selection.LOWEST
    return Selection.NONE


def select_index(totals: Sequence[int], selection: Selection) -> int | None:
    """Index of the chosen total; first occurrence wins ties."""
    if selection is Selection.NONE or not totals:
        return None
    target = max(totals) if selection is Selection.HIGHEST else min(totals)
    return totals.index(target)


def resolve(
    source: RandomSource,
    count: int,
    formula: str,
    extra_terms: Sequence[str] = (),
    bindings: Mapping[str, Any] | None = None,
    *,
    crit_threshold: int | None = None,
    selection: Selection = Selection.NONE,
    triggers_crit: bool = False,
    title: str | None = None,
) -> MultiRollOutcome:
    """Evaluate ``formula + extra_terms`` ``count`` times and apply selection.

    The outcome's crit flags are derived from the dice of the non-ignored
    evaluations only.
    """
    if count < 1:
        raise ValueError("count must be >= 1")
    full = join_parts([formula, *extra_terms])
    rolls: list[EvaluatedRoll] = [source.evaluate(full, bindings) for _ in range(count)]

    faces = crit_faces(rolls[0])
    chosen = select_index([r.total for r in rolls], selection)
    entries = tuple(
        MultiRollEntry(
            roll=r,
            ignored=chosen is not None and i != chosen,
            classification=classify(r, crit_threshold, faces),
        )
        for i, r in enumerate(rolls)
    )
    kept = [e.roll for e in entries if not e.ignored]
    summary = classification_from_counts(*count_crit_dice(kept, crit_threshold, faces))
    out = MultiRollOutcome(
        formula=rolls[0].formula,
        entries=entries,
        selection=selection,
        crit_type=summary.crit_type,
        is_crit=summary.is_crit,
        triggers_crit=triggers_crit,
        title=title,
    )
    log.debug(
        "rules.multiroll.resolved",
        formula=out.formula,
        count=count,
        selection=selection.value,
        totals=[r.total for r in rolls],
        crit_type=out.crit_type.value,
        is_crit=out.is_crit,
    )
    return out
