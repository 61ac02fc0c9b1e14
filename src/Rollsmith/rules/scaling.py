"""Level- and slot-based formula scaling."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from Rollsmith.rules.formula import (
    DiceTerm,
    Formula,
    SignedTerm,
    alter,
    format_formula,
    parse_formula,
)


def cantrip_steps(caster_level: int) -> int:
    return max((caster_level + 1) // 6, 0)


def slot_steps(slot_level: int | None, base_level: int) -> int:
    if not slot_level:
        return 0
    return max(int(slot_level) - int(base_level), 0)


def scale(
    base: str,
    scaling: str | None,
    steps: int,
    bindings: Mapping[str, Any] | None = None,
) -> str:
    """Apply ``scaling`` to ``base`` ``steps`` times.

    When the scaled increment is a single dice term matching the base's first
    dice term (faces and modifiers), the counts are merged (``1d10`` scaled by
    ``1d10`` twice gives ``3d10``). Otherwise the increment is appended. An empty
    scaling formula scales by the base formula itself.
    """
    if steps <= 0:
        return base
    increment = alter(parse_formula(scaling or base, bindings), steps)
    parsed = parse_formula(base, bindings)

    if len(increment.terms) == 1 and increment.terms[0].sign > 0:
        inc = increment.terms[0].term
        first = parsed.terms[0]
        if (
            isinstance(inc, DiceTerm)
            and first.sign > 0
            and isinstance(first.term, DiceTerm)
            and first.term.faces == inc.faces
            and first.term.modifiers == inc.modifiers
        ):
            merged = SignedTerm(1, replace(first.term, number=first.term.number + inc.number))
            return format_formula(Formula((merged, *parsed.terms[1:])))

    return f"{format_formula(parsed)} + {format_formula(increment)}"
