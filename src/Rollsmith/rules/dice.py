# rules/dice.py

from __future__ import annotations

import random
from collections.abc import Mapping
from typing import Any

import structlog

from Rollsmith.rules.formula import (
    DiceFormulaError,
    DiceTerm,
    Formula,
    format_formula,
    parse_formula,
)
from Rollsmith.rules.types import DiceTermResult, DieResult, EvaluatedRoll

__all__ = ["DiceFormulaError", "DiceRNG", "evaluate_formula", "maximize"]


def _keep(results: list[DieResult], modifier: str) -> list[DieResult]:
    keep_n = int(modifier[2:] or 1)
    active = [i for i, r in enumerate(results) if r.active]
    reverse = modifier.startswith("kh")
    ranked = sorted(active, key=lambda i: results[i].result, reverse=reverse)
    kept = set(ranked[:keep_n])
    return [
        r if (i in kept or not r.active) else DieResult(r.result, active=False)
        for i, r in enumerate(results)
    ]


def _roll_term(
    rng: random.Random | None, term: DiceTerm, sign: int, maximize: bool
) -> DiceTermResult:
    def draw() -> int:
        if maximize or rng is None:
            return term.faces
        return rng.randint(1, term.faces)

    results: list[DieResult] = []
    for _ in range(term.number):
        value = draw()
        for mod in term.modifiers:
            if not mod.startswith("r"):
                continue
            if mod.startswith("r<"):
                hit = value < int(mod[2:])
            else:
                hit = value == int(mod[1:])
            if hit:
                # Reroll once; the original die stays in the record as inactive.
                results.append(DieResult(value, active=False, rerolled=True))
                value = draw()
        results.append(DieResult(value))

    for mod in term.modifiers:
        if mod.startswith("kh") or mod.startswith("kl"):
            results = _keep(results, mod)

    return DiceTermResult(
        faces=term.faces, number=term.number, sign=sign, results=tuple(results)
    )


def evaluate_formula(
    rng: random.Random | None, formula: Formula, *, maximize: bool = False
) -> EvaluatedRoll:
    """Evaluate a parsed formula. Without an ``rng`` every die shows its maximum."""
    total = 0
    dice: list[DiceTermResult] = []
    for st in formula.terms:
        if isinstance(st.term, DiceTerm):
            res = _roll_term(rng, st.term, st.sign, maximize)
            dice.append(res)
            total += st.sign * res.total
        else:
            total += st.sign * st.term.value
    return EvaluatedRoll(formula=format_formula(formula), total=total, dice=tuple(dice))


class DiceRNG:
    """Default in-process random source.

    Evaluates additive formulas such as ``1d20r<2 + @abl + @prof`` against a
    bindings mapping. Seeded for determinism in tests.
    """

    def __init__(self, seed: int | None = None):
        self._rng = random.Random(seed)
        self._log = structlog.get_logger()

    def evaluate(self, formula: str, bindings: Mapping[str, Any] | None = None) -> EvaluatedRoll:
        self._log.debug("rules.dice.roll.start", expr=formula)
        parsed = parse_formula(formula, bindings)
        out = evaluate_formula(self._rng, parsed)
        self._log.debug("rules.dice.roll.result", formula=out.formula, total=out.total)
        return out


def maximize(formula: str, bindings: Mapping[str, Any] | None = None) -> EvaluatedRoll:
    """Evaluate with every die at its maximum face; draws no randomness."""
    return evaluate_formula(None, parse_formula(formula, bindings), maximize=True)
