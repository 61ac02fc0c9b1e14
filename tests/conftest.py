# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import pytest

from Rollsmith.metrics import reset_counters
from Rollsmith.rules.dice import evaluate_formula
from Rollsmith.rules.formula import parse_formula
from Rollsmith.rules.types import EvaluatedRoll
from Rollsmith.schemas import Actor, Item


class _ScriptedRandom:
    """Stands in for random.Random: hands out pre-scripted die faces in order."""

    def __init__(self, faces: Iterable[int]):
        self.faces = list(faces)

    def randint(self, low: int, high: int) -> int:
        if not self.faces:
            raise AssertionError("dice script exhausted")
        value = self.faces.pop(0)
        assert low <= value <= high, f"scripted {value} outside 1..{high}"
        return value


class ScriptedSource:
    """RandomSource whose dice show the queued faces, in draw order."""

    def __init__(self, *faces: int):
        self._rng = _ScriptedRandom(faces)
        self.formulas: list[str] = []

    def push(self, *faces: int) -> None:
        self._rng.faces.extend(faces)

    @property
    def remaining(self) -> list[int]:
        return list(self._rng.faces)

    def evaluate(self, formula: str, bindings: Mapping[str, Any] | None = None) -> EvaluatedRoll:
        out = evaluate_formula(self._rng, parse_formula(formula, bindings))  # type: ignore[arg-type]
        self.formulas.append(out.formula)
        return out


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_counters()
    yield
    reset_counters()


@pytest.fixture
def scripted():
    """Factory: ``scripted(20, 5)`` returns a source rolling 20 then 5."""
    return ScriptedSource


@pytest.fixture
def fighter() -> Actor:
    return Actor.model_validate(
        {
            "name": "Brienne",
            "level": 5,
            "prof": 3,
            "abilities": {"str": {"value": 16, "mod": 3}, "dex": {"value": 14, "mod": 2}},
        }
    )


@pytest.fixture
def longsword() -> Item:
    return Item.model_validate(
        {
            "name": "Longsword",
            "type": "weapon",
            "action_type": "mwak",
            "proficient": 1,
            "damage": {"parts": [["1d8 + @mod", "slashing"]], "versatile": "1d10 + @mod"},
            "properties": {"ver": True},
        }
    )
