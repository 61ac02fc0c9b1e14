"""Additive dice formula model.

A formula is a sequence of signed terms. Terms are either dice (``2d6``,
``1d20r<2``, ``2d20kh``) or integer constants. ``@path`` bindings are resolved
against a mapping before parsing.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

_DICE_RE = re.compile(
    r"^(?P<count>\d*)[dD](?P<faces>\d+)(?P<mods>(?:kh\d*|kl\d*|r<?\d+)*)$"
)
_MOD_RE = re.compile(r"kh\d*|kl\d*|r<?\d+")
_BINDING_RE = re.compile(r"@([a-zA-Z_][a-zA-Z0-9_.]*)")
_INT_RE = re.compile(r"^\d+$")


class DiceFormulaError(ValueError):
    pass


@dataclass(frozen=True)
class DiceTerm:
    number: int
    faces: int
    modifiers: tuple[str, ...] = ()

    def formula(self) -> str:
        return f"{self.number}d{self.faces}{''.join(self.modifiers)}"


@dataclass(frozen=True)
class NumericTerm:
    value: int

    def formula(self) -> str:
        return str(self.value)


Term = DiceTerm | NumericTerm


@dataclass(frozen=True)
class SignedTerm:
    sign: int
    term: Term


@dataclass(frozen=True)
class Formula:
    terms: tuple[SignedTerm, ...]

    @property
    def dice(self) -> tuple[DiceTerm, ...]:
        return tuple(t.term for t in self.terms if isinstance(t.term, DiceTerm))

    def __str__(self) -> str:
        return format_formula(self)


def lookup_binding(bindings: Mapping[str, Any], path: str) -> Any:
    """Dotted lookup (``abilities.str.mod``) over nested mappings/objects."""
    cur: Any = bindings
    for part in path.split("."):
        if isinstance(cur, Mapping):
            if part not in cur:
                return None
            cur = cur[part]
        else:
            cur = getattr(cur, part, None)
        if cur is None:
            return None
    return cur


def resolve_bindings(expr: str, bindings: Mapping[str, Any] | None) -> str:
    """Replace ``@path`` references. Unknown or empty bindings become 0."""

    def _sub(m: re.Match[str]) -> str:
        value = lookup_binding(bindings or {}, m.group(1))
        if value is None or value == "":
            return "0"
        if isinstance(value, bool):
            return str(int(value))
        return str(value)

    return _BINDING_RE.sub(_sub, expr)


def _split_terms(expr: str) -> list[tuple[int, str]]:
    out: list[tuple[int, str]] = []
    sign = 1
    buf = ""
    dangling = False
    for ch in expr:
        if ch in "+-":
            if buf.strip():
                out.append((sign, buf.strip()))
                buf = ""
                sign = 1
            if ch == "-":
                sign = -sign
            dangling = True
        else:
            buf += ch
            if not ch.isspace():
                dangling = False
    if buf.strip():
        out.append((sign, buf.strip()))
    elif dangling:
        raise DiceFormulaError(f"Bad dice expression: {expr!r}")
    return out


def _parse_term(raw: str, expr: str) -> Term:
    token = raw.replace(" ", "")
    if _INT_RE.match(token):
        return NumericTerm(int(token))
    m = _DICE_RE.match(token)
    if not m:
        raise DiceFormulaError(f"Bad dice expression: {expr!r}")
    faces = int(m.group("faces"))
    if faces < 1:
        raise DiceFormulaError(f"Bad dice expression: {expr!r}")
    return DiceTerm(
        number=int(m.group("count") or 1),
        faces=faces,
        modifiers=tuple(_MOD_RE.findall(m.group("mods") or "")),
    )


def parse_formula(expr: str, bindings: Mapping[str, Any] | None = None) -> Formula:
    resolved = resolve_bindings(expr, bindings)
    parts = _split_terms(resolved)
    if not parts:
        raise DiceFormulaError(f"Bad dice expression: {expr!r}")
    return Formula(tuple(SignedTerm(sign, _parse_term(raw, expr)) for sign, raw in parts))


def format_formula(formula: Formula) -> str:
    out = ""
    for i, st in enumerate(formula.terms):
        text = st.term.formula()
        if i == 0:
            out = text if st.sign > 0 else f"-{text}"
        else:
            out += f" {'+' if st.sign > 0 else '-'} {text}"
    return out


def join_parts(parts: list[str]) -> str:
    """Join formula parts the way roll parts are concatenated (``a + b``)."""
    return " + ".join(p for p in (str(x).strip() for x in parts) if p)


def alter(formula: Formula, multiply: int, add: int = 0) -> Formula:
    """Scale every dice term: ``number * multiply + add``."""
    terms = []
    for st in formula.terms:
        if isinstance(st.term, DiceTerm):
            st = SignedTerm(
                st.sign, replace(st.term, number=max(st.term.number * multiply + add, 0))
            )
        terms.append(st)
    return Formula(tuple(terms))


def strip_flat_terms(formula: Formula) -> Formula | None:
    """Keep only the dice terms of a formula; ``None`` when nothing is left."""
    terms = tuple(st for st in formula.terms if isinstance(st.term, DiceTerm))
    if not terms:
        return None
    return Formula(terms)


def dice_count(formula: Formula) -> int:
    return sum(t.number for t in formula.dice)
