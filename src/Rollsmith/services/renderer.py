from __future__ import annotations

import time

from Rollsmith.metrics import inc_counter, observe_histogram
from Rollsmith.results import (
    CompositeResult,
    DamageField,
    FieldResult,
    MultiRollField,
    SaveDCField,
    TextField,
)
from Rollsmith.rules.types import EvaluatedRoll


def _dice(roll: EvaluatedRoll) -> str:
    faces = []
    for term in roll.dice:
        for die in term.results:
            faces.append(str(die.result) if die.active else f"~{die.result}~")
    return ", ".join(faces)


def _render_field(field: FieldResult) -> list[str]:
    if isinstance(field, MultiRollField):
        out = field.outcome
        head = f"{field.title or field.kind.capitalize()}: {out.formula}"
        if out.crit_type.value != "none":
            head += f" [{out.crit_type.value}]"
        lines = [head]
        for entry in out.entries:
            mark = " (ignored)" if entry.ignored else ""
            lines.append(f"  {entry.total} <- [{_dice(entry.roll)}]{mark}")
        return lines
    if isinstance(field, DamageField):
        label = " - ".join(v for _, v in sorted(field.labels.items()) if v) or field.kind.capitalize()
        line = f"{label}: {field.base.formula} = {field.base.total}"
        if field.crit is not None:
            line += f" + {field.crit.total} ({field.crit_text})"
        return [line]
    if isinstance(field, SaveDCField):
        dc = "??" if field.hidden else str(field.dc)
        return [f"Save DC {dc} {field.ability.upper()}"]
    if isinstance(field, TextField):
        return [field.text]
    return []


def render_text(result: CompositeResult) -> str:
    """Plain-text card for a composite result, one line per roll."""
    start = time.perf_counter()
    title = result.title or result.item_name
    if result.slot_level:
        title += f" (level {result.slot_level})"
    lines = [title + (" - CRITICAL" if result.is_crit else "")]
    for field in result.fields:
        lines.extend(_render_field(field))
    if result.properties:
        lines.append(" | ".join(result.properties))
    if result.item_destroyed:
        lines.append(f"{result.item_name} was used up.")
    inc_counter("renderer.render")
    observe_histogram("renderer.render.ms", int((time.perf_counter() - start) * 1000))
    return "\n".join(lines)
