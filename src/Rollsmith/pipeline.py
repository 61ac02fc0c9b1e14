"""RequestPipeline: turns an ordered list of roll requests into one composite result.

A run goes through four phases:

1. Preparation: preset expansion, ammunition lookup, spell configuration and
   validation of the consumption counters. Nothing random happens here, so a
   rejected run leaves no trace.
2. Resolution: each request is dispatched, in order, to its resolver. Every
   resolver sees the shared ``RollContext`` and may flip it to critical.
3. Commit: the linked resource, item counters and spell slot are consumed.
4. Presentation: the composite is handed to the renderer, the dice pool to the
   dice presenter, and an exhausted item is removed from its owner.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

import structlog

from Rollsmith.config import CritBehavior, HideDC, RollConfig
from Rollsmith.interfaces import (
    DicePresenter,
    PresentationRenderer,
    RandomSource,
    ResourceConsumptionCollaborator,
    SlotSelectionDialog,
    TemplatePlacer,
)
from Rollsmith.logging_utils import log_event, log_rejection
from Rollsmith.metrics import inc_counter, observe_histogram
from Rollsmith.presets import expand_preset
from Rollsmith.properties import list_properties
from Rollsmith.resolver_registry import InMemoryResolverRegistry, ResolverSpec
from Rollsmith.results import (
    CompositeResult,
    ConsumptionStatus,
    DamageField,
    FieldResult,
    Failure,
    MultiRollField,
    RollError,
    RunResult,
    SaveDCField,
    TextField,
)
from Rollsmith.roll_requests import (
    ALL,
    REQUEST_KINDS,
    Attack,
    Check,
    CritExtra,
    Custom,
    Damage,
    Description,
    Flavor,
    Other,
    RollRequest,
    SaveDC,
    Text,
    request_kind,
)
from Rollsmith.rules import engine, multiroll
from Rollsmith.rules.crit import classify
from Rollsmith.rules.dice import maximize
from Rollsmith.rules.types import EvaluatedRoll, Selection
from Rollsmith.schemas import Actor, Item
from Rollsmith.services.ledger import ConsumptionRequest, ResourceLedger
from Rollsmith.services.spells import SpellCast, commit_slot, configure_spell

log = structlog.get_logger()

_ROLL_STATES = {None: Selection.NONE, "adv": Selection.HIGHEST, "disadv": Selection.LOWEST}


@dataclass(frozen=True)
class RollParams:
    """Per-run knobs supplied by the caller."""

    adv: int = 0
    disadv: int = 0
    force_crit: bool = False
    slot_level: int | None = None
    use_charge: ConsumptionRequest = field(default_factory=ConsumptionRequest)
    use_template: bool = False
    versatile: bool = False
    crit_behavior: CritBehavior | None = None
    preset: int | None = None
    title: str | None = None
    properties: bool = True


@dataclass
class RollContext:
    """Mutable state shared by the resolvers of one run."""

    item: Item
    actor: Actor
    config: RollConfig
    params: RollParams
    slot_level: int | None = None
    is_crit: bool = False
    has_attack: bool = False
    has_damage: bool = False
    dice_pool: list[EvaluatedRoll] = field(default_factory=list)
    ammo: Item | None = None

    def __post_init__(self) -> None:
        if self.params.force_crit:
            self.is_crit = True

    def mark_crit(self) -> None:
        if not self.is_crit:
            inc_counter("pipeline.crit")
        self.is_crit = True

    @property
    def crit_behavior(self) -> CritBehavior:
        return self.params.crit_behavior or self.config.crit_behavior

    def bindings(self, item: Item | None = None) -> dict[str, Any]:
        return engine.roll_data(self.actor, item or self.item, self.slot_level)

    def pool(self, rolls: Iterable[EvaluatedRoll | None]) -> None:
        self.dice_pool.extend(r for r in rolls if r is not None)


def expand_requests(requests: Sequence[RollRequest], ammo: Item | None) -> list[RollRequest]:
    """Insert the ammunition damage right after the first damage request."""
    out: list[RollRequest] = []
    pending = ammo
    for req in requests:
        out.append(req)
        if pending is not None and isinstance(req, Damage) and req.item is None:
            out.append(
                Damage(
                    index=ALL,
                    versatile=False,
                    crit=req.crit,
                    context=f"[{pending.name}]",
                    item=pending,
                )
            )
            pending = None
    return out


class RequestPipeline:
    def __init__(
        self,
        source: RandomSource,
        *,
        config: RollConfig | None = None,
        renderer: PresentationRenderer | None = None,
        slot_dialog: SlotSelectionDialog | None = None,
        consumer: ResourceConsumptionCollaborator | None = None,
        template_placer: TemplatePlacer | None = None,
        dice_presenter: DicePresenter | None = None,
    ) -> None:
        self.source = source
        self.config = config or RollConfig()
        self.renderer = renderer
        self.slot_dialog = slot_dialog
        self.template_placer = template_placer
        self.dice_presenter = dice_presenter
        self.ledger = ResourceLedger(consumer)
        self.registry = InMemoryResolverRegistry()
        self._register_builtin_resolvers()

    def _register_builtin_resolvers(self) -> None:
        handlers = {
            Attack: self._resolve_attack,
            Check: self._resolve_check,
            Damage: self._resolve_damage,
            SaveDC: self._resolve_save_dc,
            Other: self._resolve_other,
            Custom: self._resolve_custom,
            Text: self._resolve_text,
            Description: self._resolve_description,
            Flavor: self._resolve_flavor,
            CritExtra: self._resolve_crit_extra,
        }
        for request_type, handler in handlers.items():
            self.registry.register(
                ResolverSpec(
                    kind=REQUEST_KINDS[request_type],
                    request_type=request_type,
                    handler=handler,
                )
            )

    async def run(
        self,
        requests: Sequence[RollRequest],
        item: Item,
        config: RollConfig | None = None,
        *,
        actor: Actor | None = None,
        params: RollParams | None = None,
    ) -> RunResult:
        start = time.monotonic()
        actor = actor if actor is not None else Actor()
        params = params or RollParams()
        requests = list(requests)

        if params.preset is not None:
            preset = expand_preset(item, params.preset)
            requests = preset.requests + requests
            params = replace(
                params,
                properties=preset.properties,
                use_charge=preset.use_charge,
                use_template=preset.use_template,
            )

        ctx = RollContext(item=item, actor=actor, config=config or self.config, params=params)
        log_event(
            "pipeline",
            "initiated",
            item=item.name,
            actor=actor.name,
            requests=[request_kind(r) for r in requests],
        )

        prepared = await self._prepare(ctx)
        if isinstance(prepared, RollError):
            return self._fail(prepared, start)
        cast = prepared

        fields: list[FieldResult] = []
        for req in expand_requests(requests, ctx.ammo):
            out = await self._dispatch(req, ctx)
            if isinstance(out, RollError):
                return self._fail(out, start)
            fields.extend(out)

        if ctx.is_crit and ctx.has_damage and item.flags.crit_damage is not None:
            out = await self._dispatch(CritExtra(), ctx)
            if isinstance(out, RollError):
                return self._fail(out, start)
            fields.extend(out)

        status = ConsumptionStatus.SUCCESS
        if params.use_charge.any:
            consumed = await self.ledger.consume(item, params.use_charge)
            if isinstance(consumed, RollError):
                return self._fail(consumed, start)
            status = consumed
        if cast is not None:
            commit_slot(actor, cast)

        if (params.use_template and (item.type == "feat" or item.level == 0)) or (
            cast is not None and cast.place_template
        ):
            self._place_template(item)

        result = CompositeResult(
            item_name=item.name,
            actor_name=actor.name,
            fields=tuple(fields),
            is_crit=ctx.is_crit,
            dice_pool=tuple(ctx.dice_pool),
            properties=tuple(list_properties(item)) if params.properties else None,
            slot_level=ctx.slot_level if item.type == "spell" else None,
            title=params.title or item.name,
            consumption=status,
        )
        if self.renderer is not None:
            result = replace(result, content=await self.renderer.render(result))
        if self.dice_presenter is not None and ctx.dice_pool:
            await self.dice_presenter.show(tuple(ctx.dice_pool))
        if result.item_destroyed:
            actor.remove_item(item)

        inc_counter("pipeline.run.ok")
        dur_ms = int((time.monotonic() - start) * 1000)
        observe_histogram("pipeline.run.ms", dur_ms)
        log_event(
            "pipeline",
            "completed",
            item=item.name,
            fields=len(fields),
            is_crit=ctx.is_crit,
            consumption=status.value,
            duration_ms=dur_ms,
        )
        return result

    async def _prepare(self, ctx: RollContext) -> SpellCast | None | RollError:
        """Everything that can reject a run before any dice are drawn."""
        item, actor, params = ctx.item, ctx.actor, ctx.params

        if params.use_charge.use_linked_resource and item.consume.type == "ammo":
            ctx.ammo = actor.get_item(item.consume.target)

        cast: SpellCast | None = None
        if item.type == "spell":
            if params.slot_level is not None:
                cast = SpellCast(level=params.slot_level)
            else:
                configured = await configure_spell(item, actor, self.slot_dialog)
                if isinstance(configured, RollError):
                    return configured
                cast = configured
            ctx.slot_level = cast.level

        err = self.ledger.validate(item, params.use_charge)
        if err is not None:
            return err
        return cast

    async def _dispatch(self, req: RollRequest, ctx: RollContext) -> list[FieldResult] | RollError:
        spec = self.registry.get(type(req))
        if spec is None:
            log.warning("pipeline.unknown_request", request=type(req).__name__)
            return []
        inc_counter(f"pipeline.request.{spec.kind}")
        return await spec.handler(req, ctx)

    def _fail(self, error: RollError, start: float) -> Failure:
        inc_counter("pipeline.run.fail")
        observe_histogram("pipeline.run.ms", int((time.monotonic() - start) * 1000))
        log_rejection("pipeline", error)
        return Failure(error=error)

    def _place_template(self, item: Item) -> None:
        if self.template_placer is not None and item.has_area_target:
            self.template_placer.place(item)

    # --- resolvers ---------------------------------------------------------

    async def _resolve_attack(self, req: Attack, ctx: RollContext) -> list[FieldResult]:
        item, actor = ctx.item, ctx.actor
        ctx.has_attack = True
        adv = ctx.params.adv if req.adv is None else req.adv
        disadv = ctx.params.disadv if req.disadv is None else req.disadv
        selection = multiroll.selection_from_advantage(adv, disadv)

        parts = engine.attack_parts(item, actor, ctx.ammo, req.bonus)
        title = None
        if ctx.config.roll_title_placement:
            title = "Attack" + parts.title_suffix
        bindings = {**ctx.bindings(), **parts.bindings}
        count = engine.attack_roll_count(
            selection, ctx.config.d20_mode, actor, engine.attack_ability(item, actor)
        )
        outcome = multiroll.resolve(
            self.source,
            count,
            engine.d20_die(actor),
            parts.parts,
            bindings,
            crit_threshold=engine.crit_threshold(item, actor, req.crit_threshold),
            selection=selection,
            triggers_crit=req.triggers_crit,
            title=title,
        )
        if outcome.is_crit and req.triggers_crit:
            ctx.mark_crit()
        ctx.pool(outcome.rolls)
        return [MultiRollField(kind="attack", outcome=outcome, title=title)]

    async def _resolve_check(self, req: Check, ctx: RollContext) -> list[FieldResult]:
        item, actor = ctx.item, ctx.actor
        adv = ctx.params.adv if req.adv is None else req.adv
        disadv = ctx.params.disadv if req.disadv is None else req.disadv
        selection = multiroll.selection_from_advantage(adv, disadv)
        title = req.title or ("Check" if ctx.config.roll_title_placement else None)

        parts = engine.check_parts(item, actor, req.bonus)
        count = ctx.config.d20_mode
        if selection is not Selection.NONE and count == 1:
            count = 2
        outcome = multiroll.resolve(
            self.source,
            count,
            engine.d20_die(actor),
            parts.parts,
            {**ctx.bindings(), **parts.bindings},
            crit_threshold=req.crit_threshold,
            selection=selection,
            triggers_crit=req.triggers_crit,
            title=title,
        )
        if outcome.is_crit and req.triggers_crit:
            ctx.mark_crit()
        ctx.pool(outcome.rolls)
        return [MultiRollField(kind="check", outcome=outcome, title=title)]

    async def _resolve_damage(self, req: Damage, ctx: RollContext) -> list[FieldResult]:
        item = req.item or ctx.item
        fields: list[FieldResult] = []
        for n, index in enumerate(req.indices(item)):
            if not 0 <= index < len(item.damage.parts):
                log.warning("pipeline.damage.bad_index", item=item.name, index=index)
                continue
            # The run-level flag follows line 0 of the rolled item, never the ammunition
            versatile = (n == 0 and req.versatile) or (
                req.item is None and ctx.params.versatile and index == 0
            )
            out = self._roll_damage_line(ctx, item, index, versatile, req.crit, req.context)
            if out is not None:
                fields.append(out)
        if req.item is None:
            # Ammunition only rides along with the first damage request
            ctx.ammo = None
        return fields

    def _roll_damage_line(
        self,
        ctx: RollContext,
        item: Item,
        index: int,
        versatile: bool,
        crit: bool | str | None,
        context: str | None,
    ) -> DamageField | None:
        actor = ctx.actor
        ctx.has_damage = True
        damage_type = item.damage.parts[index][1]

        bindings = ctx.bindings(item)
        abl = engine.damage_ability(item, actor, index)
        bindings["mod"] = actor.ability_mod(abl) if abl else 0

        formula, used_versatile = engine.damage_formula(
            item, actor, index, versatile, ctx.slot_level, bindings
        )
        if not formula:
            return None

        if context is None and index < len(item.flags.damage_context):
            context = item.flags.damage_context[index] or None
        labels = engine.damage_labels(ctx.config, damage_type, context, used_versatile)

        base = self.source.evaluate(formula, bindings)
        crit_roll = None
        wants_crit = crit is True or (ctx.is_crit and crit != "never")
        if wants_crit:
            crit_roll = engine.crit_roll(self.source, item, actor, base, ctx.crit_behavior)
        ctx.pool([base, crit_roll])
        return self._damage_field(
            "damage",
            item,
            base,
            crit_roll,
            labels,
            ctx.config,
            index=index,
            damage_type=damage_type,
            versatile=used_versatile,
        )

    def _damage_field(
        self,
        kind: str,
        item: Item,
        base: EvaluatedRoll,
        crit_roll: EvaluatedRoll | None,
        labels: dict[int, str],
        config: RollConfig,
        **extra: Any,
    ) -> DamageField:
        return DamageField(
            **extra,
            kind=kind,
            base=base,
            crit=crit_roll,
            base_classification=classify(base),
            crit_classification=classify(crit_roll),
            labels=labels,
            crit_text=config.crit_string,
            max_roll=maximize(base.formula).total,
            max_crit=maximize(crit_roll.formula).total if crit_roll else None,
            item_name=item.name,
        )

    async def _resolve_other(self, req: Other, ctx: RollContext) -> list[FieldResult]:
        item = ctx.item
        if not item.formula:
            return []
        context = item.flags.other_context or None
        labels = engine.place_labels(ctx.config, "Other", context, use_damage=False)
        base = self.source.evaluate(item.formula, ctx.bindings())
        crit_roll = None
        if ctx.is_crit:
            crit_roll = engine.crit_roll(self.source, item, ctx.actor, base, ctx.crit_behavior)
        ctx.pool([base, crit_roll])
        return [self._damage_field("other", item, base, crit_roll, labels, ctx.config)]

    async def _resolve_save_dc(self, req: SaveDC, ctx: RollContext) -> list[FieldResult]:
        item, actor = ctx.item, ctx.actor
        ability = req.ability or item.save.ability
        dc = req.dc if req.dc is not None else item.save.dc
        if dc is None:
            scaling = item.save.scaling
            abl = actor.spellcasting if scaling == "spell" else scaling
            dc = 8 + actor.prof + actor.ability_mod(abl)
        hide = ctx.config.hide_dc
        hidden = hide is HideDC.ALWAYS or (hide is HideDC.NPC_ONLY and actor.type == "npc")
        return [SaveDCField(ability=ability, dc=dc, hidden=hidden)]

    async def _resolve_custom(self, req: Custom, ctx: RollContext) -> list[FieldResult]:
        outcome = multiroll.resolve(
            self.source,
            req.rolls,
            req.formula,
            (),
            ctx.bindings(),
            selection=_ROLL_STATES[req.roll_state],
            triggers_crit=False,
            title=req.title,
        )
        ctx.pool(outcome.rolls)
        return [MultiRollField(kind="custom", outcome=outcome, title=req.title)]

    async def _resolve_text(self, req: Text, ctx: RollContext) -> list[FieldResult]:
        return [TextField(kind="text", text=req.text)] if req.text else []

    async def _resolve_description(self, req: Description, ctx: RollContext) -> list[FieldResult]:
        return await self._resolve_text(Text(text=ctx.item.description), ctx)

    async def _resolve_flavor(self, req: Flavor, ctx: RollContext) -> list[FieldResult]:
        text = ctx.item.chat_flavor if req.text is None else req.text
        return [TextField(kind="flavor", text=text)] if text else []

    async def _resolve_crit_extra(self, req: CritExtra, ctx: RollContext) -> list[FieldResult]:
        index = req.index if req.index is not None else ctx.item.flags.crit_damage
        if index is None:
            return []
        return await self._resolve_damage(Damage(index=index, crit="never"), ctx)
