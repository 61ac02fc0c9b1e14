import pytest

from Rollsmith.adapters.inprocess import (
    ActorResourceConsumer,
    FixedSlotDialog,
    NullDicePresenter,
    PlainTextRenderer,
    RecordingTemplatePlacer,
)
from Rollsmith.config import CritBehavior, HideDC, RollConfig
from Rollsmith.interfaces import SlotSelection
from Rollsmith.metrics import get_counter
from Rollsmith.pipeline import RequestPipeline, RollParams, expand_requests
from Rollsmith.results import (
    CompositeResult,
    ConsumptionStatus,
    DamageField,
    ErrorCode,
    Failure,
    MultiRollField,
    SaveDCField,
    TextField,
)
from Rollsmith.roll_requests import (
    ALL,
    Attack,
    Check,
    Custom,
    Damage,
    Description,
    Flavor,
    Other,
    SaveDC,
)
from Rollsmith.schemas import Actor, Item, QuickRollSet
from Rollsmith.services.ledger import ConsumptionRequest

TWO_D20 = RollConfig(d20_mode=2)


class _CountingRenderer:
    def __init__(self):
        self.calls = 0

    async def render(self, result):
        self.calls += 1
        return "rendered"


@pytest.mark.asyncio
async def test_crit_attack_adds_crit_dice_to_damage(scripted, fighter, longsword):
    src = scripted(20, 20, 5, 6)
    out = await RequestPipeline(src, config=TWO_D20).run(
        [Attack(triggers_crit=True), Damage(0)], longsword, actor=fighter
    )
    assert isinstance(out, CompositeResult)
    assert out.is_crit is True
    attack, damage = out.fields
    assert isinstance(attack, MultiRollField)
    assert attack.outcome.formula == "1d20 + 3 + 3"
    assert isinstance(damage, DamageField)
    assert damage.base.formula == "1d8 + 3"
    assert damage.base.total == 8
    assert damage.crit is not None and damage.crit.formula == "1d8"
    assert damage.crit.total == 6
    assert damage.total == 14
    assert src.remaining == []
    assert get_counter("pipeline.crit") == 1


@pytest.mark.asyncio
async def test_crit_never_suppresses_crit_dice(scripted, fighter, longsword):
    src = scripted(20, 20, 5)
    out = await RequestPipeline(src, config=TWO_D20).run(
        [Attack(), Damage(0, crit="never")], longsword, actor=fighter
    )
    assert out.is_crit is True
    assert out.fields[1].crit is None
    assert src.remaining == []


@pytest.mark.asyncio
async def test_single_natural_twenty_does_not_crit(scripted, fighter, longsword):
    out = await RequestPipeline(scripted(20, 5)).run([Attack(), Damage(0)], longsword, actor=fighter)
    assert out.is_crit is False
    assert out.fields[1].crit is None


@pytest.mark.asyncio
async def test_attack_without_triggers_crit_leaves_run_normal(scripted, fighter, longsword):
    out = await RequestPipeline(scripted(20, 20, 5), config=TWO_D20).run(
        [Attack(triggers_crit=False), Damage(0)], longsword, actor=fighter
    )
    assert out.fields[0].outcome.is_crit is True
    assert out.is_crit is False
    assert out.fields[1].crit is None


@pytest.mark.asyncio
async def test_forced_crits(scripted, fighter, longsword):
    out = await RequestPipeline(scripted(5, 6)).run(
        [Damage(0)], longsword, actor=fighter, params=RollParams(force_crit=True)
    )
    assert out.is_crit is True
    assert out.fields[0].crit.total == 6

    out = await RequestPipeline(scripted(5, 6)).run([Damage(0, crit=True)], longsword, actor=fighter)
    assert out.is_crit is False
    assert out.fields[0].crit.total == 6


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "behavior,crit_total",
    [
        (CritBehavior.MAXIMIZE_CRIT_DICE, 8),
        # crit dice at max (8) plus the base's shortfall from its max (11 - 8)
        (CritBehavior.MAXIMIZE_ALL, 11),
    ],
)
async def test_maximize_behaviors(scripted, fighter, longsword, behavior, crit_total):
    src = scripted(5)
    out = await RequestPipeline(src).run(
        [Damage(0)],
        longsword,
        actor=fighter,
        params=RollParams(force_crit=True, crit_behavior=behavior),
    )
    assert out.fields[0].crit.total == crit_total
    assert src.remaining == []


@pytest.mark.asyncio
async def test_crit_behavior_none(scripted, fighter, longsword):
    out = await RequestPipeline(scripted(5), config=RollConfig(crit_behavior=CritBehavior.NONE)).run(
        [Damage(0)], longsword, actor=fighter, params=RollParams(force_crit=True)
    )
    assert out.fields[0].crit is None


@pytest.mark.asyncio
async def test_savage_attacks_add_a_die(scripted, fighter, longsword):
    fighter.flags.savage_attacks = True
    out = await RequestPipeline(scripted(5, 2, 3)).run(
        [Damage(0)], longsword, actor=fighter, params=RollParams(force_crit=True)
    )
    assert out.fields[0].crit.formula == "2d8"
    assert out.fields[0].crit.total == 5


@pytest.mark.asyncio
async def test_versatile_and_labels(scripted, fighter, longsword):
    out = await RequestPipeline(scripted(7)).run(
        [Damage(0)], longsword, actor=fighter, params=RollParams(versatile=True)
    )
    dmg = out.fields[0]
    assert dmg.base.formula == "1d10 + 3"
    assert dmg.versatile is True
    assert dmg.labels[1] == "Damage - Slashing (Versatile)"
    assert dmg.labels[2] == "" and dmg.labels[3] == ""


@pytest.mark.asyncio
async def test_context_replaces_title(scripted, fighter, longsword):
    cfg = RollConfig(context_replaces_title=True)
    out = await RequestPipeline(scripted(4), config=cfg).run(
        [Damage(0, context="Sneak")], longsword, actor=fighter
    )
    assert out.fields[0].labels[1] == "Sneak - Slashing"


@pytest.mark.asyncio
async def test_damage_all_expands_in_order(scripted, fighter):
    flame = Item.model_validate(
        {
            "name": "Flame Tongue",
            "action_type": "mwak",
            "damage": {
                "parts": [["1d8 + @mod", "slashing"], ["2d6", "fire"]],
                "versatile": "1d10 + @mod",
            },
        }
    )
    out = await RequestPipeline(scripted(4, 2, 3)).run(
        [Damage(ALL, versatile=True)], flame, actor=fighter
    )
    assert [f.index for f in out.fields] == [0, 1]
    assert out.fields[0].base.formula == "1d10 + 3"
    assert out.fields[1].base.formula == "2d6"
    assert out.fields[1].versatile is False
    assert out.fields[1].labels[1] == "Damage - Fire"


@pytest.mark.asyncio
async def test_run_versatile_follows_line_zero_wherever_it_sits(scripted, fighter):
    flame = Item.model_validate(
        {
            "name": "Flame Tongue",
            "action_type": "mwak",
            "damage": {
                "parts": [["1d8 + @mod", "slashing"], ["2d6", "fire"]],
                "versatile": "1d10 + @mod",
            },
        }
    )
    out = await RequestPipeline(scripted(2, 3, 7)).run(
        [Damage(index=(1, 0))], flame, actor=fighter, params=RollParams(versatile=True)
    )
    fire, blade = out.fields
    assert fire.base.formula == "2d6"
    assert fire.versatile is False
    assert blade.index == 0
    assert blade.base.formula == "1d10 + 3"
    assert blade.versatile is True


@pytest.fixture
def archer() -> Actor:
    return Actor.model_validate(
        {
            "name": "Legolas",
            "prof": 3,
            "abilities": {"dex": {"value": 14, "mod": 2}},
            "items": [
                {
                    "id": "arrows",
                    "name": "Arrows",
                    "type": "consumable",
                    "quantity": 10,
                    "attack_bonus": 1,
                    "damage": {"parts": [["1d4", "piercing"]]},
                }
            ],
        }
    )


@pytest.fixture
def longbow() -> Item:
    return Item.model_validate(
        {
            "name": "Longbow",
            "action_type": "rwak",
            "proficient": 1,
            "damage": {"parts": [["1d8 + @mod", "piercing"]]},
            "consume": {"type": "ammo", "target": "arrows", "amount": 1},
        }
    )


@pytest.mark.asyncio
async def test_ammo_bonus_and_damage(scripted, archer, longbow):
    pipeline = RequestPipeline(scripted(10, 4, 3), consumer=ActorResourceConsumer(archer))
    out = await pipeline.run(
        [Attack(), Damage(0)],
        longbow,
        actor=archer,
        params=RollParams(use_charge=ConsumptionRequest(use_linked_resource=True)),
    )
    attack, bow, ammo = out.fields
    assert attack.title == "Attack [Arrows]"
    assert attack.outcome.total == 16
    assert bow.base.total == 6
    assert ammo.item_name == "Arrows"
    assert ammo.base.formula == "1d4"
    assert ammo.labels[1] == "Damage ([Arrows]) - Piercing"
    assert archer.get_item("arrows").quantity == 9


@pytest.mark.asyncio
async def test_ammo_damage_is_never_versatile(scripted, archer, longbow):
    archer.get_item("arrows").damage.versatile = "1d12"
    pipeline = RequestPipeline(scripted(10, 4, 3), consumer=ActorResourceConsumer(archer))
    out = await pipeline.run(
        [Attack(), Damage(0)],
        longbow,
        actor=archer,
        params=RollParams(
            versatile=True, use_charge=ConsumptionRequest(use_linked_resource=True)
        ),
    )
    ammo = out.fields[2]
    assert ammo.item_name == "Arrows"
    assert ammo.base.formula == "1d4"
    assert ammo.versatile is False


@pytest.mark.asyncio
async def test_no_ammo_left_fails_without_rendering(scripted, archer, longbow):
    archer.get_item("arrows").quantity = 0
    renderer = _CountingRenderer()
    pipeline = RequestPipeline(
        scripted(10, 4, 3), renderer=renderer, consumer=ActorResourceConsumer(archer)
    )
    out = await pipeline.run(
        [Attack(), Damage(0)],
        longbow,
        actor=archer,
        params=RollParams(use_charge=ConsumptionRequest(use_linked_resource=True)),
    )
    assert isinstance(out, Failure)
    assert out.error.code is ErrorCode.RESOURCE_CONSUMPTION_REFUSED
    assert renderer.calls == 0


def test_expand_requests_inserts_ammo_once(longbow, archer):
    arrows = archer.get_item("arrows")
    out = expand_requests([Attack(), Damage(0), Damage(1)], arrows)
    assert len(out) == 4
    assert out[2].item is arrows
    assert out[2].index == ALL
    assert out[2].context == "[Arrows]"
    assert expand_requests([Attack()], arrows) == [Attack()]


@pytest.mark.asyncio
async def test_crit_extra_appended_once(scripted, fighter):
    axe = Item.model_validate(
        {
            "name": "Vorpal Axe",
            "action_type": "mwak",
            "damage": {"parts": [["1d12 + @mod", "slashing"], ["1d6", "necrotic"]]},
            "flags": {"crit_damage": 1},
        }
    )
    out = await RequestPipeline(scripted(20, 20, 5, 6, 4), config=TWO_D20).run(
        [Attack(), Damage(0)], axe, actor=fighter
    )
    assert len(out.fields) == 3
    extra = out.fields[2]
    assert extra.index == 1
    assert extra.crit is None

    normal = await RequestPipeline(scripted(20, 5, 5)).run(
        [Attack(), Damage(0)], axe, actor=fighter
    )
    assert len(normal.fields) == 2


@pytest.mark.asyncio
async def test_insufficient_uses_fails_before_any_dice(scripted, fighter, longsword):
    longsword.uses.max = 3
    src = scripted()
    renderer = _CountingRenderer()
    out = await RequestPipeline(src, renderer=renderer).run(
        [Attack(), Damage(0)],
        longsword,
        actor=fighter,
        params=RollParams(use_charge=ConsumptionRequest(use_charges=True)),
    )
    assert isinstance(out, Failure)
    assert out.error.code is ErrorCode.INSUFFICIENT_USES
    assert src.formulas == []
    assert renderer.calls == 0
    assert get_counter("pipeline.run.fail") == 1
    assert get_counter("pipeline.run.ok") == 0


@pytest.mark.asyncio
async def test_exhausted_item_is_destroyed_after_render(scripted, fighter):
    potion = Item.model_validate(
        {
            "name": "Potion of Healing",
            "type": "consumable",
            "formula": "2d4 + 2",
            "quantity": 1,
            "uses": {"value": 1, "max": 1, "auto_destroy": True},
        }
    )
    fighter.items.append(potion)
    renderer = _CountingRenderer()
    out = await RequestPipeline(scripted(3, 3), renderer=renderer).run(
        [Other()],
        potion,
        actor=fighter,
        params=RollParams(use_charge=ConsumptionRequest(use_charges=True, use_quantity=True)),
    )
    assert out.consumption is ConsumptionStatus.DESTROY
    assert out.item_destroyed
    assert out.fields[0].base.total == 8
    assert out.content == "rendered"
    assert potion not in fighter.items


@pytest.fixture
def wizard() -> Actor:
    return Actor.model_validate(
        {
            "name": "Elminster",
            "level": 9,
            "prof": 3,
            "spellcasting": "int",
            "abilities": {"int": {"value": 18, "mod": 4}},
            "spells": {
                "spell3": {"value": 2, "max": 2},
                "spell5": {"value": 1, "max": 1},
                "pact": {"value": 1, "max": 2, "level": 4},
            },
        }
    )


@pytest.fixture
def fireball() -> Item:
    return Item.model_validate(
        {
            "name": "Fireball",
            "type": "spell",
            "action_type": "save",
            "level": 3,
            "school": "evo",
            "save": {"ability": "dex", "scaling": "spell"},
            "damage": {"parts": [["8d6", "fire"]]},
            "scaling": {"mode": "level", "formula": "1d6"},
            "has_area_target": True,
        }
    )


@pytest.mark.asyncio
async def test_upcast_spell_scales_and_spends_slot(scripted, wizard, fireball):
    dialog = FixedSlotDialog(SlotSelection(level=5, consume_slot=True, place_template=True))
    placer = RecordingTemplatePlacer()
    pipeline = RequestPipeline(
        scripted(*[3] * 10), slot_dialog=dialog, template_placer=placer
    )
    out = await pipeline.run([SaveDC(), Damage(0)], fireball, actor=wizard)
    save, dmg = out.fields
    assert save == SaveDCField(ability="dex", dc=15, hidden=False)
    assert dmg.base.formula == "10d6"
    assert dmg.base.total == 30
    assert out.slot_level == 5
    assert wizard.spells["spell5"].value == 0
    assert wizard.spells["spell3"].value == 2
    assert placer.placed == ["Fireball"]
    assert dialog.asked == ["Fireball"]


@pytest.mark.asyncio
async def test_pact_slot(scripted, wizard, fireball):
    dialog = FixedSlotDialog(SlotSelection(level="pact", consume_slot=True))
    out = await RequestPipeline(scripted(*[1] * 9), slot_dialog=dialog).run(
        [Damage(0)], fireball, actor=wizard
    )
    assert out.slot_level == 4
    assert out.fields[0].base.formula == "9d6"
    assert wizard.spells["pact"].value == 0


@pytest.mark.asyncio
async def test_cancelled_dialog(scripted, wizard, fireball):
    src = scripted()
    out = await RequestPipeline(src, slot_dialog=FixedSlotDialog(None)).run(
        [Damage(0)], fireball, actor=wizard
    )
    assert isinstance(out, Failure)
    assert out.error.code is ErrorCode.SLOT_SELECTION_CANCELLED
    assert src.formulas == []


@pytest.mark.asyncio
async def test_no_slots_left(scripted, wizard, fireball):
    wizard.spells["spell5"].value = 0
    dialog = FixedSlotDialog(SlotSelection(level=5, consume_slot=True))
    out = await RequestPipeline(scripted(), slot_dialog=dialog).run(
        [Damage(0)], fireball, actor=wizard
    )
    assert out.error.code is ErrorCode.NO_SLOTS_AVAILABLE
    assert get_counter("pipeline.run.fail") == 1


@pytest.mark.asyncio
async def test_explicit_slot_level_skips_dialog(scripted, wizard, fireball):
    dialog = FixedSlotDialog(None)
    out = await RequestPipeline(scripted(*[2] * 9), slot_dialog=dialog).run(
        [Damage(0)], fireball, actor=wizard, params=RollParams(slot_level=4)
    )
    assert out.fields[0].base.formula == "9d6"
    assert dialog.asked == []


@pytest.mark.asyncio
async def test_cantrip_scales_with_level(scripted, wizard):
    fire_bolt = Item.model_validate(
        {
            "name": "Fire Bolt",
            "type": "spell",
            "action_type": "rsak",
            "level": 0,
            "damage": {"parts": [["1d10", "fire"]]},
            "scaling": {"mode": "cantrip", "formula": "1d10"},
        }
    )
    dialog = FixedSlotDialog(None)
    out = await RequestPipeline(scripted(12, 5, 5), slot_dialog=dialog).run(
        [Attack(), Damage(0)], fire_bolt, actor=wizard
    )
    attack, dmg = out.fields
    assert attack.outcome.formula == "1d20 + 4 + 3"
    assert dmg.base.formula == "2d10"
    assert dialog.asked == []


@pytest.mark.asyncio
async def test_hidden_dc_for_npcs(scripted, fireball):
    npc = Actor.model_validate({"type": "npc", "cr": 5, "prof": 3})
    cfg = RollConfig(hide_dc=HideDC.NPC_ONLY)
    out = await RequestPipeline(scripted(), config=cfg).run(
        [SaveDC(dc=13)], fireball, actor=npc, params=RollParams(slot_level=3)
    )
    assert out.fields[0] == SaveDCField(ability="dex", dc=13, hidden=True)


@pytest.mark.asyncio
async def test_advantage_and_elven_accuracy(scripted, archer, longbow):
    out = await RequestPipeline(scripted(3, 15)).run(
        [Attack()], longbow, actor=archer, params=RollParams(adv=1)
    )
    assert len(out.fields[0].outcome.entries) == 2
    assert out.fields[0].outcome.chosen[0].roll.dice[0].values == [15]

    archer.flags.elven_accuracy = True
    out = await RequestPipeline(scripted(3, 10, 15)).run(
        [Attack()], longbow, actor=archer, params=RollParams(adv=1)
    )
    assert len(out.fields[0].outcome.entries) == 3

    out = await RequestPipeline(scripted(3, 10)).run(
        [Attack(disadv=1)], longbow, actor=archer
    )
    assert len(out.fields[0].outcome.entries) == 2
    assert out.fields[0].outcome.chosen[0].roll.dice[0].values == [3]


@pytest.mark.asyncio
async def test_halfling_luck_and_crit_threshold(scripted, fighter, longsword):
    fighter.flags.halfling_lucky = True
    fighter.flags.weapon_critical_threshold = 19
    out = await RequestPipeline(scripted(1, 19, 19), config=TWO_D20).run(
        [Attack()], longsword, actor=fighter
    )
    outcome = out.fields[0].outcome
    assert outcome.formula.startswith("1d20r<2")
    assert outcome.is_crit is True
    assert out.is_crit is True


@pytest.mark.asyncio
async def test_tool_check(scripted, fighter):
    tools = Item.model_validate(
        {"name": "Thieves' Tools", "type": "tool", "ability": "dex", "proficient": 2}
    )
    out = await RequestPipeline(scripted(4, 11)).run(
        [Check()], tools, actor=fighter, params=RollParams(adv=1)
    )
    field = out.fields[0]
    assert field.kind == "check"
    assert field.title == "Check"
    assert field.outcome.formula == "1d20 + 2 + 6"
    assert field.outcome.total == 19


@pytest.mark.asyncio
async def test_custom_and_text_requests(scripted, fighter, longsword):
    longsword.description = "A trusty blade."
    longsword.chat_flavor = ""
    out = await RequestPipeline(scripted(2, 5)).run(
        [
            Description(),
            Flavor(),
            Flavor(text="Swish!"),
            Custom(title="Luck", formula="1d6", rolls=2, roll_state="adv"),
        ],
        longsword,
        actor=fighter,
    )
    desc, flavor, custom = out.fields
    assert desc == TextField(kind="text", text="A trusty blade.")
    assert flavor == TextField(kind="flavor", text="Swish!")
    assert custom.outcome.total == 5
    assert out.is_crit is False


@pytest.mark.asyncio
async def test_other_formula_is_subject_to_crits(scripted, fighter):
    wand = Item.model_validate(
        {"name": "Wand", "type": "consumable", "formula": "1d6 + 1", "flags": {"other_context": "Zap"}}
    )
    out = await RequestPipeline(scripted(3, 4)).run(
        [Other()], wand, actor=fighter, params=RollParams(force_crit=True)
    )
    other = out.fields[0]
    assert other.kind == "other"
    assert other.labels[1] == "Other (Zap)"
    assert other.crit.total == 4

    empty = Item.model_validate({"name": "Stick", "type": "consumable"})
    out = await RequestPipeline(scripted()).run([Other()], empty, actor=fighter)
    assert out.fields == ()


@pytest.mark.asyncio
async def test_preset_builds_requests(scripted, fighter, longsword):
    longsword.flags.quick_roll = QuickRollSet(attack=True, damage=[True], properties=True)
    out = await RequestPipeline(scripted(12, 6)).run(
        [], longsword, actor=fighter, params=RollParams(preset=0)
    )
    assert [f.kind for f in out.fields] == ["attack", "damage"]
    assert out.properties is not None


@pytest.mark.asyncio
async def test_render_and_dice_pool_flush(scripted, fighter, longsword):
    presenter = NullDicePresenter()
    out = await RequestPipeline(
        scripted(20, 20, 5, 6), config=TWO_D20, renderer=PlainTextRenderer(), dice_presenter=presenter
    ).run([Attack(), Damage(0)], longsword, actor=fighter)
    assert len(presenter.shown) == 1
    assert len(presenter.shown[0]) == 4
    assert presenter.shown[0] == out.dice_pool
    assert out.content.startswith("Longsword - CRITICAL")
    assert "Damage - Slashing: 1d8 + 3 = 8 + 6 (Crit)" in out.content
    assert get_counter("pipeline.request.attack") == 1
    assert get_counter("pipeline.request.damage") == 1
    assert get_counter("pipeline.run.ok") == 1


def test_every_request_type_has_a_resolver(scripted):
    registry = RequestPipeline(scripted()).registry
    kinds = {spec.kind for spec in registry.list_resolvers().values()}
    assert kinds == {
        "attack",
        "check",
        "damage",
        "savedc",
        "other",
        "custom",
        "text",
        "description",
        "flavor",
        "crit",
    }
    assert registry.get(Damage).kind == "damage"
