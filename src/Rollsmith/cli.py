"""Command-line entry point.

Examples:
  rollsmith roll longsword.json --actor fighter.json --request attack --request damage:all
  rollsmith roll fireball.json --actor wizard.json --request savedc --request damage --slot-level 5
  rollsmith save fighter.json dex --adv
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click

from Rollsmith.actor_rolls import roll_ability_check, roll_ability_save, roll_skill_check
from Rollsmith.adapters.inprocess import (
    ActorResourceConsumer,
    FixedSlotDialog,
    PlainTextRenderer,
    RecordingTemplatePlacer,
)
from Rollsmith.config import load_settings
from Rollsmith.interfaces import SlotSelection
from Rollsmith.logging import setup_logging
from Rollsmith.pipeline import RequestPipeline, RollParams
from Rollsmith.results import Failure
from Rollsmith.roll_requests import (
    ALL,
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
)
from Rollsmith.rules.dice import DiceRNG
from Rollsmith.schemas import Actor, Item
from Rollsmith.services.ledger import ConsumptionRequest

_SIMPLE_REQUESTS = {
    "attack": Attack,
    "check": Check,
    "savedc": SaveDC,
    "other": Other,
    "flavor": Flavor,
    "desc": Description,
    "crit": CritExtra,
}


def parse_request(text: str) -> RollRequest:
    """``attack``, ``damage``, ``damage:all``, ``damage:0,2``, ``custom:2d6`` ..."""
    kind, _, arg = text.partition(":")
    kind = kind.strip().lower()
    if kind in _SIMPLE_REQUESTS:
        return _SIMPLE_REQUESTS[kind]()
    if kind == "damage":
        if not arg or arg == ALL:
            return Damage(index=ALL if arg else 0)
        indices = tuple(int(i) for i in arg.split(","))
        return Damage(index=indices[0] if len(indices) == 1 else indices)
    if kind == "custom":
        return Custom(title="Custom", formula=arg or "1d20")
    raise click.BadParameter(f"unknown request '{text}'", param_hint="--request")


def _load_json(path: str) -> dict:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _load_actor(path: str | None) -> Actor:
    return Actor.model_validate(_load_json(path)) if path else Actor()


@click.group()
def cli() -> None:
    """Roll items and actor checks from JSON sheets."""
    setup_logging(load_settings())


@cli.command()
@click.argument("item_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--actor", "actor_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--request", "requests", multiple=True, help="attack, check, damage[:all|i,j], savedc, ...")
@click.option("--adv", is_flag=True, help="Roll with advantage")
@click.option("--disadv", is_flag=True, help="Roll with disadvantage")
@click.option("--seed", type=int, default=None)
@click.option("--slot-level", type=int, default=None)
@click.option("--versatile", is_flag=True)
@click.option("--crit", "force_crit", is_flag=True, help="Treat the roll as critical")
@click.option("--preset", type=click.IntRange(0, 1), default=None)
@click.option("--use", "use", multiple=True, type=click.Choice(["charges", "quantity", "recharge", "resource"]))
def roll(
    item_json: str,
    actor_json: str | None,
    requests: tuple[str, ...],
    adv: bool,
    disadv: bool,
    seed: int | None,
    slot_level: int | None,
    versatile: bool,
    force_crit: bool,
    preset: int | None,
    use: tuple[str, ...],
) -> None:
    """Roll ITEM_JSON and print a plain-text card."""
    settings = load_settings()
    actor = _load_actor(actor_json)
    item = Item.model_validate(_load_json(item_json))
    owned = actor.get_item(item.id or item.name)
    if owned is not None:
        item = owned
    else:
        actor.items.append(item)

    params = RollParams(
        adv=int(adv),
        disadv=int(disadv),
        force_crit=force_crit,
        slot_level=slot_level,
        versatile=versatile,
        preset=preset,
        use_charge=ConsumptionRequest(
            use_charges="charges" in use,
            use_quantity="quantity" in use,
            use_recharge="recharge" in use,
            use_linked_resource="resource" in use,
        ),
    )
    pipeline = RequestPipeline(
        DiceRNG(seed if seed is not None else settings.dice_seed),
        config=settings.rolls,
        renderer=PlainTextRenderer(),
        slot_dialog=FixedSlotDialog(
            SlotSelection(level=item.level, consume_slot=f"spell{item.level}" in actor.spells)
        ),
        consumer=ActorResourceConsumer(actor),
        template_placer=RecordingTemplatePlacer(),
    )
    reqs = [parse_request(r) for r in requests]
    if not reqs and preset is None:
        reqs = [Description()]
    result = asyncio.run(pipeline.run(reqs, item, actor=actor, params=params))
    if isinstance(result, Failure):
        raise click.ClickException(result.error.message)
    click.echo(result.content)


def _echo_outcome(title: str, outcome) -> None:
    click.echo(f"{title}: {outcome.formula}")
    for entry in outcome.entries:
        mark = " (ignored)" if entry.ignored else ""
        click.echo(f"  {entry.total}{mark}")


@cli.command()
@click.argument("actor_json", type=click.Path(exists=True, dir_okay=False))
@click.argument("skill")
@click.option("--adv", is_flag=True)
@click.option("--disadv", is_flag=True)
@click.option("--seed", type=int, default=None)
def skill(actor_json: str, skill: str, adv: bool, disadv: bool, seed: int | None) -> None:
    """Roll a skill check for ACTOR_JSON."""
    settings = load_settings()
    outcome = roll_skill_check(
        DiceRNG(seed), _load_actor(actor_json), skill, adv=int(adv), disadv=int(disadv), config=settings.rolls
    )
    _echo_outcome(f"{skill} check", outcome)


@cli.command()
@click.argument("actor_json", type=click.Path(exists=True, dir_okay=False))
@click.argument("ability", type=click.Choice(["str", "dex", "con", "int", "wis", "cha"]))
@click.option("--adv", is_flag=True)
@click.option("--disadv", is_flag=True)
@click.option("--seed", type=int, default=None)
def check(actor_json: str, ability: str, adv: bool, disadv: bool, seed: int | None) -> None:
    """Roll an ability check for ACTOR_JSON."""
    settings = load_settings()
    outcome = roll_ability_check(
        DiceRNG(seed), _load_actor(actor_json), ability, adv=int(adv), disadv=int(disadv), config=settings.rolls
    )
    _echo_outcome(f"{ability} check", outcome)


@cli.command()
@click.argument("actor_json", type=click.Path(exists=True, dir_okay=False))
@click.argument("ability", type=click.Choice(["str", "dex", "con", "int", "wis", "cha"]))
@click.option("--adv", is_flag=True)
@click.option("--disadv", is_flag=True)
@click.option("--seed", type=int, default=None)
def save(actor_json: str, ability: str, adv: bool, disadv: bool, seed: int | None) -> None:
    """Roll a saving throw for ACTOR_JSON."""
    settings = load_settings()
    outcome = roll_ability_save(
        DiceRNG(seed), _load_actor(actor_json), ability, adv=int(adv), disadv=int(disadv), config=settings.rolls
    )
    _echo_outcome(f"{ability} save", outcome)


if __name__ == "__main__":
    cli()
