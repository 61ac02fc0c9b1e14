# schemas.py

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

ItemType = Literal["weapon", "spell", "feat", "consumable", "tool", "equipment", "loot"]
ABILS = ("str", "dex", "con", "int", "wis", "cha")


class DamageData(BaseModel):
    # (formula, damage type) per line, in display order
    parts: list[tuple[str, str]] = Field(default_factory=list)
    versatile: str = ""


class SaveData(BaseModel):
    ability: str = ""
    dc: int | None = None
    scaling: str = "spell"


class ScalingData(BaseModel):
    mode: Literal["none", "cantrip", "level"] = "none"
    formula: str = ""


class UsesData(BaseModel):
    value: int = 0
    max: int = 0
    per: str | None = None
    auto_destroy: bool = False

    @property
    def configured(self) -> bool:
        return bool(self.value or self.max or self.per)


class RechargeData(BaseModel):
    value: int | None = None
    charged: bool = False


class ConsumeData(BaseModel):
    type: str = ""
    target: str = ""
    amount: int = 1


class RangeData(BaseModel):
    value: float | None = None
    long: float | None = None
    units: str = ""


class TargetData(BaseModel):
    value: float | None = None
    units: str = ""
    type: str = ""


class ActivationData(BaseModel):
    type: str = ""
    cost: int | None = None


class DurationData(BaseModel):
    value: float | None = None
    units: str = ""


class ComponentsData(BaseModel):
    vocal: bool = False
    somatic: bool = False
    material: bool = False
    ritual: bool = False
    concentration: bool = False


class QuickRollSet(BaseModel):
    """One quick-roll configuration (primary or alternate)."""

    flavor: bool = False
    desc: bool = False
    attack: bool = False
    check: bool = False
    save: bool = False
    damage: list[bool] = Field(default_factory=list)
    versatile: bool = False
    other: bool = False
    properties: bool = False
    charges: dict[str, bool] = Field(default_factory=dict)
    template: bool = False


class RollFlags(BaseModel):
    crit_threshold: int | None = None
    # Damage line rolled as extra damage on a crit
    crit_damage: int | None = None
    damage_context: list[str] = Field(default_factory=list)
    other_context: str = ""
    quick_roll: QuickRollSet | None = None
    alt_quick_roll: QuickRollSet | None = None


class Item(BaseModel):
    id: str = ""
    name: str
    type: ItemType = "weapon"
    action_type: str = ""
    ability: str = ""
    proficient: float = 0
    attack_bonus: int | str = 0
    bonus: int | str = 0
    damage: DamageData = Field(default_factory=DamageData)
    formula: str = ""
    save: SaveData = Field(default_factory=SaveData)
    level: int = 0
    school: str = ""
    scaling: ScalingData = Field(default_factory=ScalingData)
    uses: UsesData = Field(default_factory=UsesData)
    quantity: int = 1
    recharge: RechargeData = Field(default_factory=RechargeData)
    consume: ConsumeData = Field(default_factory=ConsumeData)
    chat_flavor: str = ""
    description: str = ""
    properties: dict[str, bool] = Field(default_factory=dict)
    weapon_type: str = ""
    range: RangeData = Field(default_factory=RangeData)
    target: TargetData = Field(default_factory=TargetData)
    activation: ActivationData = Field(default_factory=ActivationData)
    duration: DurationData = Field(default_factory=DurationData)
    components: ComponentsData = Field(default_factory=ComponentsData)
    materials: str = ""
    requirements: str = ""
    weight: float = 0
    equipped: bool = False
    armor_type: str = ""
    armor_value: int | None = None
    stealth: bool = False
    has_area_target: bool = False
    flags: RollFlags = Field(default_factory=RollFlags)

    model_config = dict(extra="forbid")

    @property
    def is_attack(self) -> bool:
        return self.action_type in ("mwak", "rwak", "msak", "rsak")

    @property
    def is_save(self) -> bool:
        return self.action_type == "save" or bool(self.save.ability)

    @property
    def is_check(self) -> bool:
        return self.type == "tool" or self.action_type == "abil"

    @property
    def is_weapon_attack(self) -> bool:
        return self.action_type in ("mwak", "rwak")


class AbilityData(BaseModel):
    value: int = 10
    mod: int = 0
    # Saving throw proficiency multiplier
    proficient: float = 0


class SkillData(BaseModel):
    value: float = 0
    total: int = 0


class ActionBonus(BaseModel):
    attack: str = ""
    damage: str = ""


class BonusesData(BaseModel):
    actions: dict[str, ActionBonus] = Field(default_factory=dict)
    ability_check: str = ""
    check: str = ""
    save: str = ""
    skill: str = ""


class ActorFlags(BaseModel):
    halfling_lucky: bool = False
    elven_accuracy: bool = False
    savage_attacks: bool = False
    reliable_talent: bool = False
    jack_of_all_trades: bool = False
    weapon_critical_threshold: int | None = None


class SpellSlot(BaseModel):
    value: int = 0
    max: int = 0
    level: int | None = None


class Actor(BaseModel):
    name: str = ""
    type: Literal["character", "npc"] = "character"
    level: int = Field(default=1, ge=0, le=30)
    cr: float = 0
    abilities: dict[str, AbilityData] = Field(
        default_factory=lambda: {a: AbilityData() for a in ABILS}
    )
    skills: dict[str, SkillData] = Field(default_factory=dict)
    prof: int = 2
    spellcasting: str = "int"
    bonuses: BonusesData = Field(default_factory=BonusesData)
    flags: ActorFlags = Field(default_factory=ActorFlags)
    spells: dict[str, SpellSlot] = Field(default_factory=dict)
    items: list[Item] = Field(default_factory=list)

    model_config = dict(extra="forbid")

    @field_validator("abilities")
    @classmethod
    def fill_abilities(cls, v: dict[str, AbilityData]):
        unknown = [k for k in v if k not in ABILS]
        if unknown:
            raise ValueError(f"unknown abilities: {unknown}")
        return {a: v.get(a, AbilityData()) for a in ABILS}

    @property
    def caster_level(self) -> int:
        """Character level for characters, challenge rating for NPCs."""
        return self.level if self.type == "character" else int(self.cr)

    def ability_mod(self, abl: str) -> int:
        data = self.abilities.get(abl)
        return data.mod if data else 0

    def get_item(self, item_id: str) -> Item | None:
        for it in self.items:
            if it.id == item_id or (not it.id and it.name == item_id):
                return it
        return None

    def remove_item(self, item: Item) -> None:
        self.items = [it for it in self.items if it is not item]

    def roll_data(self) -> dict[str, Any]:
        """Bindings exposed to formulas as ``@path`` references."""
        data = self.model_dump(exclude={"items"})
        data["attributes"] = {"prof": self.prof, "spellcasting": self.spellcasting}
        data["details"] = {"level": self.level, "cr": self.cr}
        return data
