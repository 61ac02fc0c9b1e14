"""Footer properties for item roll cards."""

from __future__ import annotations

from Rollsmith.schemas import Item

ABILITY_NAMES = {
    "str": "Strength",
    "dex": "Dexterity",
    "con": "Constitution",
    "int": "Intelligence",
    "wis": "Wisdom",
    "cha": "Charisma",
}
WEAPON_TYPES = {
    "simpleM": "Simple Melee",
    "simpleR": "Simple Ranged",
    "martialM": "Martial Melee",
    "martialR": "Martial Ranged",
    "natural": "Natural",
    "improv": "Improvised",
    "siege": "Siege Weapon",
}
WEAPON_PROPERTIES = {
    "amm": "Ammunition",
    "fin": "Finesse",
    "fir": "Firearm",
    "foc": "Focus",
    "hvy": "Heavy",
    "lgt": "Light",
    "lod": "Loading",
    "rch": "Reach",
    "rel": "Reload",
    "ret": "Returning",
    "spc": "Special",
    "thr": "Thrown",
    "two": "Two-Handed",
    "ver": "Versatile",
}
SPELL_SCHOOLS = {
    "abj": "Abjuration",
    "con": "Conjuration",
    "div": "Divination",
    "enc": "Enchantment",
    "evo": "Evocation",
    "ill": "Illusion",
    "nec": "Necromancy",
    "trs": "Transmutation",
}
SPELL_LEVELS = {
    0: "Cantrip",
    1: "1st Level",
    2: "2nd Level",
    3: "3rd Level",
    4: "4th Level",
    5: "5th Level",
    6: "6th Level",
    7: "7th Level",
    8: "8th Level",
    9: "9th Level",
}
ACTIVATION_TYPES = {
    "action": "Action",
    "bonus": "Bonus Action",
    "reaction": "Reaction",
    "minute": "Minute",
    "hour": "Hour",
    "day": "Day",
    "special": "Special",
    "legendary": "Legendary Action",
    "lair": "Lair Action",
}
TIME_PERIODS = {
    "inst": "Instantaneous",
    "turn": "Turns",
    "round": "Rounds",
    "minute": "Minutes",
    "hour": "Hours",
    "day": "Days",
    "month": "Months",
    "year": "Years",
    "perm": "Permanent",
    "spec": "Special",
}
DISTANCE_UNITS = {"none": "None", "self": "Self", "touch": "Touch", "ft": "Feet", "mi": "Miles", "any": "Any"}
TARGET_TYPES = {
    "ally": "Ally",
    "cone": "Cone",
    "creature": "Creature",
    "cube": "Cube",
    "cylinder": "Cylinder",
    "enemy": "Enemy",
    "line": "Line",
    "object": "Object",
    "radius": "Radius",
    "self": "Self",
    "space": "Space",
    "sphere": "Sphere",
    "square": "Square",
    "wall": "Wall",
}
ARMOR_TYPES = {
    "light": "Light Armor",
    "medium": "Medium Armor",
    "heavy": "Heavy Armor",
    "natural": "Natural Armor",
    "bonus": "Magical Bonus",
    "shield": "Shield",
    "clothing": "Clothing",
    "trinket": "Trinket",
}
PROFICIENCY_LEVELS = {0: "Not Proficient", 0.5: "Half Proficient", 1: "Proficient", 2: "Expertise"}


def _num(value: float | None) -> str:
    if value is None:
        return ""
    return str(int(value)) if float(value).is_integer() else str(value)


def activation_label(item: Item) -> str | None:
    act = item.activation
    if not act.type or act.type == "none":
        return None
    cost = act.cost or ""
    return f"{cost} {ACTIVATION_TYPES.get(act.type, act.type)}".strip()


def duration_label(item: Item) -> str | None:
    dur = item.duration
    if not dur.units:
        return None
    return f"{_num(dur.value)} {TIME_PERIODS.get(dur.units, dur.units)}".strip()


def range_label(item: Item) -> str | None:
    rng = item.range
    if not rng.value and not rng.units:
        return None
    long = f"/{_num(rng.long)}" if rng.long and rng.long != rng.value else ""
    units = DISTANCE_UNITS.get(rng.units, rng.units) if rng.units else ""
    return f"{_num(rng.value)}{long} {units}".strip()


def target_label(item: Item) -> str | None:
    tgt = item.target
    if not tgt.type:
        return None
    distance = ""
    if tgt.units and tgt.units != "none":
        distance = f" ({_num(tgt.value)} {DISTANCE_UNITS.get(tgt.units, tgt.units)})"
    return f"Target: {TARGET_TYPES.get(tgt.type, tgt.type)}{distance}"


def components_label(item: Item) -> str | None:
    comp = item.components
    out = ""
    if comp.vocal:
        out += "V"
    if comp.somatic:
        out += "S"
    if comp.material:
        out += "M"
        if item.materials:
            out += f" ({item.materials})"
    return out or None


def _weight(item: Item) -> str | None:
    return f"{_num(item.weight)} lbs." if item.weight else None


def list_properties(item: Item) -> list[str]:
    """Property strings shown under an item roll, empty entries dropped."""
    props: list[str | None]
    if item.type == "weapon":
        props = [
            WEAPON_TYPES.get(item.weapon_type, item.weapon_type),
            range_label(item),
            target_label(item),
            "" if item.proficient else "Not Proficient",
            _weight(item),
        ]
        props += [WEAPON_PROPERTIES.get(k, k) for k, on in item.properties.items() if on]
    elif item.type == "spell":
        props = [
            SPELL_SCHOOLS.get(item.school, item.school),
            SPELL_LEVELS.get(item.level),
            "Ritual" if item.components.ritual else None,
            activation_label(item),
            duration_label(item),
            "Concentration" if item.components.concentration else None,
            components_label(item),
            range_label(item),
            target_label(item),
        ]
    elif item.type == "feat":
        props = [
            item.requirements,
            activation_label(item),
            duration_label(item),
            range_label(item),
            target_label(item),
        ]
    elif item.type == "consumable":
        props = [
            _weight(item),
            activation_label(item),
            duration_label(item),
            range_label(item),
            target_label(item),
        ]
    elif item.type == "equipment":
        props = [
            ARMOR_TYPES.get(item.armor_type, item.armor_type),
            "Equipped" if item.equipped else None,
            f"{item.armor_value} AC" if item.armor_value else None,
            "Stealth Disadv." if item.stealth else None,
            _weight(item),
        ]
    elif item.type == "tool":
        props = [
            PROFICIENCY_LEVELS.get(item.proficient),
            ABILITY_NAMES.get(item.ability) if item.ability else None,
            _weight(item),
        ]
    else:
        props = [_weight(item)]
    return [p for p in props if p and p.strip()]
