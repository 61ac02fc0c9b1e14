"""Quick-roll presets: turn an item's stored roll flags into requests."""

from __future__ import annotations

from dataclasses import dataclass, field

from Rollsmith.roll_requests import (
    Attack,
    Check,
    Damage,
    Description,
    Flavor,
    Other,
    RollRequest,
    SaveDC,
)
from Rollsmith.schemas import Item
from Rollsmith.services.ledger import ConsumptionRequest

PRIMARY = 0
ALTERNATE = 1

# Flag names stored on items -> ConsumptionRequest fields
_CHARGE_FLAGS = {
    "use": "use_charges",
    "quantity": "use_quantity",
    "charge": "use_recharge",
    "resource": "use_linked_resource",
}


@dataclass(frozen=True)
class PresetExpansion:
    requests: list[RollRequest] = field(default_factory=list)
    properties: bool = False
    use_charge: ConsumptionRequest = field(default_factory=ConsumptionRequest)
    use_template: bool = False


def expand_preset(item: Item, preset: int) -> PresetExpansion:
    """Build the request list for a quick roll (``PRIMARY`` or ``ALTERNATE``).

    Items without quick-roll flags fall back to their description with the
    property footer shown.
    """
    flags = item.flags.alt_quick_roll if preset == ALTERNATE else item.flags.quick_roll
    if flags is None:
        return PresetExpansion(requests=[Description()], properties=True)

    requests: list[RollRequest] = []
    if flags.flavor and item.chat_flavor:
        requests.append(Flavor())
    if flags.desc:
        requests.append(Description())
    if flags.attack and item.is_attack:
        requests.append(Attack())
    if flags.check and item.is_check:
        requests.append(Check())
    if flags.save and item.is_save:
        requests.append(SaveDC())
    for i, enabled in enumerate(flags.damage):
        if enabled:
            requests.append(Damage(index=i, versatile=i == 0 and flags.versatile))
    if flags.other:
        requests.append(Other())

    charges = {
        target: bool(flags.charges.get(name, False)) for name, target in _CHARGE_FLAGS.items()
    }
    return PresetExpansion(
        requests=requests,
        properties=flags.properties,
        use_charge=ConsumptionRequest(**charges),
        use_template=flags.template,
    )
