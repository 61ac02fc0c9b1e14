"""ResourceLedger: validates and commits item consumption.

Four independent axes can be requested for one roll: uses (charges), quantity,
recharge, and a linked resource handled by an outside collaborator. All checks
run before anything changes; the item counters are then written in one update.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from Rollsmith.interfaces import ResourceConsumptionCollaborator
from Rollsmith.logging_utils import reject
from Rollsmith.metrics import inc_counter
from Rollsmith.results import ConsumptionStatus, ErrorCode, RollError
from Rollsmith.schemas import Item

log = structlog.get_logger()


@dataclass(frozen=True)
class ConsumptionRequest:
    use_charges: bool = False
    use_quantity: bool = False
    use_recharge: bool = False
    use_linked_resource: bool = False

    @property
    def any(self) -> bool:
        return self.use_charges or self.use_quantity or self.use_recharge or self.use_linked_resource


def _reject(item: Item, code: ErrorCode, message: str) -> RollError:
    return reject("ledger", code, message, item=item.name)


class ResourceLedger:
    def __init__(self, collaborator: ResourceConsumptionCollaborator | None = None) -> None:
        self._collaborator = collaborator

    def validate(self, item: Item, request: ConsumptionRequest) -> RollError | None:
        """Check the counter axes without mutating anything or calling out."""
        has_uses = item.uses.configured
        uses = item.uses.value or 0
        qty = item.quantity
        no_uses = f"{item.name} has no uses remaining."

        if has_uses and request.use_charges and not request.use_quantity:
            if not uses:
                return _reject(item, ErrorCode.INSUFFICIENT_USES, no_uses)

        if request.use_quantity and not request.use_charges:
            if not qty:
                return _reject(item, ErrorCode.INSUFFICIENT_USES, no_uses)

        if has_uses and request.use_charges and request.use_quantity:
            if not uses and qty <= 1:
                return _reject(item, ErrorCode.INSUFFICIENT_USES, no_uses)

        if request.use_recharge and not item.recharge.charged:
            return _reject(item, ErrorCode.NOT_RECHARGED, f"{item.name} is not recharged.")

        return None

    async def consume(
        self, item: Item, request: ConsumptionRequest
    ) -> ConsumptionStatus | RollError:
        """Validate every axis, consult the collaborator, then commit.

        Returns ``DESTROY`` when the item ran out and is flagged to auto-destroy.
        The caller owns removing it.
        """
        err = self.validate(item, request)
        if err is not None:
            return err

        if request.use_linked_resource and item.consume.target and self._collaborator:
            allowed = await self._collaborator.consume(item)
            if not allowed:
                return _reject(
                    item,
                    ErrorCode.RESOURCE_CONSUMPTION_REFUSED,
                    f"Could not consume the resource linked to {item.name}.",
                )

        return self._commit(item, request)

    def _commit(self, item: Item, request: ConsumptionRequest) -> ConsumptionStatus:
        has_uses = item.uses.configured
        current = item.uses.value or 0
        remaining = max(current - 1, 0) if request.use_charges else current
        qty = item.quantity
        status = ConsumptionStatus.SUCCESS
        updates: dict[str, int | bool] = {}

        if has_uses and request.use_charges and not request.use_quantity:
            updates["uses.value"] = remaining
        elif request.use_quantity and not request.use_charges:
            if qty <= 1 and item.uses.auto_destroy:
                status = ConsumptionStatus.DESTROY
            updates["quantity"] = qty - 1
        elif has_uses and request.use_charges and request.use_quantity:
            uses_left = remaining
            qty_left = qty
            # Spending the last use eats one unit of quantity
            if remaining < 1:
                qty_left -= 1
                uses_left = (item.uses.max or 0) if qty_left >= 1 else 0
                if qty_left < 1 and item.uses.auto_destroy:
                    status = ConsumptionStatus.DESTROY
            updates["quantity"] = max(qty_left, 0)
            updates["uses.value"] = max(uses_left, 0)

        if request.use_recharge:
            updates["recharge.charged"] = False

        item.uses.value = int(updates.get("uses.value", item.uses.value))
        item.quantity = int(updates.get("quantity", item.quantity))
        item.recharge.charged = bool(updates.get("recharge.charged", item.recharge.charged))

        if updates:
            inc_counter("ledger.commit")
        log.info(
            "ledger.committed",
            item=item.name,
            updates=updates,
            status=status.value,
        )
        return status
