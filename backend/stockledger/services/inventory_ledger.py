# Overview: Sole writer of Item.quantity; applies signed stock deltas under tenant policy.

from __future__ import annotations

import logging

from ..enums import LedgerKind
from ..errors import InsufficientStockError
from ..models import LedgerPosting
from ..money import Quantity
from .repository import LedgerRepository

logger = logging.getLogger(__name__)


class InventoryLedger:
    """
    Stock ledger.

    apply_delta() is the only code path that changes Item.quantity. Each call
    stages a LedgerPosting keyed by (tenant, item, event_key); a second call
    with the same event_key is a no-op that returns the current quantity.

    Deltas are staged on the repository; nothing is durable until the
    coordinator commits the unit of work.
    """

    def __init__(self, repository: LedgerRepository):
        self.repository = repository

    def apply_delta(
        self,
        tenant_id: int,
        item_id: int,
        signed_quantity,
        reason: str,
        *,
        event_key: str,
    ) -> Quantity:
        delta = Quantity.of(signed_quantity)
        item = self.repository.get_item(tenant_id, item_id, lock=True)

        if self.repository.find_posting(tenant_id, LedgerKind.INVENTORY, item.id, event_key) is not None:
            logger.info("Inventory delta already applied: item=%s event=%s", item.id, event_key)
            return item.quantity

        tenant = self.repository.get_tenant(tenant_id)
        current = item.quantity
        new_quantity = current + delta

        if new_quantity.is_negative and delta.is_negative and not tenant.backorder_enabled:
            raise InsufficientStockError(
                item_id=item.id,
                current_quantity=current,
                requested_delta=delta,
            )

        item.quantity = new_quantity
        self.repository.stage(
            LedgerPosting(
                tenant_id=tenant_id,
                ledger=LedgerKind.INVENTORY.value,
                subject_id=item.id,
                event_key=event_key,
                quantity_delta=delta,
                quantity_after=new_quantity,
                reason=reason,
            )
        )
        logger.debug("Inventory delta staged: item=%s delta=%s after=%s", item.id, delta, new_quantity)
        return new_quantity
