# Overview: Validates a return against its original line and computes its ledger effects.

from __future__ import annotations

from dataclasses import dataclass

from ..enums import CounterpartyRole, ReturnType, parse_enum
from ..errors import OverReturnError, ValidationError
from ..money import Money, Quantity
from .repository import LedgerRepository


@dataclass(frozen=True)
class ReturnEffect:
    inventory_delta: Quantity
    balance_delta: Money


class ReturnProcessor:
    """
    Customer returns bring stock back (+q), supplier returns send it out (-q).

    Balance effect by return type, same for both roles:
    - CASH: refund settled in cash, balance unchanged
    - CREDIT: stored balance decreases by the amount (customer owes less,
      business owes the supplier less)
    - EXCHANGE: balance unchanged; the replacement goes through as a new sale
    """

    def __init__(self, repository: LedgerRepository):
        self.repository = repository

    def process(self, request, line) -> ReturnEffect:
        role = parse_enum(CounterpartyRole, request.role, "role")
        return_type = parse_enum(ReturnType, request.type, "type")
        quantity = Quantity.of(request.quantity)
        amount = Money.of(request.amount)

        if not quantity.is_positive:
            raise ValidationError("Return quantity must be positive", details={"quantity": int(quantity)})
        if amount.is_negative:
            raise ValidationError("Return amount cannot be negative", details={"amount": str(amount)})
        if line.item_id != request.item_id:
            raise ValidationError(
                "Returned item does not match the original line",
                details={"line_item_id": line.item_id, "item_id": request.item_id},
            )

        already_returned = self.repository.get_prior_returns_for_line(request.tenant_id, role, line.id)
        available = line.quantity - already_returned
        if quantity > available:
            raise OverReturnError(
                f"Cannot return {quantity}; only {available} of {line.quantity} still returnable",
                details={
                    "original_quantity": int(line.quantity),
                    "already_returned": int(already_returned),
                    "available": int(available),
                    "requested": int(quantity),
                },
            )

        inventory_delta = quantity if role == CounterpartyRole.CUSTOMER else -quantity
        if return_type == ReturnType.CREDIT:
            balance_delta = -amount
        else:
            balance_delta = Money.zero()
        return ReturnEffect(inventory_delta=inventory_delta, balance_delta=balance_delta)
