# Overview: Splits a sale/purchase total into cash received now and balance owed.

from __future__ import annotations

from dataclasses import dataclass

from ..enums import PaymentType
from ..errors import ValidationError
from ..money import Money


@dataclass(frozen=True)
class Allocation:
    immediate_cash: Money
    balance_delta: Money


def allocate(total_amount, paid_amount, payment_type) -> Allocation:
    """
    CASH: everything is settled now, nothing is owed.
    CREDIT: paid now, remainder owed (counterparty balance grows by total - paid).

    Amounts are never clamped. A CASH paid amount that differs from the
    total, or a CREDIT paid amount above the total, is rejected.
    """
    total = Money.of(total_amount)
    paid = Money.of(paid_amount)
    payment_type = PaymentType(payment_type)

    if total.is_negative:
        raise ValidationError("Total amount cannot be negative", details={"total_amount": str(total)})
    if paid.is_negative:
        raise ValidationError("Paid amount cannot be negative", details={"paid_amount": str(paid)})

    if payment_type == PaymentType.CASH:
        if paid != total:
            raise ValidationError(
                "Cash transactions must be paid in full",
                details={"total_amount": str(total), "paid_amount": str(paid)},
            )
        return Allocation(immediate_cash=total, balance_delta=Money.zero())

    if paid > total:
        raise ValidationError(
            "Paid amount cannot exceed total amount",
            details={"total_amount": str(total), "paid_amount": str(paid)},
        )
    return Allocation(immediate_cash=paid, balance_delta=total - paid)


def allocate_payment(amount) -> Allocation:
    """Standalone payment against an outstanding balance."""
    amount = Money.of(amount)
    if not amount.is_positive:
        raise ValidationError("Payment amount must be positive", details={"amount": str(amount)})
    return Allocation(immediate_cash=amount, balance_delta=-amount)
