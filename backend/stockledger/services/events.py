# Overview: Domain events published after a unit of work commits, and their dispatcher.

"""
Domain events

Events are emitted only after the unit of work they describe has committed.
Subscribers (receipt printers, SMS reminders, dashboards) are outside the
core: a failing subscriber is logged and reported, and never touches the
committed ledger state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields

from ..enums import CounterpartyRole
from ..money import Money, Quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleRecorded:
    tenant_id: int
    sale_id: int
    customer_id: int | None
    total_amount: Money
    paid_amount: Money
    balance: Money | None


@dataclass(frozen=True)
class PurchaseRecorded:
    tenant_id: int
    purchase_id: int
    supplier_id: int
    total_amount: Money
    paid_amount: Money
    balance: Money


@dataclass(frozen=True)
class PaymentRecorded:
    tenant_id: int
    payment_id: int
    role: CounterpartyRole
    counterparty_id: int
    amount: Money
    balance: Money

    @property
    def customer_id(self) -> int | None:
        return self.counterparty_id if self.role == CounterpartyRole.CUSTOMER else None


@dataclass(frozen=True)
class ReturnRecorded:
    tenant_id: int
    return_id: int
    role: CounterpartyRole
    counterparty_id: int | None
    item_id: int
    quantity: Quantity
    return_type: str
    amount: Money
    balance: Money | None


@dataclass(frozen=True)
class StockAdjusted:
    tenant_id: int
    adjustment_id: int
    item_id: int
    adjustment_type: str
    quantity: Quantity
    new_quantity: Quantity


@dataclass(frozen=True)
class BalanceAdjusted:
    tenant_id: int
    adjustment_id: int
    role: CounterpartyRole
    counterparty_id: int
    previous_balance: Money
    new_balance: Money
    reason: str | None


@dataclass(frozen=True)
class BalanceReminder:
    tenant_id: int
    customer_id: int
    customer_name: str
    phone: str | None
    balance: Money


def event_name(event) -> str:
    return type(event).__name__


def describe(event) -> dict:
    """JSON-friendly view of an event (Money/Quantity as strings/ints)."""
    data = {"event": event_name(event)}
    for field in fields(event):
        key, value = field.name, getattr(event, field.name)
        if isinstance(value, Money):
            value = str(value)
        elif isinstance(value, Quantity):
            value = int(value)
        elif isinstance(value, CounterpartyRole):
            value = value.value
        data[key] = value
    return data


class EventDispatcher:
    """
    In-process subscriber registry.

    subscribe(handler) receives every event; subscribe(handler, SaleRecorded)
    only that type. publish() never raises.
    """

    def __init__(self):
        self._subscribers = []

    def subscribe(self, handler, event_type=None) -> None:
        self._subscribers.append((handler, event_type))

    def unsubscribe(self, handler) -> None:
        self._subscribers = [(h, t) for h, t in self._subscribers if h != handler]

    def publish(self, event) -> dict:
        name = event_name(event)
        result = {"event": name, "subscribers_notified": 0, "subscribers_failed": 0, "failures": []}

        for handler, event_type in list(self._subscribers):
            if event_type is not None and not isinstance(event, event_type):
                continue
            handler_name = getattr(handler, "__qualname__", repr(handler))
            try:
                handler(event)
                result["subscribers_notified"] += 1
            except Exception as exc:
                result["subscribers_failed"] += 1
                result["failures"].append(
                    {"handler": handler_name, "error": str(exc), "error_type": type(exc).__name__}
                )
                logger.error("Subscriber %s failed for %s: %s", handler_name, name, exc, exc_info=True)

        logger.debug(
            "Dispatched %s: %s notified, %s failed",
            name, result["subscribers_notified"], result["subscribers_failed"],
        )
        return result


def log_event(event) -> None:
    """Default subscriber: records every event in the application log."""
    logger.info("Ledger event %s", describe(event))
