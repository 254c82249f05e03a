"""Closed value sets shared by models, services and routes."""

from enum import Enum


class PaymentType(str, Enum):
    CASH = "CASH"
    CREDIT = "CREDIT"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    MOMO = "MOMO"
    BANK = "BANK"


class ReturnType(str, Enum):
    CASH = "CASH"
    CREDIT = "CREDIT"
    EXCHANGE = "EXCHANGE"


class StockAdjustmentType(str, Enum):
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"
    SET = "SET"


class CounterpartyRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    SUPPLIER = "SUPPLIER"


class PriceTier(str, Enum):
    RETAIL = "RETAIL"
    WHOLESALE = "WHOLESALE"
    PROMO = "PROMO"


class TenantStatus(str, Enum):
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class LedgerKind(str, Enum):
    INVENTORY = "INVENTORY"
    ACCOUNT = "ACCOUNT"


def parse_enum(enum_cls, value, field: str):
    """Coerce a raw value into enum_cls, raising ValidationError on unknown input."""
    from .errors import ValidationError

    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except (ValueError, AttributeError):
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field}: {value!r}. Must be one of {allowed}")
