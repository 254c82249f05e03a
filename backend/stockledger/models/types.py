# Overview: Column types that persist Money/Quantity values.

from __future__ import annotations

from sqlalchemy.types import Integer, TypeDecorator

from ..money import Money, Quantity


class MoneyType(TypeDecorator):
    """Money <-> integer cents (authoritative storage in cents)."""

    impl = Integer
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return Money.of(value).cents

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Money.from_cents(int(value))


class QuantityType(TypeDecorator):
    """Quantity <-> integer units."""

    impl = Integer
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return Quantity.of(value).units

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Quantity(int(value))
