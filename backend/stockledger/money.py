"""
Money and Quantity value types.

Both are immutable, fixed-precision values used wherever an amount or a stock
count flows through the ledgers. Neither carries business meaning; they only
guarantee that arithmetic never goes through float.

- Money: Decimal quantized to 2 places (ROUND_HALF_UP). Persisted as integer
  cents, the same way prices are stored elsewhere in the schema.
- Quantity: whole stock units. Persisted as a plain integer.

Floats and bools are rejected at construction. Callers converting user input
should pass strings ("12.50"), ints, or Decimals.

Both types are bounded so every value fits the 64-bit integer columns it is
stored in (MAX_AMOUNT in cents, MAX_UNITS in units). Anything larger raises
ValueOutOfRange, a ValueError.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("9999999999999.99")
MAX_UNITS = 10**12


class ValueOutOfRange(ValueError):
    """Well-formed amount or quantity that is too large to store."""


def _to_decimal(value, kind: str) -> Decimal:
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"{kind} cannot be built from {type(value).__name__}; use str, int or Decimal")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Invalid {kind} value: {value!r}") from exc
    else:
        raise TypeError(f"{kind} cannot be built from {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"Invalid {kind} value: {value!r}")
    return result


@dataclass(frozen=True, slots=True)
class Money:
    """Currency amount with two fixed decimal places."""

    amount: Decimal

    def __post_init__(self) -> None:
        amount = _to_decimal(self.amount, "Money")
        if abs(amount) > MAX_AMOUNT:
            raise ValueOutOfRange(f"Money amount out of range: {self.amount!r} (max {MAX_AMOUNT})")
        try:
            amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid Money value: {self.amount!r}") from exc
        object.__setattr__(self, "amount", amount)

    @classmethod
    def of(cls, value) -> Money:
        if isinstance(value, Money):
            return value
        return cls(value)

    @classmethod
    def zero(cls) -> Money:
        return cls(Decimal("0"))

    @classmethod
    def from_cents(cls, cents: int) -> Money:
        if isinstance(cents, bool) or not isinstance(cents, int):
            raise TypeError("cents must be an int")
        return cls(Decimal(cents) / 100)

    @property
    def cents(self) -> int:
        return int((self.amount * 100).to_integral_value(rounding=ROUND_HALF_UP))

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def _coerce(self, other) -> Money:
        if isinstance(other, Money):
            return other
        if isinstance(other, (int, Decimal)) and not isinstance(other, bool):
            return Money(other)
        return NotImplemented

    def __add__(self, other) -> Money:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return Money(self.amount + other.amount)

    __radd__ = __add__

    def __sub__(self, other) -> Money:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return Money(self.amount - other.amount)

    def __rsub__(self, other) -> Money:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return Money(other.amount - self.amount)

    def __neg__(self) -> Money:
        return Money(-self.amount)

    def __abs__(self) -> Money:
        return Money(abs(self.amount))

    def __lt__(self, other) -> bool:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return self.amount < other.amount

    def __le__(self, other) -> bool:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return self.amount <= other.amount

    def __gt__(self, other) -> bool:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return self.amount > other.amount

    def __ge__(self, other) -> bool:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount:.2f}"

    def __repr__(self) -> str:
        return f"Money('{self.amount:.2f}')"


@dataclass(frozen=True, slots=True)
class Quantity:
    """Whole stock units. Signed, so it can also represent a delta."""

    units: int

    def __post_init__(self) -> None:
        value = _to_decimal(self.units, "Quantity")
        if abs(value) > MAX_UNITS:
            raise ValueOutOfRange(f"Quantity out of range: {self.units!r} (max {MAX_UNITS})")
        if value != value.to_integral_value():
            raise ValueError(f"Quantity must be a whole number of units, got {self.units!r}")
        object.__setattr__(self, "units", int(value))

    @classmethod
    def of(cls, value) -> Quantity:
        if isinstance(value, Quantity):
            return value
        return cls(value)

    @classmethod
    def zero(cls) -> Quantity:
        return cls(0)

    @property
    def is_zero(self) -> bool:
        return self.units == 0

    @property
    def is_positive(self) -> bool:
        return self.units > 0

    @property
    def is_negative(self) -> bool:
        return self.units < 0

    def _coerce(self, other) -> Quantity:
        if isinstance(other, Quantity):
            return other
        if isinstance(other, int) and not isinstance(other, bool):
            return Quantity(other)
        return NotImplemented

    def __add__(self, other) -> Quantity:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return Quantity(self.units + other.units)

    __radd__ = __add__

    def __sub__(self, other) -> Quantity:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return Quantity(self.units - other.units)

    def __rsub__(self, other) -> Quantity:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return Quantity(other.units - self.units)

    def __neg__(self) -> Quantity:
        return Quantity(-self.units)

    def __mul__(self, other):
        # Quantity * unit price -> line total
        if isinstance(other, Money):
            return Money(other.amount * self.units)
        return NotImplemented

    __rmul__ = __mul__

    def __lt__(self, other) -> bool:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return self.units < other.units

    def __le__(self, other) -> bool:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return self.units <= other.units

    def __gt__(self, other) -> bool:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return self.units > other.units

    def __ge__(self, other) -> bool:
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return self.units >= other.units

    def __int__(self) -> int:
        return self.units

    def __str__(self) -> str:
        return str(self.units)

    def __repr__(self) -> str:
        return f"Quantity({self.units})"
