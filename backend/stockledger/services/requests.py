# Overview: Request dataclasses accepted by the coordinator and the summary it returns.

from __future__ import annotations

from dataclasses import dataclass, field

from ..enums import (
    CounterpartyRole,
    PaymentMethod,
    PaymentType,
    PriceTier,
    ReturnType,
    StockAdjustmentType,
    parse_enum,
)
from ..errors import ValidationError
from ..money import MAX_AMOUNT, MAX_UNITS, Money, Quantity, ValueOutOfRange

MAX_IDEMPOTENCY_KEY_LENGTH = 128
MAX_BULK_ROWS = 500


# -- raw payload parsing (HTTP / CLI boundary) ------------------------------


def parse_id(payload: dict, name: str, *, required: bool = True) -> int | None:
    value = payload.get(name)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
    if value <= 0:
        raise ValidationError(f"{name} must be positive")
    return value


def parse_money(payload: dict, name: str, *, required: bool = True) -> Money | None:
    value = payload.get(name)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    if isinstance(value, float):
        # JSON numbers arrive as float; go through their shortest repr, never binary float math
        value = repr(value)
    try:
        return Money.of(value)
    except ValueOutOfRange:
        raise ValidationError(f"{name} is out of range", details={"field": name, "max": str(MAX_AMOUNT)})
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")


def parse_quantity(payload: dict, name: str = "quantity") -> Quantity:
    value = payload.get(name)
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"{name} is required")
    if isinstance(value, float):
        value = repr(value)
    try:
        return Quantity.of(value)
    except ValueOutOfRange:
        raise ValidationError(f"{name} is out of range", details={"field": name, "max": MAX_UNITS})
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a whole number")


def parse_text(payload: dict, name: str, *, required: bool = False, max_length: int = 255) -> str | None:
    value = payload.get(name)
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    value = str(value).strip()
    if not value:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if len(value) > max_length:
        raise ValidationError(f"{name} must be at most {max_length} characters")
    return value


def normalize_idempotency_key(key) -> str:
    if key is None or not str(key).strip():
        raise ValidationError("Idempotency key is required")
    key = str(key).strip()
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValidationError(f"Idempotency key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters")
    return key


def _lines(payload: dict) -> list[dict]:
    lines = payload.get("items")
    if not isinstance(lines, list) or not lines:
        raise ValidationError("At least one item is required")
    for line in lines:
        if not isinstance(line, dict):
            raise ValidationError("Each item must be an object")
    return lines


def _bulk_rows(payload: dict) -> list[dict]:
    rows = payload.get("adjustments")
    if not isinstance(rows, list) or not rows:
        raise ValidationError("adjustments array is required")
    if len(rows) > MAX_BULK_ROWS:
        raise ValidationError(f"Maximum {MAX_BULK_ROWS} adjustments per request")
    for row in rows:
        if not isinstance(row, dict):
            raise ValidationError("Each adjustment must be an object")
    return rows


def _parse_rows(rows: list[dict], parse) -> tuple:
    """Parse bulk rows, naming the 1-based row in any error."""
    parsed = []
    for row_no, row in enumerate(rows, start=1):
        try:
            parsed.append(parse(row))
        except ValidationError as e:
            raise ValidationError(f"Row {row_no}: {e.message}", details={"row": row_no, **e.details})
    return tuple(parsed)


# -- requests ------------------------------------------------------------------


@dataclass(frozen=True)
class SaleLine:
    item_id: int
    quantity: Quantity
    price: Money | None = None
    price_tier: PriceTier | None = None


@dataclass(frozen=True)
class SaleRequest:
    tenant_id: int
    lines: tuple
    payment_type: PaymentType = PaymentType.CASH
    paid_amount: Money | None = None
    customer_id: int | None = None
    user_id: str | None = None

    @classmethod
    def from_payload(cls, tenant_id: int, payload: dict, user_id: str | None = None) -> SaleRequest:
        lines = []
        for raw in _lines(payload):
            tier = raw.get("price_tier")
            lines.append(
                SaleLine(
                    item_id=parse_id(raw, "item_id"),
                    quantity=parse_quantity(raw),
                    price=parse_money(raw, "price", required=False),
                    price_tier=parse_enum(PriceTier, tier, "price_tier") if tier else None,
                )
            )
        return cls(
            tenant_id=tenant_id,
            lines=tuple(lines),
            payment_type=parse_enum(PaymentType, payload.get("payment_type", "CASH"), "payment_type"),
            paid_amount=parse_money(payload, "paid_amount", required=False),
            customer_id=parse_id(payload, "customer_id", required=False),
            user_id=user_id,
        )


@dataclass(frozen=True)
class PurchaseLine:
    item_id: int
    quantity: Quantity
    cost_price: Money | None = None


@dataclass(frozen=True)
class PurchaseRequest:
    tenant_id: int
    supplier_id: int
    lines: tuple
    payment_type: PaymentType = PaymentType.CASH
    paid_amount: Money | None = None
    user_id: str | None = None

    @classmethod
    def from_payload(cls, tenant_id: int, payload: dict, user_id: str | None = None) -> PurchaseRequest:
        lines = tuple(
            PurchaseLine(
                item_id=parse_id(raw, "item_id"),
                quantity=parse_quantity(raw),
                cost_price=parse_money(raw, "cost_price", required=False),
            )
            for raw in _lines(payload)
        )
        return cls(
            tenant_id=tenant_id,
            supplier_id=parse_id(payload, "supplier_id"),
            lines=lines,
            payment_type=parse_enum(PaymentType, payload.get("payment_type", "CASH"), "payment_type"),
            paid_amount=parse_money(payload, "paid_amount", required=False),
            user_id=user_id,
        )


@dataclass(frozen=True)
class PaymentRequest:
    tenant_id: int
    role: CounterpartyRole
    counterparty_id: int
    amount: Money
    method: PaymentMethod = PaymentMethod.CASH
    reference: str | None = None
    user_id: str | None = None

    @classmethod
    def from_payload(cls, tenant_id: int, role: CounterpartyRole, payload: dict, user_id: str | None = None) -> PaymentRequest:
        id_field = "customer_id" if role == CounterpartyRole.CUSTOMER else "supplier_id"
        return cls(
            tenant_id=tenant_id,
            role=role,
            counterparty_id=parse_id(payload, id_field),
            amount=parse_money(payload, "amount"),
            method=parse_enum(PaymentMethod, payload.get("method", "CASH"), "method"),
            reference=parse_text(payload, "reference", max_length=128),
            user_id=user_id,
        )


@dataclass(frozen=True)
class ReturnRequest:
    """
    source_id is the sale id (customer returns) or purchase id (supplier
    returns); line_id the sale_item / purchase_item being returned against.
    """

    tenant_id: int
    role: CounterpartyRole
    source_id: int
    line_id: int
    item_id: int
    quantity: Quantity
    type: ReturnType
    amount: Money
    reason: str | None = None
    user_id: str | None = None

    @classmethod
    def from_payload(cls, tenant_id: int, role: CounterpartyRole, payload: dict, user_id: str | None = None) -> ReturnRequest:
        if role == CounterpartyRole.CUSTOMER:
            source_field, line_field = "sale_id", "sale_item_id"
        else:
            source_field, line_field = "purchase_id", "purchase_item_id"
        return cls(
            tenant_id=tenant_id,
            role=role,
            source_id=parse_id(payload, source_field),
            line_id=parse_id(payload, line_field),
            item_id=parse_id(payload, "item_id"),
            quantity=parse_quantity(payload),
            type=parse_enum(ReturnType, payload.get("type"), "type"),
            amount=parse_money(payload, "amount"),
            reason=parse_text(payload, "reason"),
            user_id=user_id,
        )


@dataclass(frozen=True)
class StockAdjustmentLine:
    """
    One stock correction. quantity is the units to add (INCREASE) or remove
    (DECREASE), or the counted on-hand total the item is set to (SET).
    """

    item_id: int
    type: StockAdjustmentType
    quantity: Quantity
    reason: str

    @classmethod
    def from_payload(cls, payload: dict) -> StockAdjustmentLine:
        return cls(
            item_id=parse_id(payload, "item_id"),
            type=parse_enum(StockAdjustmentType, payload.get("type"), "type"),
            quantity=parse_quantity(payload),
            reason=parse_text(payload, "reason", required=True),
        )


@dataclass(frozen=True)
class StockAdjustmentRequest:
    tenant_id: int
    item_id: int
    type: StockAdjustmentType
    quantity: Quantity
    reason: str
    user_id: str | None = None

    @property
    def line(self) -> StockAdjustmentLine:
        return StockAdjustmentLine(self.item_id, self.type, self.quantity, self.reason)

    @classmethod
    def from_payload(cls, tenant_id: int, payload: dict, user_id: str | None = None) -> StockAdjustmentRequest:
        line = StockAdjustmentLine.from_payload(payload)
        return cls(
            tenant_id=tenant_id,
            item_id=line.item_id,
            type=line.type,
            quantity=line.quantity,
            reason=line.reason,
            user_id=user_id,
        )


@dataclass(frozen=True)
class BulkStockAdjustmentRequest:
    """Many stock corrections applied together: all of them or none."""

    tenant_id: int
    lines: tuple
    user_id: str | None = None

    @classmethod
    def from_payload(cls, tenant_id: int, payload: dict, user_id: str | None = None) -> BulkStockAdjustmentRequest:
        rows = _bulk_rows(payload)
        return cls(
            tenant_id=tenant_id,
            lines=_parse_rows(rows, StockAdjustmentLine.from_payload),
            user_id=user_id,
        )


@dataclass(frozen=True)
class BalanceAdjustmentLine:
    counterparty_id: int
    balance: Money
    reason: str | None = None


@dataclass(frozen=True)
class BalanceAdjustmentRequest:
    """
    Set one or more customer (or supplier) balances to a stated value.

    Accepts a single adjustment ({"customer_id": 7, "balance": "120.00"}) or
    a bulk list under "adjustments". Bulk requests apply all rows or none.
    """

    tenant_id: int
    role: CounterpartyRole
    lines: tuple
    user_id: str | None = None

    @classmethod
    def from_payload(
        cls, tenant_id: int, role: CounterpartyRole, payload: dict, user_id: str | None = None
    ) -> BalanceAdjustmentRequest:
        id_field = "customer_id" if role == CounterpartyRole.CUSTOMER else "supplier_id"

        def parse_line(row: dict) -> BalanceAdjustmentLine:
            balance = parse_money(row, "balance")
            if balance.is_negative:
                raise ValidationError("balance must be a non-negative number")
            return BalanceAdjustmentLine(
                counterparty_id=parse_id(row, id_field),
                balance=balance,
                reason=parse_text(row, "reason"),
            )

        if "adjustments" in payload:
            lines = _parse_rows(_bulk_rows(payload), parse_line)
        else:
            lines = (parse_line(payload),)
        return cls(tenant_id=tenant_id, role=role, lines=lines, user_id=user_id)


# -- result --------------------------------------------------------------------


@dataclass
class RecordResult:
    """Committed summary of one coordinator operation (also what replays return)."""

    operation: str
    tenant_id: int
    record_id: int | None
    quantities: dict = field(default_factory=dict)
    balance: Money | None = None
    counterparty_id: int | None = None
    role: CounterpartyRole | None = None
    record_ids: list = field(default_factory=list)  # bulk operations: every record created
    replayed: bool = False

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "tenant_id": self.tenant_id,
            "record_id": self.record_id,
            "quantities": {str(item_id): int(qty) for item_id, qty in self.quantities.items()},
            "balance": str(self.balance) if self.balance is not None else None,
            "counterparty_id": self.counterparty_id,
            "role": self.role.value if self.role is not None else None,
            "record_ids": list(self.record_ids),
            "replayed": self.replayed,
        }

    @classmethod
    def from_dict(cls, data: dict, *, replayed: bool = False) -> RecordResult:
        return cls(
            operation=data["operation"],
            tenant_id=data["tenant_id"],
            record_id=data.get("record_id"),
            quantities={int(k): Quantity(v) for k, v in (data.get("quantities") or {}).items()},
            balance=Money.of(data["balance"]) if data.get("balance") is not None else None,
            counterparty_id=data.get("counterparty_id"),
            role=CounterpartyRole(data["role"]) if data.get("role") else None,
            record_ids=list(data.get("record_ids") or []),
            replayed=replayed,
        )
