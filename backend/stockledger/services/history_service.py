# Overview: Tenant-scoped history reads for payments, returns, adjustments and counterparty statements.

"""
History reads

Every listing is tenant-scoped, newest first, clamped to 1..500 rows, and
filtered on created_at (UTC, inclusive) when start/end are given. The
summary block totals the rows that were returned.

Statements are built from ACCOUNT ledger postings, the same rows that moved
the stored balance, so closing_balance always equals the last posted
balance_after in the window.
"""

from __future__ import annotations

from datetime import datetime

from ..enums import CounterpartyRole, LedgerKind, StockAdjustmentType
from ..errors import ReferenceNotFoundError
from ..extensions import db
from ..models import (
    BalanceAdjustment,
    Customer,
    CustomerPayment,
    CustomerReturn,
    LedgerPosting,
    StockAdjustment,
    Supplier,
    SupplierPayment,
    SupplierReturn,
)
from ..money import Money, Quantity
from ..time_utils import to_utc_z

MAX_LIMIT = 500


def _clamp(limit) -> int:
    return max(1, min(int(limit), MAX_LIMIT))


def _window(query, column, start: datetime | None, end: datetime | None):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column <= end)
    return query


def _newest(query, model, limit) -> list:
    return query.order_by(model.id.desc()).limit(_clamp(limit)).all()


def _money_total(values) -> Money:
    return sum(values, Money.zero())


def _quantity_total(values) -> Quantity:
    return sum(values, Quantity.zero())


def list_payments(
    tenant_id: int,
    role: CounterpartyRole,
    *,
    counterparty_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> dict:
    if CounterpartyRole(role) == CounterpartyRole.CUSTOMER:
        model, owner = CustomerPayment, CustomerPayment.customer_id
    else:
        model, owner = SupplierPayment, SupplierPayment.supplier_id

    query = db.session.query(model).filter(model.tenant_id == tenant_id)
    if counterparty_id is not None:
        query = query.filter(owner == counterparty_id)
    rows = _newest(_window(query, model.created_at, start, end), model, limit)
    return {
        "items": [row.to_dict() for row in rows],
        "summary": {
            "count": len(rows),
            "total_amount": str(_money_total(row.amount for row in rows)),
        },
    }


def list_returns(
    tenant_id: int,
    role: CounterpartyRole,
    *,
    source_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> dict:
    """source_id filters by sale (customer returns) or purchase (supplier returns)."""
    if CounterpartyRole(role) == CounterpartyRole.CUSTOMER:
        model, source = CustomerReturn, CustomerReturn.sale_id
    else:
        model, source = SupplierReturn, SupplierReturn.purchase_id

    query = db.session.query(model).filter(model.tenant_id == tenant_id)
    if source_id is not None:
        query = query.filter(source == source_id)
    rows = _newest(_window(query, model.created_at, start, end), model, limit)
    return {
        "items": [row.to_dict() for row in rows],
        "summary": {
            "count": len(rows),
            "total_quantity": int(_quantity_total(row.quantity for row in rows)),
            "total_amount": str(_money_total(row.amount for row in rows)),
        },
    }


def list_stock_adjustments(
    tenant_id: int,
    *,
    item_id: int | None = None,
    adjustment_type: StockAdjustmentType | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> dict:
    query = db.session.query(StockAdjustment).filter(StockAdjustment.tenant_id == tenant_id)
    if item_id is not None:
        query = query.filter(StockAdjustment.item_id == item_id)
    if adjustment_type is not None:
        query = query.filter(StockAdjustment.type == adjustment_type.value)
    rows = _newest(_window(query, StockAdjustment.created_at, start, end), StockAdjustment, limit)
    return {
        "items": [row.to_dict() for row in rows],
        "summary": {
            "count": len(rows),
            "net_quantity_delta": int(_quantity_total(row.quantity_delta for row in rows)),
        },
    }


def list_balance_adjustments(
    tenant_id: int,
    *,
    role: CounterpartyRole | None = None,
    counterparty_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> dict:
    query = db.session.query(BalanceAdjustment).filter(BalanceAdjustment.tenant_id == tenant_id)
    if role is not None:
        query = query.filter(BalanceAdjustment.role == CounterpartyRole(role).value)
    if counterparty_id is not None:
        query = query.filter(BalanceAdjustment.counterparty_id == counterparty_id)
    rows = _newest(_window(query, BalanceAdjustment.created_at, start, end), BalanceAdjustment, limit)
    return {
        "items": [row.to_dict() for row in rows],
        "summary": {
            "count": len(rows),
            "net_amount_delta": str(_money_total(row.amount_delta for row in rows)),
        },
    }


def build_statement(
    tenant_id: int,
    role: CounterpartyRole,
    counterparty_id: int,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """
    Account statement for one customer or supplier.

    opening_balance is the balance just before `start` (the counterparty's
    opening balance when nothing was posted earlier). Each entry carries the
    running balance_after; charges are increases, credits are decreases.
    """
    role = CounterpartyRole(role)
    model = Customer if role == CounterpartyRole.CUSTOMER else Supplier
    label = model.__name__
    counterparty = db.session.query(model).filter_by(id=counterparty_id, tenant_id=tenant_id).first()
    if counterparty is None:
        raise ReferenceNotFoundError(
            f"{label} not found or does not belong to your tenant",
            details={"entity": label, "id": counterparty_id},
        )

    postings = db.session.query(LedgerPosting).filter(
        LedgerPosting.tenant_id == tenant_id,
        LedgerPosting.ledger == LedgerKind.ACCOUNT.value,
        LedgerPosting.role == role.value,
        LedgerPosting.subject_id == counterparty.id,
    )

    opening = counterparty.opening_balance
    if start is not None:
        earlier = postings.filter(LedgerPosting.created_at < start).order_by(LedgerPosting.id.desc()).first()
        if earlier is not None:
            opening = earlier.balance_after

    entries = _window(postings, LedgerPosting.created_at, start, end).order_by(LedgerPosting.id).all()
    charges = _money_total(p.amount_delta for p in entries if p.amount_delta.is_positive)
    credits = _money_total(p.amount_delta for p in entries if p.amount_delta.is_negative)
    closing = entries[-1].balance_after if entries else opening

    return {
        "role": role.value,
        "counterparty": counterparty.to_dict(),
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "opening_balance": str(opening),
        "entries": [p.to_dict() for p in entries],
        "total_charges": str(charges),
        "total_credits": str(abs(credits)),
        "closing_balance": str(closing),
    }
