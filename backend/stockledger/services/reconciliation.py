# Overview: Recomputes stored quantities and balances from immutable history and reports drift.

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func

from ..enums import CounterpartyRole, PaymentType, ReturnType
from ..extensions import db
from ..models import (
    BalanceAdjustment,
    Customer,
    CustomerPayment,
    CustomerReturn,
    Item,
    Purchase,
    PurchaseItem,
    Sale,
    SaleItem,
    StockAdjustment,
    Supplier,
    SupplierPayment,
    SupplierReturn,
)
from ..money import Money, Quantity

logger = logging.getLogger(__name__)

"""
Ledger invariants checked here

- item.quantity == opening_quantity + purchased - sold + customer returns
                   - supplier returns + signed stock adjustment deltas
- customer.balance == opening_balance + sum(total - paid) over the customer's
                      sales - payments - CREDIT return amounts
                      + balance adjustment deltas
- supplier.balance: same shape over purchases, supplier payments,
                    supplier CREDIT returns and balance adjustments
"""


@dataclass(frozen=True)
class Drift:
    kind: str  # ITEM, CUSTOMER, SUPPLIER
    subject_id: int
    stored: str
    expected: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "subject_id": self.subject_id, "stored": self.stored, "expected": self.expected}


def _money(value) -> Money:
    if value is None:
        return Money.zero()
    if isinstance(value, Money):
        return value
    return Money.from_cents(int(value))


def _quantity(value) -> Quantity:
    if value is None:
        return Quantity.zero()
    return Quantity.of(int(value))


def _sum(column, *criteria, join=None):
    query = db.session.query(func.sum(column))
    if join is not None:
        query = query.join(*join)
    return query.filter(*criteria).scalar()


def _adjusted_balance(tenant_id: int, role: CounterpartyRole, counterparty_id: int) -> Money:
    return _money(_sum(
        BalanceAdjustment.amount_delta,
        BalanceAdjustment.tenant_id == tenant_id,
        BalanceAdjustment.role == role.value,
        BalanceAdjustment.counterparty_id == counterparty_id,
    ))


def expected_item_quantity(item: Item) -> Quantity:
    tenant_id = item.tenant_id
    purchased = _quantity(_sum(
        PurchaseItem.quantity, Purchase.tenant_id == tenant_id, PurchaseItem.item_id == item.id,
        join=(Purchase, Purchase.id == PurchaseItem.purchase_id),
    ))
    sold = _quantity(_sum(
        SaleItem.quantity, Sale.tenant_id == tenant_id, SaleItem.item_id == item.id,
        join=(Sale, Sale.id == SaleItem.sale_id),
    ))
    returned_in = _quantity(_sum(
        CustomerReturn.quantity, CustomerReturn.tenant_id == tenant_id, CustomerReturn.item_id == item.id,
    ))
    returned_out = _quantity(_sum(
        SupplierReturn.quantity, SupplierReturn.tenant_id == tenant_id, SupplierReturn.item_id == item.id,
    ))
    adjusted = _quantity(_sum(
        StockAdjustment.quantity_delta, StockAdjustment.tenant_id == tenant_id, StockAdjustment.item_id == item.id,
    ))
    return item.opening_quantity + purchased - sold + returned_in - returned_out + adjusted


def expected_customer_balance(customer: Customer) -> Money:
    tenant_id = customer.tenant_id
    credit_sales = (Sale.tenant_id == tenant_id, Sale.customer_id == customer.id, Sale.payment_type == PaymentType.CREDIT.value)
    sold = _money(_sum(Sale.total_amount, *credit_sales))
    paid_upfront = _money(_sum(Sale.paid_amount, *credit_sales))
    payments = _money(_sum(
        CustomerPayment.amount, CustomerPayment.tenant_id == tenant_id, CustomerPayment.customer_id == customer.id,
    ))
    credited = _money(_sum(
        CustomerReturn.amount,
        CustomerReturn.tenant_id == tenant_id,
        CustomerReturn.type == ReturnType.CREDIT.value,
        Sale.customer_id == customer.id,
        join=(Sale, Sale.id == CustomerReturn.sale_id),
    ))
    adjusted = _adjusted_balance(tenant_id, CounterpartyRole.CUSTOMER, customer.id)
    return customer.opening_balance + sold - paid_upfront - payments - credited + adjusted


def expected_supplier_balance(supplier: Supplier) -> Money:
    tenant_id = supplier.tenant_id
    credit_purchases = (
        Purchase.tenant_id == tenant_id,
        Purchase.supplier_id == supplier.id,
        Purchase.payment_type == PaymentType.CREDIT.value,
    )
    bought = _money(_sum(Purchase.total_amount, *credit_purchases))
    paid_upfront = _money(_sum(Purchase.paid_amount, *credit_purchases))
    payments = _money(_sum(
        SupplierPayment.amount, SupplierPayment.tenant_id == tenant_id, SupplierPayment.supplier_id == supplier.id,
    ))
    credited = _money(_sum(
        SupplierReturn.amount,
        SupplierReturn.tenant_id == tenant_id,
        SupplierReturn.type == ReturnType.CREDIT.value,
        Purchase.supplier_id == supplier.id,
        join=(Purchase, Purchase.id == SupplierReturn.purchase_id),
    ))
    adjusted = _adjusted_balance(tenant_id, CounterpartyRole.SUPPLIER, supplier.id)
    return supplier.opening_balance + bought - paid_upfront - payments - credited + adjusted


def verify_tenant(tenant_id: int) -> list[Drift]:
    """Check every item and counterparty of one tenant; returns the mismatches."""
    drifts = []
    for item in db.session.query(Item).filter_by(tenant_id=tenant_id).order_by(Item.id):
        expected = expected_item_quantity(item)
        if expected != item.quantity:
            drifts.append(Drift("ITEM", item.id, str(item.quantity), str(expected)))
    for customer in db.session.query(Customer).filter_by(tenant_id=tenant_id).order_by(Customer.id):
        expected = expected_customer_balance(customer)
        if expected != customer.balance:
            drifts.append(Drift("CUSTOMER", customer.id, str(customer.balance), str(expected)))
    for supplier in db.session.query(Supplier).filter_by(tenant_id=tenant_id).order_by(Supplier.id):
        expected = expected_supplier_balance(supplier)
        if expected != supplier.balance:
            drifts.append(Drift("SUPPLIER", supplier.id, str(supplier.balance), str(expected)))

    if drifts:
        logger.warning("Ledger drift detected for tenant %s: %s mismatches", tenant_id, len(drifts))
    return drifts
