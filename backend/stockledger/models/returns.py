from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .types import MoneyType, QuantityType


class CustomerReturn(db.Model):
    """
    Goods coming back from a customer against one sale line.

    type decides the balance effect:
    - CASH: refund leaves the till, no balance change
    - CREDIT: customer balance decreases by amount
    - EXCHANGE: no balance change; the replacement is its own sale
    """
    __tablename__ = "customer_returns"
    __table_args__ = (
        db.Index("ix_customer_returns_sale_item", "sale_item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=True)

    quantity = db.Column(QuantityType, nullable=False)
    type = db.Column(db.String(16), nullable=False)
    amount = db.Column(MoneyType, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sale_id": self.sale_id,
            "sale_item_id": self.sale_item_id,
            "item_id": self.item_id,
            "user_id": self.user_id,
            "quantity": int(self.quantity),
            "type": self.type,
            "amount": str(self.amount),
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }


class SupplierReturn(db.Model):
    """Goods sent back to a supplier against one purchase line."""
    __tablename__ = "supplier_returns"
    __table_args__ = (
        db.Index("ix_supplier_returns_purchase_item", "purchase_item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    purchase_item_id = db.Column(db.Integer, db.ForeignKey("purchase_items.id"), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=True)

    quantity = db.Column(QuantityType, nullable=False)
    type = db.Column(db.String(16), nullable=False)
    amount = db.Column(MoneyType, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "purchase_id": self.purchase_id,
            "purchase_item_id": self.purchase_item_id,
            "item_id": self.item_id,
            "user_id": self.user_id,
            "quantity": int(self.quantity),
            "type": self.type,
            "amount": str(self.amount),
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }


class StockAdjustment(db.Model):
    """
    Manual stock correction. Inventory only, no balance effect.

    quantity is what the user entered (units to add or remove, or the counted
    total for SET). quantity_delta is the signed change actually applied.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_stock_adjustments_tenant_item", "tenant_id", "item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    user_id = db.Column(db.String(64), nullable=True)

    type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(QuantityType, nullable=False)
    quantity_delta = db.Column(QuantityType, nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "item_id": self.item_id,
            "user_id": self.user_id,
            "type": self.type,
            "quantity": int(self.quantity),
            "quantity_delta": int(self.quantity_delta),
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }


class BalanceAdjustment(db.Model):
    """
    Manual correction of a customer or supplier balance.

    The user states the balance the account should have; the row keeps the
    balance it replaced and the signed delta posted through AccountLedger.
    """
    __tablename__ = "balance_adjustments"
    __table_args__ = (
        db.Index("ix_balance_adjustments_counterparty", "tenant_id", "role", "counterparty_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False)  # CUSTOMER, SUPPLIER
    counterparty_id = db.Column(db.Integer, nullable=False)
    user_id = db.Column(db.String(64), nullable=True)

    previous_balance = db.Column(MoneyType, nullable=False)
    new_balance = db.Column(MoneyType, nullable=False)
    amount_delta = db.Column(MoneyType, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "role": self.role,
            "counterparty_id": self.counterparty_id,
            "user_id": self.user_id,
            "previous_balance": str(self.previous_balance),
            "new_balance": str(self.new_balance),
            "amount_delta": str(self.amount_delta),
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }
