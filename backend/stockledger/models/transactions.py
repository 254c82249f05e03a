from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .types import MoneyType, QuantityType


class Sale(db.Model):
    """
    Sale header. Create-only: corrections are returns, never edits.

    customer_id is a weak reference (NULL for anonymous cash sales).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    user_id = db.Column(db.String(64), nullable=True)

    total_amount = db.Column(MoneyType, nullable=False)
    paid_amount = db.Column(MoneyType, nullable=False)
    payment_type = db.Column(db.String(16), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("SaleItem", backref="sale", lazy=True, order_by="SaleItem.line_no")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "total_amount": str(self.total_amount),
            "paid_amount": str(self.paid_amount),
            "payment_type": self.payment_type,
            "created_at": to_utc_z(self.created_at),
            "items": [line.to_dict() for line in self.items],
        }


class SaleItem(db.Model):
    """Individual line on a sale."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_no", name="uq_sale_items_sale_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    line_no = db.Column(db.Integer, nullable=False)

    quantity = db.Column(QuantityType, nullable=False)
    price = db.Column(MoneyType, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "item_id": self.item_id,
            "line_no": self.line_no,
            "quantity": int(self.quantity),
            "price": str(self.price),
        }


class Purchase(db.Model):
    """Purchase header. Create-only."""
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=True)

    total_amount = db.Column(MoneyType, nullable=False)
    paid_amount = db.Column(MoneyType, nullable=False)
    payment_type = db.Column(db.String(16), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("PurchaseItem", backref="purchase", lazy=True, order_by="PurchaseItem.line_no")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "supplier_id": self.supplier_id,
            "user_id": self.user_id,
            "total_amount": str(self.total_amount),
            "paid_amount": str(self.paid_amount),
            "payment_type": self.payment_type,
            "created_at": to_utc_z(self.created_at),
            "items": [line.to_dict() for line in self.items],
        }


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"
    __table_args__ = (
        db.UniqueConstraint("purchase_id", "line_no", name="uq_purchase_items_purchase_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    line_no = db.Column(db.Integer, nullable=False)

    quantity = db.Column(QuantityType, nullable=False)
    cost_price = db.Column(MoneyType, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "item_id": self.item_id,
            "line_no": self.line_no,
            "quantity": int(self.quantity),
            "cost_price": str(self.cost_price),
        }


class CustomerPayment(db.Model):
    """Money received from a customer against their balance."""
    __tablename__ = "customer_payments"
    __table_args__ = (
        db.Index("ix_customer_payments_tenant_customer", "tenant_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    user_id = db.Column(db.String(64), nullable=True)

    amount = db.Column(MoneyType, nullable=False)
    method = db.Column(db.String(16), nullable=False)
    reference = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "amount": str(self.amount),
            "method": self.method,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
        }


class SupplierPayment(db.Model):
    """Money paid to a supplier against what the business owes."""
    __tablename__ = "supplier_payments"
    __table_args__ = (
        db.Index("ix_supplier_payments_tenant_supplier", "tenant_id", "supplier_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)
    user_id = db.Column(db.String(64), nullable=True)

    amount = db.Column(MoneyType, nullable=False)
    method = db.Column(db.String(16), nullable=False)
    reference = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "supplier_id": self.supplier_id,
            "user_id": self.user_id,
            "amount": str(self.amount),
            "method": self.method,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
        }
