from __future__ import annotations

from ..extensions import db
from ..money import Money
from ..time_utils import to_utc_z
from .types import MoneyType


class Customer(db.Model):
    """
    Customer account.

    balance = amount the customer owes the business. Negative means the
    customer holds credit (overpayment, credit return). Written ONLY by
    AccountLedger.apply_delta.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_tenant_name", "tenant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    balance = db.Column(MoneyType, nullable=False, default=Money.zero())
    opening_balance = db.Column(MoneyType, nullable=False, default=Money.zero())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    __mapper_args__ = {"version_id_col": version_id}

    def __init__(self, **kwargs):
        kwargs.setdefault("opening_balance", kwargs.get("balance", Money.zero()))
        super().__init__(**kwargs)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "phone": self.phone,
            "balance": str(self.balance),
            "opening_balance": str(self.opening_balance),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    """
    Supplier account.

    balance = amount the business owes the supplier. Written ONLY by
    AccountLedger.apply_delta.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_tenant_name", "tenant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    balance = db.Column(MoneyType, nullable=False, default=Money.zero())
    opening_balance = db.Column(MoneyType, nullable=False, default=Money.zero())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    __mapper_args__ = {"version_id_col": version_id}

    def __init__(self, **kwargs):
        kwargs.setdefault("opening_balance", kwargs.get("balance", Money.zero()))
        super().__init__(**kwargs)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "phone": self.phone,
            "balance": str(self.balance),
            "opening_balance": str(self.opening_balance),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
