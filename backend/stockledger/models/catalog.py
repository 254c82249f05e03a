from __future__ import annotations

from ..extensions import db
from ..money import Quantity
from ..time_utils import to_utc_z
from .types import MoneyType, QuantityType


class Manufacturer(db.Model):
    __tablename__ = "manufacturers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_manufacturers_tenant_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class Item(db.Model):
    """
    Stock-keeping item.

    quantity is the on-hand ledger total. It is written ONLY by
    InventoryLedger.apply_delta; everything else reads it.

    version_id backs optimistic concurrency: two writers that both read the
    same version cannot both commit (StaleDataError -> coordinator retry).
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_tenant_name", "tenant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    manufacturer_id = db.Column(db.Integer, db.ForeignKey("manufacturers.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(QuantityType, nullable=False, default=Quantity(0))
    opening_quantity = db.Column(QuantityType, nullable=False, default=Quantity(0))

    cost_price = db.Column(MoneyType, nullable=False)
    selling_price = db.Column(MoneyType, nullable=False)

    # Optional price tiers (used only when the tenant enables them)
    retail_price = db.Column(MoneyType, nullable=True)
    wholesale_price = db.Column(MoneyType, nullable=True)
    promo_price = db.Column(MoneyType, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    manufacturer = db.relationship("Manufacturer")
    __mapper_args__ = {"version_id_col": version_id}

    def __init__(self, **kwargs):
        # Stock on hand when the item was registered; reconciliation starts here.
        kwargs.setdefault("opening_quantity", kwargs.get("quantity", Quantity(0)))
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r} tenant_id={self.tenant_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "manufacturer_id": self.manufacturer_id,
            "name": self.name,
            "quantity": int(self.quantity),
            "opening_quantity": int(self.opening_quantity),
            "cost_price": str(self.cost_price),
            "selling_price": str(self.selling_price),
            "retail_price": str(self.retail_price) if self.retail_price is not None else None,
            "wholesale_price": str(self.wholesale_price) if self.wholesale_price is not None else None,
            "promo_price": str(self.promo_price) if self.promo_price is not None else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
