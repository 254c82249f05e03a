from __future__ import annotations

from ..extensions import db
from ..enums import TenantStatus
from ..time_utils import to_utc_z
from .types import MoneyType


class Tenant(db.Model):
    """
    Multi-tenant root: every business sharing the deployment is a Tenant.

    All items, counterparties and transaction records carry tenant_id.
    No unit of work ever reads or writes rows of two tenants.

    The ledger policy flags live here:
    - backorder_enabled: InventoryLedger lets quantity go below zero
    - credit_limit: ceiling for customer balances (NULL = no ceiling)
    - enable_*_price: which optional price tiers sales may use
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=TenantStatus.TRIAL.value, index=True)

    backorder_enabled = db.Column(db.Boolean, nullable=False, default=False)
    credit_limit = db.Column(MoneyType, nullable=True)

    enable_retail_price = db.Column(db.Boolean, nullable=False, default=False)
    enable_wholesale_price = db.Column(db.Boolean, nullable=False, default=False)
    enable_promo_price = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    @property
    def is_suspended(self) -> bool:
        return self.status == TenantStatus.SUSPENDED.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "status": self.status,
            "backorder_enabled": self.backorder_enabled,
            "credit_limit": str(self.credit_limit) if self.credit_limit is not None else None,
            "enable_retail_price": self.enable_retail_price,
            "enable_wholesale_price": self.enable_wholesale_price,
            "enable_promo_price": self.enable_promo_price,
            "created_at": to_utc_z(self.created_at),
        }
