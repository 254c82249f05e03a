from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .types import MoneyType, QuantityType

"""
Ledger bookkeeping tables (authoritative)

- AuditLog: append-only trail of every committed business event, written in
  the same transaction as the event it records.
- LedgerPosting: one row per delta applied to Item.quantity or a
  counterparty balance. The unique key (tenant, ledger, subject, event_key)
  is what makes ledger deltas idempotent.
- IdempotencyRecord: caller-supplied idempotency key -> committed summary,
  so a retried request replays the first answer instead of re-applying.
"""


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=True, index=True)

    action = db.Column(db.String(64), nullable=False, index=True)  # e.g. CREATE_Sale
    entity = db.Column(db.String(64), nullable=False, index=True)  # e.g. Sale
    entity_id = db.Column(db.Integer, nullable=True)
    idempotency_key = db.Column(db.String(128), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "idempotency_key": self.idempotency_key,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }


class LedgerPosting(db.Model):
    __tablename__ = "ledger_postings"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "ledger", "subject_id", "event_key", name="uq_ledger_postings_event"),
        db.Index("ix_ledger_postings_subject", "tenant_id", "ledger", "subject_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    ledger = db.Column(db.String(16), nullable=False)  # INVENTORY, ACCOUNT
    role = db.Column(db.String(16), nullable=True)  # CUSTOMER, SUPPLIER for ACCOUNT postings
    subject_id = db.Column(db.Integer, nullable=False)  # item id or counterparty id
    event_key = db.Column(db.String(160), nullable=False)

    quantity_delta = db.Column(QuantityType, nullable=True)
    quantity_after = db.Column(QuantityType, nullable=True)
    amount_delta = db.Column(MoneyType, nullable=True)
    balance_after = db.Column(MoneyType, nullable=True)
    reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "ledger": self.ledger,
            "role": self.role,
            "subject_id": self.subject_id,
            "event_key": self.event_key,
            "quantity_delta": int(self.quantity_delta) if self.quantity_delta is not None else None,
            "quantity_after": int(self.quantity_after) if self.quantity_after is not None else None,
            "amount_delta": str(self.amount_delta) if self.amount_delta is not None else None,
            "balance_after": str(self.balance_after) if self.balance_after is not None else None,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }


class IdempotencyRecord(db.Model):
    __tablename__ = "idempotency_records"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "idempotency_key", name="uq_idempotency_tenant_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    idempotency_key = db.Column(db.String(128), nullable=False)
    operation = db.Column(db.String(64), nullable=False)
    response = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
