# Overview: Builds AuditLog entries and serves the tenant-scoped audit read API.

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditLog

"""
Audit trail invariants

- Append-only. No updates or deletes (enforced by mapper listeners).
- Entries are written inside the same DB transaction as the business event
  they describe, so an audit row exists iff the event committed.
- action is "<VERB>_<Entity>", e.g. CREATE_Sale, CREATE_CustomerPayment.
"""


def build_audit_entry(
    *,
    tenant_id: int,
    action: str,
    entity: str,
    entity_id: int | None,
    user_id: str | None = None,
    idempotency_key: str | None = None,
    payload: Optional[dict] = None,
) -> AuditLog:
    return AuditLog(
        tenant_id=tenant_id,
        user_id=user_id,
        action=f"{action}_{entity}",
        entity=entity,
        entity_id=entity_id,
        idempotency_key=idempotency_key,
        payload=json.dumps(payload, sort_keys=True) if payload is not None else None,
    )


def list_audit_logs(
    tenant_id: int,
    *,
    entity: str | None = None,
    entity_id: int | None = None,
    since: datetime | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    query = db.session.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)
    if entity:
        query = query.filter(AuditLog.entity == entity)
    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == entity_id)
    if since is not None:
        query = query.filter(AuditLog.created_at >= since)
    limit = max(1, min(int(limit), 500))
    return query.order_by(AuditLog.id.desc()).limit(limit).all()
