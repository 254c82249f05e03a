# Overview: Read-only Flask API routes for ledger state, audit trail and balance reminders.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import json_body, ledger_error_response, require_tenant
from ..enums import LedgerKind
from ..errors import LedgerError
from ..extensions import db
from ..models import Customer, Item, LedgerPosting, Supplier
from ..services import audit_service
from ..services.coordinator import TransactionCoordinator
from ..services.events import describe
from ..services.requests import parse_id
from ..time_utils import parse_iso_datetime

"""
Reads are tenant-scoped: a row of another tenant is reported as not found.

Time semantics: `since` accepts ISO-8601 with Z/offsets, normalized to UTC.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api")


def _postings(ledger: LedgerKind, subject_id: int, role: str | None = None, limit: int = 50) -> list[dict]:
    q = db.session.query(LedgerPosting).filter_by(
        tenant_id=g.tenant_id, ledger=ledger.value, subject_id=subject_id
    )
    if role is not None:
        q = q.filter_by(role=role)
    return [p.to_dict() for p in q.order_by(LedgerPosting.id.desc()).limit(limit).all()]


@ledger_bp.get("/items/<int:item_id>")
@require_tenant
def get_item_route(item_id: int):
    item = db.session.query(Item).filter_by(id=item_id, tenant_id=g.tenant_id).first()
    if not item:
        return jsonify({"error": "Item not found"}), 404
    return jsonify({
        "item": item.to_dict(),
        "postings": _postings(LedgerKind.INVENTORY, item.id),
    }), 200


@ledger_bp.get("/customers/<int:customer_id>")
@require_tenant
def get_customer_route(customer_id: int):
    customer = db.session.query(Customer).filter_by(id=customer_id, tenant_id=g.tenant_id).first()
    if not customer:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify({
        "customer": customer.to_dict(),
        "postings": _postings(LedgerKind.ACCOUNT, customer.id, role="CUSTOMER"),
    }), 200


@ledger_bp.get("/suppliers/<int:supplier_id>")
@require_tenant
def get_supplier_route(supplier_id: int):
    supplier = db.session.query(Supplier).filter_by(id=supplier_id, tenant_id=g.tenant_id).first()
    if not supplier:
        return jsonify({"error": "Supplier not found"}), 404
    return jsonify({
        "supplier": supplier.to_dict(),
        "postings": _postings(LedgerKind.ACCOUNT, supplier.id, role="SUPPLIER"),
    }), 200


@ledger_bp.get("/audit-logs")
@require_tenant
def list_audit_logs_route():
    limit = request.args.get("limit", default=100, type=int)
    entity = request.args.get("entity")
    entity_id = request.args.get("entity_id", type=int)

    try:
        since = parse_iso_datetime(request.args.get("since"))
    except ValueError:
        return jsonify({"error": "since must be an ISO-8601 datetime"}), 400

    logs = audit_service.list_audit_logs(
        g.tenant_id, entity=entity, entity_id=entity_id, since=since, limit=limit
    )
    return jsonify({"items": [log.to_dict() for log in logs], "limit": limit}), 200


@ledger_bp.post("/reminders")
@require_tenant
def create_reminder_route():
    """
    Ask subscribers to remind a customer of their outstanding balance.

    Request body: {"customer_id": 7}

    Delivery (SMS etc.) is handled by event subscribers, not here.
    """
    try:
        customer_id = parse_id(json_body(), "customer_id")
        reminder = TransactionCoordinator.from_app().request_balance_reminder(
            g.tenant_id, customer_id, user_id=g.user_id
        )
        return jsonify({"reminder": describe(reminder)}), 202
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to request balance reminder")
        return jsonify({"error": "Internal server error"}), 500
