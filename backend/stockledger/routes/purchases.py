# Overview: Flask API routes for supplier purchases; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import json_body, ledger_error_response, require_idempotency_key, require_tenant
from ..errors import LedgerError
from ..extensions import db
from ..models import Purchase
from ..services.coordinator import TransactionCoordinator
from ..services.requests import PurchaseRequest

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@require_tenant
@require_idempotency_key
def create_purchase_route():
    """
    Record stock bought from a supplier.

    Request body:
    {
        "supplier_id": 2,
        "payment_type": "CREDIT",
        "paid_amount": "100.00",
        "items": [{"item_id": 1, "quantity": 24, "cost_price": "3.50"}]
    }

    cost_price defaults to the item's cost price. The unpaid remainder of a
    CREDIT purchase is added to what the business owes the supplier.
    """
    try:
        purchase_request = PurchaseRequest.from_payload(g.tenant_id, json_body(), user_id=g.user_id)
        result = TransactionCoordinator.from_app().record_purchase(purchase_request, g.idempotency_key)
        return jsonify(result.to_dict()), 200 if result.replayed else 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>")
@require_tenant
def get_purchase_route(purchase_id: int):
    purchase = db.session.query(Purchase).filter_by(id=purchase_id, tenant_id=g.tenant_id).first()
    if not purchase:
        return jsonify({"error": "Purchase not found"}), 404
    return jsonify({"purchase": purchase.to_dict()}), 200
