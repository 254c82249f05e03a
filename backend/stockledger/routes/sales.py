# Overview: Flask API routes for sales; parses input and returns JSON responses.

"""
Sales API Routes

- POST /api/sales records a sale (cash or credit) in one unit of work:
  stock leaves inventory, a credit remainder lands on the customer balance.
- GET /api/sales/<id> returns the immutable sale with its lines.

Sales are never edited or deleted. Corrections are customer returns.
"""

from flask import Blueprint, current_app, g, jsonify

from ..decorators import json_body, ledger_error_response, require_idempotency_key, require_tenant
from ..errors import LedgerError
from ..extensions import db
from ..models import Sale
from ..services.coordinator import TransactionCoordinator
from ..services.requests import SaleRequest

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_tenant
@require_idempotency_key
def create_sale_route():
    """
    Record a sale.

    Request body:
    {
        "customer_id": 7,              (required for CREDIT)
        "payment_type": "CREDIT",      (CASH | CREDIT, default CASH)
        "paid_amount": "40.00",        (CREDIT: amount paid now; CASH: defaults to total)
        "items": [
            {"item_id": 1, "quantity": 2},
            {"item_id": 3, "quantity": 1, "price": "9.99"},
            {"item_id": 4, "quantity": 1, "price_tier": "WHOLESALE"}
        ]
    }

    Returns:
        201: Sale recorded (200 when replaying an already committed key)
        400: Invalid input
        404: Item/customer not found for this tenant
        409: Insufficient stock or credit limit exceeded
        503: Conflicts persisted after retries; nothing applied
    """
    try:
        sale_request = SaleRequest.from_payload(g.tenant_id, json_body(), user_id=g.user_id)
        result = TransactionCoordinator.from_app().record_sale(sale_request, g.idempotency_key)
        return jsonify(result.to_dict()), 200 if result.replayed else 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_tenant
def get_sale_route(sale_id: int):
    sale = db.session.query(Sale).filter_by(id=sale_id, tenant_id=g.tenant_id).first()
    if not sale:
        return jsonify({"error": "Sale not found"}), 404
    return jsonify({"sale": sale.to_dict()}), 200
