# Overview: Flask API routes for customer and supplier returns.

"""
Returns API Routes

A return always references the original line (sale_item / purchase_item)
and can never exceed what is still returnable on it.

Return types:
- CASH: refunded in cash, balance unchanged
- CREDIT: counterparty balance reduced by amount
- EXCHANGE: balance unchanged; record the replacement as a new sale

GET /api/returns/customers?sale_id=10 and GET /api/returns/suppliers?purchase_id=4
list return history (also start_date, end_date, limit).
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import date_range_args, json_body, ledger_error_response, require_idempotency_key, require_tenant
from ..enums import CounterpartyRole
from ..errors import LedgerError
from ..services import history_service
from ..services.coordinator import TransactionCoordinator
from ..services.requests import ReturnRequest

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


def _record_return(role: CounterpartyRole):
    try:
        return_request = ReturnRequest.from_payload(g.tenant_id, role, json_body(), user_id=g.user_id)
        result = TransactionCoordinator.from_app().record_return(return_request, g.idempotency_key)
        return jsonify(result.to_dict()), 200 if result.replayed else 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record %s return", role.value.lower())
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/customers")
@require_tenant
@require_idempotency_key
def create_customer_return_route():
    """
    Request body:
    {
        "sale_id": 10, "sale_item_id": 31, "item_id": 1,
        "quantity": 1, "type": "CREDIT", "amount": "12.50",
        "reason": "Damaged"
    }
    """
    return _record_return(CounterpartyRole.CUSTOMER)


@returns_bp.post("/suppliers")
@require_tenant
@require_idempotency_key
def create_supplier_return_route():
    """
    Request body:
    {
        "purchase_id": 4, "purchase_item_id": 9, "item_id": 1,
        "quantity": 3, "type": "CREDIT", "amount": "10.50"
    }
    """
    return _record_return(CounterpartyRole.SUPPLIER)


def _list_returns(role: CounterpartyRole, source_field: str):
    try:
        start, end = date_range_args()
        history = history_service.list_returns(
            g.tenant_id,
            role,
            source_id=request.args.get(source_field, type=int),
            start=start,
            end=end,
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify(history), 200
    except LedgerError as e:
        return ledger_error_response(e)


@returns_bp.get("/customers")
@require_tenant
def list_customer_returns_route():
    return _list_returns(CounterpartyRole.CUSTOMER, "sale_id")


@returns_bp.get("/suppliers")
@require_tenant
def list_supplier_returns_route():
    return _list_returns(CounterpartyRole.SUPPLIER, "purchase_id")
