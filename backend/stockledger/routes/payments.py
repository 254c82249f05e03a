# Overview: Flask API routes for customer and supplier payments.

"""
Payment API Routes

Standalone payments settle outstanding balances:
- POST /api/payments/customers: customer pays down what they owe
- POST /api/payments/suppliers: business pays down what it owes a supplier
- GET on either path lists payment history (filters: customer_id / supplier_id,
  start_date, end_date, limit)

Overpayment is accepted and leaves a negative (credit) balance.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import date_range_args, json_body, ledger_error_response, require_idempotency_key, require_tenant
from ..enums import CounterpartyRole
from ..errors import LedgerError
from ..services import history_service
from ..services.coordinator import TransactionCoordinator
from ..services.requests import PaymentRequest

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _record_payment(role: CounterpartyRole):
    try:
        payment_request = PaymentRequest.from_payload(g.tenant_id, role, json_body(), user_id=g.user_id)
        result = TransactionCoordinator.from_app().record_payment(payment_request, g.idempotency_key)
        return jsonify(result.to_dict()), 200 if result.replayed else 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record %s payment", role.value.lower())
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/customers")
@require_tenant
@require_idempotency_key
def create_customer_payment_route():
    """
    Request body:
    {"customer_id": 7, "amount": "25.00", "method": "MOMO", "reference": "TX-991"}
    """
    return _record_payment(CounterpartyRole.CUSTOMER)


@payments_bp.post("/suppliers")
@require_tenant
@require_idempotency_key
def create_supplier_payment_route():
    """
    Request body:
    {"supplier_id": 2, "amount": "100.00", "method": "BANK"}
    """
    return _record_payment(CounterpartyRole.SUPPLIER)


def _list_payments(role: CounterpartyRole, id_field: str):
    try:
        start, end = date_range_args()
        history = history_service.list_payments(
            g.tenant_id,
            role,
            counterparty_id=request.args.get(id_field, type=int),
            start=start,
            end=end,
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify(history), 200
    except LedgerError as e:
        return ledger_error_response(e)


@payments_bp.get("/customers")
@require_tenant
def list_customer_payments_route():
    return _list_payments(CounterpartyRole.CUSTOMER, "customer_id")


@payments_bp.get("/suppliers")
@require_tenant
def list_supplier_payments_route():
    return _list_payments(CounterpartyRole.SUPPLIER, "supplier_id")
