# Overview: Flask API routes for manual balance corrections and counterparty statements.

"""
Balance API Routes

- POST /api/customers/adjust-balance, /api/suppliers/adjust-balance:
  set one balance ({"customer_id": 7, "balance": "120.00", "reason": ...})
  or many ({"adjustments": [...]}, all or nothing)
- GET /api/customers/<id>/statement, /api/suppliers/<id>/statement:
  opening balance, postings with running balance, totals, closing balance
- GET /api/balance-adjustments: correction history
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import date_range_args, json_body, ledger_error_response, require_idempotency_key, require_tenant
from ..enums import CounterpartyRole, parse_enum
from ..errors import LedgerError
from ..services import history_service
from ..services.coordinator import TransactionCoordinator
from ..services.requests import BalanceAdjustmentRequest

balances_bp = Blueprint("balances", __name__, url_prefix="/api")


def _adjust_balances(role: CounterpartyRole):
    try:
        adjustment_request = BalanceAdjustmentRequest.from_payload(g.tenant_id, role, json_body(), user_id=g.user_id)
        result = TransactionCoordinator.from_app().record_balance_adjustment(adjustment_request, g.idempotency_key)
        return jsonify(result.to_dict()), 200 if result.replayed else 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust %s balance", role.value.lower())
        return jsonify({"error": "Internal server error"}), 500


def _statement(role: CounterpartyRole, counterparty_id: int):
    try:
        start, end = date_range_args()
        statement = history_service.build_statement(g.tenant_id, role, counterparty_id, start=start, end=end)
        return jsonify(statement), 200
    except LedgerError as e:
        return ledger_error_response(e)


@balances_bp.post("/customers/adjust-balance")
@require_tenant
@require_idempotency_key
def adjust_customer_balance_route():
    return _adjust_balances(CounterpartyRole.CUSTOMER)


@balances_bp.post("/suppliers/adjust-balance")
@require_tenant
@require_idempotency_key
def adjust_supplier_balance_route():
    return _adjust_balances(CounterpartyRole.SUPPLIER)


@balances_bp.get("/customers/<int:customer_id>/statement")
@require_tenant
def customer_statement_route(customer_id: int):
    return _statement(CounterpartyRole.CUSTOMER, customer_id)


@balances_bp.get("/suppliers/<int:supplier_id>/statement")
@require_tenant
def supplier_statement_route(supplier_id: int):
    return _statement(CounterpartyRole.SUPPLIER, supplier_id)


@balances_bp.get("/balance-adjustments")
@require_tenant
def list_balance_adjustments_route():
    """Query params: role, counterparty_id, start_date, end_date, limit."""
    try:
        start, end = date_range_args()
        raw_role = request.args.get("role")
        history = history_service.list_balance_adjustments(
            g.tenant_id,
            role=parse_enum(CounterpartyRole, raw_role, "role") if raw_role else None,
            counterparty_id=request.args.get("counterparty_id", type=int),
            start=start,
            end=end,
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify(history), 200
    except LedgerError as e:
        return ledger_error_response(e)
