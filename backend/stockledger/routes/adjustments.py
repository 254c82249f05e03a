# Overview: Flask API routes for manual stock corrections.

"""
Stock adjustment types:
- INCREASE / DECREASE: quantity is the number of units added or removed
- SET: quantity is the counted on-hand total; the difference is posted

POST /api/adjustments/bulk applies up to 500 rows together: one bad row
rejects the whole request.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import date_range_args, json_body, ledger_error_response, require_idempotency_key, require_tenant
from ..enums import StockAdjustmentType, parse_enum
from ..errors import LedgerError
from ..services import history_service
from ..services.coordinator import TransactionCoordinator
from ..services.requests import BulkStockAdjustmentRequest, StockAdjustmentRequest

adjustments_bp = Blueprint("adjustments", __name__, url_prefix="/api/adjustments")


@adjustments_bp.post("")
@require_tenant
@require_idempotency_key
def create_adjustment_route():
    """
    Record a stock correction (count variance, damage, shrinkage).

    Request body:
    {"item_id": 1, "type": "DECREASE", "quantity": 2, "reason": "Damaged in storage"}
    """
    try:
        adjustment_request = StockAdjustmentRequest.from_payload(g.tenant_id, json_body(), user_id=g.user_id)
        result = TransactionCoordinator.from_app().record_stock_adjustment(adjustment_request, g.idempotency_key)
        return jsonify(result.to_dict()), 200 if result.replayed else 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock adjustment")
        return jsonify({"error": "Internal server error"}), 500


@adjustments_bp.post("/bulk")
@require_tenant
@require_idempotency_key
def create_bulk_adjustment_route():
    """
    Request body:
    {"adjustments": [
        {"item_id": 1, "type": "SET", "quantity": 40, "reason": "Stock count"},
        {"item_id": 2, "type": "DECREASE", "quantity": 1, "reason": "Expired"}
    ]}
    """
    try:
        bulk_request = BulkStockAdjustmentRequest.from_payload(g.tenant_id, json_body(), user_id=g.user_id)
        result = TransactionCoordinator.from_app().record_bulk_stock_adjustment(bulk_request, g.idempotency_key)
        return jsonify(result.to_dict()), 200 if result.replayed else 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record bulk stock adjustment")
        return jsonify({"error": "Internal server error"}), 500


@adjustments_bp.get("")
@require_tenant
def list_adjustments_route():
    """Query params: item_id, type, start_date, end_date, limit."""
    try:
        start, end = date_range_args()
        raw_type = request.args.get("type")
        history = history_service.list_stock_adjustments(
            g.tenant_id,
            item_id=request.args.get("item_id", type=int),
            adjustment_type=parse_enum(StockAdjustmentType, raw_type, "type") if raw_type else None,
            start=start,
            end=end,
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify(history), 200
    except LedgerError as e:
        return ledger_error_response(e)
