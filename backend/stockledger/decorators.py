# Overview: Request decorators and error-to-response mapping for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import (
    DomainPolicyError,
    ImmutableRecordError,
    LedgerError,
    ReferenceNotFoundError,
    TransientFailure,
    ValidationError,
)
from .time_utils import parse_iso_datetime


def require_tenant(f):
    """
    Establish tenant context from request headers.

    Authentication happens upstream (gateway / auth service). This layer only
    trusts the resolved identifiers it is handed:
    - X-Tenant-Id (required): g.tenant_id
    - X-User-Id (optional): g.user_id, recorded on every audit entry
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_tenant = request.headers.get("X-Tenant-Id", "").strip()
        if not raw_tenant:
            return jsonify({"error": "X-Tenant-Id header required"}), 400
        try:
            tenant_id = int(raw_tenant)
        except ValueError:
            return jsonify({"error": "X-Tenant-Id must be an integer"}), 400
        if tenant_id <= 0:
            return jsonify({"error": "X-Tenant-Id must be positive"}), 400

        g.tenant_id = tenant_id
        g.user_id = (request.headers.get("X-User-Id") or "").strip()[:64] or None
        return f(*args, **kwargs)

    return decorated_function


def require_idempotency_key(f):
    """Mutating routes must carry an Idempotency-Key header (g.idempotency_key)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        key = (request.headers.get("Idempotency-Key") or "").strip()
        if not key:
            return jsonify({"error": "Idempotency-Key header required"}), 400
        g.idempotency_key = key
        return f(*args, **kwargs)

    return decorated_function


def ledger_error_response(exc: LedgerError):
    """
    Map the ledger error taxonomy to HTTP:
    400 validation, 404 missing/foreign reference, 409 policy refusal or
    immutable history, 503 retries exhausted (nothing applied).
    """
    if isinstance(exc, ReferenceNotFoundError):
        status = 404
    elif isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, (DomainPolicyError, ImmutableRecordError)):
        status = 409
    elif isinstance(exc, TransientFailure):
        current_app.logger.warning("Transient failure after %s attempts: %s", exc.attempts, exc.message)
        status = 503
    else:
        status = 400
    return jsonify(exc.to_dict()), status


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def date_range_args() -> tuple:
    """start_date / end_date query args as UTC datetimes; either may be None."""
    try:
        start = parse_iso_datetime(request.args.get("start_date"))
        end = parse_iso_datetime(request.args.get("end_date"))
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 datetimes")
    if start is not None and end is not None and start > end:
        raise ValidationError("start_date must not be after end_date")
    return start, end
