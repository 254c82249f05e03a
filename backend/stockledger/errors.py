"""
Ledger error taxonomy.

- ValidationError: malformed input, foreign/missing references, over-returns.
  Rejected synchronously, never retried.
- DomainPolicyError: the request is well-formed but a tenant policy refuses it
  (stock would go negative, credit ceiling exceeded). Carries the current
  value and the requested delta so the caller can decide what to do next.
- TransientFailure: lock conflicts / stale versions / timeouts that survived
  the coordinator's bounded retries. Nothing was applied.
- ImmutableRecordError: an attempt to update or delete committed history.

The TransactionCoordinator is the only place that classifies and retries.
"""


class LedgerError(Exception):
    """Base class for every error raised by the ledger core."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "error_type": type(self).__name__}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError):
    """400-level input problem."""


class ReferenceNotFoundError(ValidationError):
    """Referenced entity is missing or belongs to another tenant."""


class OverReturnError(ValidationError):
    """Return quantity exceeds what is still returnable on the original line."""


class DomainPolicyError(LedgerError):
    """Request refused by a tenant policy."""


class InsufficientStockError(DomainPolicyError):
    def __init__(self, *, item_id: int, current_quantity, requested_delta):
        super().__init__(
            f"Insufficient stock for item {item_id}. "
            f"Available: {current_quantity}, requested change: {requested_delta}",
            details={
                "item_id": item_id,
                "current_quantity": int(current_quantity),
                "requested_delta": int(requested_delta),
            },
        )


class CreditLimitExceededError(DomainPolicyError):
    def __init__(self, *, counterparty_id: int, current_balance, requested_delta, credit_limit):
        super().__init__(
            f"Credit limit exceeded for customer {counterparty_id}. "
            f"Balance: {current_balance}, requested change: {requested_delta}, limit: {credit_limit}",
            details={
                "counterparty_id": counterparty_id,
                "current_balance": str(current_balance),
                "requested_delta": str(requested_delta),
                "credit_limit": str(credit_limit),
            },
        )


class TransientFailure(LedgerError):
    """
    Retries exhausted (or deadline passed). The unit of work was rolled back,
    so the operation is known not to have been applied.
    """

    def __init__(self, message: str, *, attempts: int, details: dict | None = None):
        super().__init__(message, details=details)
        self.attempts = attempts
        self.applied = False

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["attempts"] = self.attempts
        payload["applied"] = self.applied
        return payload


class ImmutableRecordError(LedgerError):
    """Raised when committed history is about to be modified or deleted."""
