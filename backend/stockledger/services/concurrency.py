# Overview: Row locking, bounded retry and deadline helpers for ledger units of work.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransientFailure

logger = logging.getLogger(__name__)

# Lock timeouts / deadlocks, optimistic version conflicts, and unique-key
# races on idempotency keys and ledger postings.
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the unit of work is opened with BEGIN IMMEDIATE instead, and the
    version_id columns catch anything that still slips through.
    """
    return query.with_for_update()


class Deadline:
    """Wall-clock budget for one whole coordinator run."""

    def __init__(self, seconds: float | None, *, clock=time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self.expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return self.expires_at - self._clock()

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, *, attempts: int = 0) -> None:
        if self.expired():
            raise TransientFailure(
                f"Deadline of {self.seconds}s exceeded; unit of work rolled back",
                attempts=attempts,
                details={"deadline_seconds": self.seconds},
            )


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    rollback=None,
    deadline: Deadline | None = None,
    sleep=time.sleep,
):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and IntegrityError (unique-key races).
    Each failed attempt is rolled back before the next one starts. When the
    attempts run out, or the deadline passes, TransientFailure is raised and
    nothing has been applied.

    Any other exception is rolled back and propagated untouched.
    """
    last_exc = None
    for attempt in range(attempts):
        if deadline is not None:
            deadline.check(attempts=attempt)
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            if rollback is not None:
                rollback()
            last_exc = exc
            logger.warning(
                "Unit of work conflict (attempt %s/%s): %s",
                attempt + 1, attempts, type(exc).__name__,
            )
            if attempt >= attempts - 1:
                break
            delay = backoff_base * (2 ** attempt)
            if deadline is not None:
                remaining = deadline.remaining()
                if remaining is not None:
                    delay = max(0.0, min(delay, remaining))
            sleep(delay)
        except Exception:
            if rollback is not None:
                rollback()
            raise

    raise TransientFailure(
        f"Unit of work failed after {attempts} attempts",
        attempts=attempts,
        details={"last_error": type(last_exc).__name__ if last_exc else None},
    ) from last_exc
