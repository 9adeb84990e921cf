"""Settlement unit of work.

Every settlement operation runs as ``operation(db)`` inside one transaction:
either all of its ledger, stock and document writes commit together, or the
session is rolled back and nothing is visible. Operations never commit
themselves.

Transient store conflicts are retried with exponential backoff:

* ``StaleDataError``: a versioned ledger row changed after it was read.
* ``IntegrityError`` on a unique constraint: two writers drew the same
  document number.
* ``OperationalError`` for lock timeouts, deadlocks and serialization
  failures.

When the retries run out the caller gets ``ConflictError`` (HTTP 409).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core.config import settings
from backend.app.core.exceptions import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_MARKERS = ("locked", "deadlock", "serializ", "timeout", "could not obtain lock")


def is_transient(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, IntegrityError):
        message = str(exc.orig).lower()
        return "unique" in message or "duplicate key" in message
    if isinstance(exc, OperationalError):
        message = str(exc.orig).lower()
        return any(marker in message for marker in _TRANSIENT_MARKERS)
    return False


def run_settlement(
    db: Session,
    operation: Callable[[Session], T],
    *,
    label: str,
    attempts: int | None = None,
    backoff_base: float | None = None,
) -> T:
    """Run ``operation`` and commit, retrying transient conflicts."""
    attempts = attempts or settings.SETTLEMENT_MAX_ATTEMPTS
    backoff = settings.SETTLEMENT_RETRY_BACKOFF if backoff_base is None else backoff_base

    for attempt in range(1, attempts + 1):
        try:
            result = operation(db)
            db.commit()
            return result
        except (StaleDataError, IntegrityError, OperationalError) as exc:
            db.rollback()
            if not is_transient(exc):
                raise
            if attempt >= attempts:
                logger.warning(
                    "%s: giving up after %d attempts (%s)", label, attempt, type(exc).__name__
                )
                raise ConflictError(label, attempt) from exc
            logger.warning(
                "%s: transient conflict on attempt %d (%s), retrying",
                label,
                attempt,
                type(exc).__name__,
            )
            time.sleep(backoff * (2 ** (attempt - 1)))
        except Exception:
            db.rollback()
            raise

    raise ConflictError(label, attempts)
