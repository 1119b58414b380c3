# Overview: Unit-of-work and retry helpers shared by every mutating service.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


class ConcurrencyConflictError(Exception):
    """Raised when optimistic-lock retries are exhausted for a unit of work."""
    def __init__(self, message: str = "Concurrent update conflict, please retry"):
        super().__init__(message)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id check
    on flush is what catches lost updates.
    """
    return query.with_for_update()


@contextmanager
def atomic():
    """
    One unit of work on the scoped session.

    Commits when the block exits cleanly and rolls back on any exception, so
    callers only ever observe "committed" or "never happened".
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). func must re-read everything it needs,
    because each attempt starts from a rolled-back session.
    """
    if attempts is None:
        attempts = current_app.config.get("STOCK_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("STOCK_RETRY_BACKOFF_BASE", 0.05)
    attempts = max(int(attempts), 1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Retrying unit of work after %s (attempt %d of %d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            if backoff_base:
                time.sleep(backoff_base * (2 ** attempt))


def run_atomic(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run func inside atomic() with bounded retries.

    Exhausted StaleDataError retries surface as ConcurrencyConflictError.
    Every other exception propagates unchanged on the first occurrence.
    """
    def _op():
        with atomic():
            return func()

    try:
        return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
    except StaleDataError as exc:
        logger.warning("Unit of work abandoned after repeated conflicts: %s", exc)
        raise ConcurrencyConflictError() from exc
