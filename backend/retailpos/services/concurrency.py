# Overview: Product row locking and conflict retries for stock-moving writes.

"""
Stock Write Concurrency

Two registers selling the last unit of a product, or a manager adjusting
stock while a sale is in flight, race on the same Product rows. Every write
that moves stock runs inside run_with_retry:

- Lock contention (OperationalError) and lost updates caught by
  Product.version_id (StaleDataError) roll back and re-run the operation,
  which re-reads stock, so a retried checkout sees the other sale's decrement
- Each retry is logged with the operation label
- A lost update that survives every attempt becomes a ConflictError (409):
  the caller should resubmit. A lock error that survives propagates as-is
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the product rows a write is about to change.

    NOTE: SQLite ignores FOR UPDATE; Product.version_id still catches lost
    updates there (StaleDataError on flush).
    """
    return query.with_for_update()


def run_with_retry(func, *, label: str, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a stock-moving write, re-running it on row conflicts.

    func must do its own reads and commit; the session is rolled back before
    each retry. Business errors raised by func propagate on the first try.

    Raises:
        ConflictError: every attempt lost an optimistic-lock race
        OperationalError: the database stayed locked through every attempt
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt == attempts:
                current_app.logger.error("%s gave up after %s write conflicts", label, attempts)
                if isinstance(exc, StaleDataError):
                    raise ConflictError(
                        f"{label} clashed with another update to the same products; please retry"
                    ) from exc
                raise
            current_app.logger.warning(
                "%s hit a write conflict (attempt %s/%s): %s", label, attempt, attempts, type(exc).__name__
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
