"""
Conflict retries for stock-moving writes.

Verifies:
- A lost update is retried with backoff and logged with the operation label
- Exhausted optimistic-lock conflicts become a 409-level ConflictError
- Persistent lock errors and business errors propagate unchanged
"""

import logging

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from retailpos.services import concurrency
from retailpos.services.concurrency import run_with_retry
from retailpos.services.sales_service import SaleError
from retailpos.validation import ConflictError


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    monkeypatch.setattr(concurrency.time, "sleep", recorded.append)
    return recorded


def failing(times, exc):
    calls = []

    def _op():
        calls.append(1)
        if len(calls) <= times:
            raise exc
        return "sale recorded"

    return _op, calls


class TestRunWithRetry:
    def test_lost_update_is_retried_and_logged(self, db_session, sleeps, caplog):
        op, calls = failing(1, StaleDataError("products row changed"))

        with caplog.at_level(logging.WARNING):
            assert run_with_retry(op, label="Checkout") == "sale recorded"

        assert len(calls) == 2
        assert sleeps == [0.1]
        assert "Checkout hit a write conflict (attempt 1/3): StaleDataError" in caplog.text

    def test_exhausted_conflicts_become_conflict_error(self, db_session, sleeps, caplog):
        op, calls = failing(10, StaleDataError("products row changed"))

        with caplog.at_level(logging.WARNING):
            with pytest.raises(ConflictError, match="Checkout clashed"):
                run_with_retry(op, label="Checkout")

        assert len(calls) == 3
        assert sleeps == [0.1, 0.2]
        assert "Checkout gave up after 3 write conflicts" in caplog.text

    def test_persistent_lock_error_propagates(self, db_session, sleeps):
        locked = OperationalError("UPDATE products", {}, Exception("database is locked"))
        op, calls = failing(10, locked)

        with pytest.raises(OperationalError):
            run_with_retry(op, label="Stock adjustment on product 7", attempts=2)
        assert len(calls) == 2
        assert sleeps == [0.1]

    def test_business_errors_are_not_retried(self, db_session, sleeps):
        op, calls = failing(1, SaleError("Insufficient stock", status_code=409))

        with pytest.raises(SaleError):
            run_with_retry(op, label="Checkout")
        assert len(calls) == 1
        assert sleeps == []
