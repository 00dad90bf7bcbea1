# Overview: Pytest coverage for the unit-of-work and retry-on-conflict helpers.

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from stockpos.errors import ConflictError, InternalError
from stockpos.models import StockLine
from stockpos.services.concurrency import run_with_retry, unit_of_work


def _flaky(failures, exc_factory, result="done"):
    calls = {"n": 0}

    def op():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise exc_factory()
        return result

    return op, calls


class TestRunWithRetry:
    def test_stale_data_is_retried_until_success(self, app, db_session):
        op, calls = _flaky(2, lambda: StaleDataError("row version changed"))

        assert run_with_retry(op, attempts=3, backoff_base=0) == "done"
        assert calls["n"] == 3

    def test_integrity_error_is_retried(self, app, db_session):
        op, calls = _flaky(1, lambda: IntegrityError("INSERT", {}, Exception("unique")))

        assert run_with_retry(op, attempts=3, backoff_base=0) == "done"
        assert calls["n"] == 2

    def test_exhausted_retries_raise_conflict(self, app, db_session):
        op, calls = _flaky(10, lambda: StaleDataError("row version changed"))

        with pytest.raises(ConflictError) as exc:
            run_with_retry(op, attempts=3, backoff_base=0)

        assert calls["n"] == 3
        assert exc.value.retryable is True
        assert exc.value.status_code == 409
        assert exc.value.details == {"attempts": 3, "cause": "StaleDataError"}

    def test_attempts_come_from_config(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "TX_RETRY_ATTEMPTS", 2)
        op, calls = _flaky(10, lambda: OperationalError("UPDATE", {}, Exception("database is locked")))

        with pytest.raises(ConflictError):
            run_with_retry(op)

        assert calls["n"] == 2

    def test_lost_connection_is_not_retried(self, app, db_session):
        op, calls = _flaky(
            10,
            lambda: OperationalError("SELECT 1", {}, Exception("server closed"), connection_invalidated=True),
        )

        with pytest.raises(InternalError) as exc:
            run_with_retry(op, attempts=3, backoff_base=0)

        assert calls["n"] == 1
        assert exc.value.retryable is False
        assert exc.value.status_code == 500

    def test_business_errors_are_not_retried(self, app, db_session):
        op, calls = _flaky(10, lambda: ValueError("bad input"))

        with pytest.raises(ValueError):
            run_with_retry(op, attempts=3, backoff_base=0)

        assert calls["n"] == 1


class TestUnitOfWork:
    def test_commits_on_success(self, db_session, make_product):
        product = make_product(4)

        with unit_of_work() as session:
            session.query(StockLine).filter_by(product_id=product.id).one().reserved_quantity = 1

        db_session.expire_all()
        assert db_session.query(StockLine).filter_by(product_id=product.id).one().reserved_quantity == 1

    def test_rolls_back_and_reraises(self, db_session, make_product):
        product = make_product(4)

        with pytest.raises(RuntimeError):
            with unit_of_work() as session:
                session.query(StockLine).filter_by(product_id=product.id).one().quantity = 99
                raise RuntimeError("boom")

        assert db_session.query(StockLine).filter_by(product_id=product.id).one().quantity == 4
