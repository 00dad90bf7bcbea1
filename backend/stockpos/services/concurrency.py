# Overview: Transaction boundary helpers: unit of work, row locking and retry-on-conflict.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, InternalError
from ..extensions import db


# Failures that mean "someone else wrote first"; safe to replay the whole operation.
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (it serialises writers on the
    database file instead), other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def unit_of_work(session: Session | None = None):
    """
    Scope one operation to one transaction.

    Yields the session; commits when the block exits normally and rolls back
    on any exception, which is then re-raised unchanged.
    """
    session = session or db.session
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and IntegrityError (a concurrent writer
    took a unique key first). When attempts are exhausted the failure
    surfaces as ConflictError so callers can decide to retry later.

    A DBAPI error that invalidated the connection (database unreachable) is not
    a conflict: it is raised at once as InternalError.
    """
    if attempts is None:
        attempts = current_app.config.get("TX_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TX_RETRY_BACKOFF_SECONDS", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if getattr(exc, "connection_invalidated", False):
                current_app.logger.error("Database connection lost: %s", exc.__class__.__name__)
                raise InternalError(
                    "Database unavailable",
                    details={"cause": exc.__class__.__name__},
                ) from exc
            current_app.logger.warning(
                "Concurrent write conflict (attempt %s/%s): %s",
                attempt + 1,
                attempts,
                exc.__class__.__name__,
            )
            if attempt >= attempts - 1:
                raise ConflictError(
                    "Concurrent update detected, please retry",
                    details={"attempts": attempts, "cause": exc.__class__.__name__},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
    raise ConflictError("Operation was not attempted", details={"attempts": attempts})
