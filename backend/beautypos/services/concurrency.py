# Overview: Locking and retry helpers shared by services that mutate stock and counters.

from __future__ import annotations

import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


class UnitOfWorkError(RuntimeError):
    """A locked unit of work was started on a session holding uncommitted writes."""


def has_pending_writes() -> bool:
    """True when the session has unflushed changes or flushed but uncommitted DML."""
    session = db.session()
    if session.new or session.deleted or any(session.is_modified(obj) for obj in session.dirty):
        return True
    if not session.in_transaction():
        return False
    dbapi_connection = session.connection().connection.dbapi_connection
    return bool(getattr(dbapi_connection, "in_transaction", False))


def begin_write_transaction() -> None:
    """
    Take the database write lock up front on SQLite.

    SQLite ignores SELECT ... FOR UPDATE; BEGIN IMMEDIATE serializes writers
    so a read-check-write sequence cannot interleave with another checkout.

    Must start on a clean session: retries roll the session back, which would
    discard the caller's pending work, so that case raises UnitOfWorkError.
    """
    if has_pending_writes():
        raise UnitOfWorkError("Commit or roll back pending changes before starting a locked unit of work")
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=RETRYABLE_ERRORS):
    """
    Execute a DB operation with retry on concurrency-related failures.

    The session is rolled back before every retry, so func must start its
    unit of work from scratch. The last exception is re-raised once
    attempts are exhausted.
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Retrying %s after %s (attempt %d/%d)",
                getattr(func, "__name__", "operation"),
                type(exc).__name__,
                attempt + 1,
                attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
