# Overview: Transactional boundary, row locking and retry policy for stock-mutating operations.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StorageFailureError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite, atomic() takes the database write lock instead. Rows already in
    the identity map are refreshed so checks see the locked values.
    """
    return query.with_for_update().populate_existing()


def _begin_write_transaction() -> None:
    if db.engine.dialect.name != "sqlite":
        return
    if not current_app.config.get("SQLITE_BEGIN_IMMEDIATE", True):
        return
    # pysqlite defers BEGIN until the first write; if one already ran, keep it
    dbapi_connection = db.session.connection().connection.dbapi_connection
    if dbapi_connection.in_transaction:
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def atomic():
    """
    Scoped all-or-nothing unit.

    Everything written inside the block is committed together on normal exit
    and rolled back on any exception, which is then re-raised unchanged.
    """
    _begin_write_transaction()
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
    (optimistic locking conflicts). When attempts are exhausted, or on any
    other SQLAlchemy error, raises StorageFailureError.
    """
    if attempts is None:
        attempts = current_app.config.get("STOCK_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("STOCK_RETRY_BACKOFF_SECONDS", 0.1)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                break
            current_app.logger.warning(
                "Storage conflict on attempt %d/%d, retrying: %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageFailureError(
                "Storage failure", details={"cause": type(exc).__name__}
            ) from exc

    raise StorageFailureError(
        "Storage conflict persisted after retries",
        details={"attempts": attempts, "cause": type(last_exc).__name__},
    ) from last_exc
