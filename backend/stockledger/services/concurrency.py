# Overview: Service-layer operations for concurrency; encapsulates transactions, locking and retry.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterable, TypeVar

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LedgerError, LockTimeoutError, PersistenceError
from ..extensions import db

"""
Write-path rules (authoritative)

- Every public write operation is ONE database transaction: either every row
  of its commit sequence lands or none does.
- Per-product mutations are serialized. Writers take an in-process lock per
  product id (sorted order, so two carts never deadlock), then open the
  transaction. On SQLite the transaction starts with BEGIN IMMEDIATE, which
  takes the database write lock up front; server databases honor the
  SELECT ... FOR UPDATE issued when product rows are read.
- Products carry a version_id column, so a lost update surfaces as
  StaleDataError and the whole operation is retried, as is lock contention
  reported by the driver. Other storage errors are not retried.
"""

T = TypeVar("T")

DEFAULT_LOCK_TIMEOUT = 5.0

# Driver messages that mean "another writer holds the lock", per dialect:
# SQLite, MySQL/MariaDB, PostgreSQL
LOCK_ERROR_MARKERS = (
    "database is locked",
    "database table is locked",
    "database is busy",
    "lock wait timeout",
    "deadlock",
    "could not obtain lock",
    "could not serialize access",
)

_registry_guard = threading.Lock()
_product_locks: dict[int, threading.RLock] = {}


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _lock_for(product_id: int) -> threading.RLock:
    with _registry_guard:
        lock = _product_locks.get(product_id)
        if lock is None:
            lock = threading.RLock()
            _product_locks[product_id] = lock
        return lock


def _lock_timeout() -> float:
    try:
        return float(current_app.config.get("LOCK_TIMEOUT_SECONDS", DEFAULT_LOCK_TIMEOUT))
    except RuntimeError:
        # outside an application context
        return DEFAULT_LOCK_TIMEOUT


@contextmanager
def product_locks(product_ids: Iterable[int], *, timeout: float | None = None):
    """
    Hold the in-process locks of every product in ``product_ids``.

    Locks are taken in ascending id order. If any lock is not acquired
    within ``timeout`` seconds, the ones already held are released and
    LockTimeoutError is raised.
    """
    if timeout is None:
        timeout = _lock_timeout()

    held: list[threading.RLock] = []
    try:
        for product_id in sorted(set(product_ids)):
            lock = _lock_for(product_id)
            if not lock.acquire(timeout=timeout):
                raise LockTimeoutError(
                    f"Timed out waiting for lock on product {product_id}",
                    details={"product_id": product_id, "timeout_seconds": timeout},
                )
            held.append(lock)
        yield
    finally:
        for lock in reversed(held):
            lock.release()


def begin_write_transaction() -> None:
    """Take the SQLite write lock at transaction start (no-op elsewhere)."""
    if db.engine.dialect.name != "sqlite":
        return
    connection = db.session.connection()
    # pysqlite already opened a transaction for earlier pending writes
    if getattr(connection.connection.dbapi_connection, "in_transaction", False):
        return
    connection.execute(text("BEGIN IMMEDIATE"))


def is_lock_contention(exc: OperationalError) -> bool:
    """True when the driver reports a busy database, lock wait or deadlock."""
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in message for marker in LOCK_ERROR_MARKERS)


def run_with_retry(func: Callable[[], T], *, attempts: int = 3, backoff_base: float = 0.1) -> T:
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on lock contention (busy database, lock wait, deadlock) and
    StaleDataError (optimistic locking conflicts). When the attempts are
    exhausted the failure surfaces as LockTimeoutError so callers can retry
    later. Any other OperationalError is not retried.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if isinstance(exc, OperationalError) and not is_lock_contention(exc):
                raise
            if attempt >= attempts - 1:
                raise LockTimeoutError(
                    "Database is busy; the operation was rolled back",
                    details={"attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
    raise LockTimeoutError("Database is busy; the operation was rolled back")


def run_in_transaction(
    func: Callable[[], T],
    *,
    product_ids: Iterable[int] = (),
    attempts: int = 3,
) -> T:
    """
    Run ``func`` as one locked, retried, all-or-nothing transaction.

    ``func`` does its reads and writes through db.session without
    committing. Business errors roll back and propagate unchanged; storage
    errors (a missing table, disk I/O, constraint violations) roll back and
    propagate as PersistenceError.
    """
    def _op() -> T:
        try:
            begin_write_transaction()
            result = func()
            db.session.commit()
            return result
        except StaleDataError:
            raise
        except OperationalError as exc:
            if is_lock_contention(exc):
                raise
            db.session.rollback()
            raise PersistenceError(
                "Storage failure; the operation was rolled back",
                details={"cause": exc.__class__.__name__},
            ) from exc
        except LedgerError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(
                "Storage failure; the operation was rolled back",
                details={"cause": exc.__class__.__name__},
            ) from exc
        except Exception:
            db.session.rollback()
            raise

    with product_locks(product_ids):
        return run_with_retry(_op, attempts=attempts)
