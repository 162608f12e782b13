# Overview: Unit-of-work and row locking helpers shared by the ledger services.

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflict, IntegrityConflict
from ..extensions import db

# PostgreSQL: serialization_failure, deadlock_detected, lock_not_available
LOCK_PGCODES = {"40001", "40P01", "55P03"}
# MySQL: lock wait timeout, deadlock
LOCK_MYSQL_CODES = {1205, 1213}
LOCK_MESSAGES = (
    "database is locked",
    "database table is locked",
    "deadlock",
    "lock wait timeout",
    "could not obtain lock",
    "lock timeout",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def is_lock_conflict(exc: OperationalError) -> bool:
    """True when the driver error is a lock/deadlock/serialization failure."""
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in LOCK_PGCODES:
        return True
    args = getattr(orig, "args", ())
    if args and args[0] in LOCK_MYSQL_CODES:
        return True
    message = str(orig if orig is not None else exc).lower()
    return any(marker in message for marker in LOCK_MESSAGES)


def _begin_immediate_if_sqlite() -> None:
    """
    Take SQLite's write lock before the unit of work reads anything.

    SQLite ignores FOR UPDATE, so this is what serializes writers there.
    Skipped when the driver connection already has an open transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    if not current_app.config.get("SQLITE_IMMEDIATE_TRANSACTIONS", False):
        return
    connection = db.session.connection()
    if getattr(connection.connection.driver_connection, "in_transaction", False):
        return
    connection.exec_driver_sql("BEGIN IMMEDIATE")


@contextmanager
def unit_of_work():
    """
    Run the enclosed block as one atomic unit against the store.

    Commits when the block finishes, rolls back on any exception. Store-level
    failures are translated: IntegrityError -> IntegrityConflict,
    version conflicts and lock failures -> ConcurrencyConflict (retryable).
    Any other OperationalError propagates unchanged. Nothing is retried
    here; retries are the caller's decision.
    """
    try:
        _begin_immediate_if_sqlite()
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise IntegrityConflict(
            "The store rejected the write",
            details={"constraint": str(exc.orig)},
        ) from exc
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrencyConflict(
            "Concurrent modification detected; retry the operation",
            details={"cause": exc.__class__.__name__},
        ) from exc
    except OperationalError as exc:
        db.session.rollback()
        if not is_lock_conflict(exc):
            raise
        raise ConcurrencyConflict(
            "The store is locked by another writer; retry the operation",
            details={"cause": exc.__class__.__name__},
        ) from exc
    except BaseException:
        db.session.rollback()
        raise
