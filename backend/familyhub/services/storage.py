# Overview: Service-layer storage boundary; unit-of-work, row locking and error translation for database work.

from __future__ import annotations

import time
from contextlib import contextmanager
from functools import wraps

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class StorageError(Exception):
    """
    The database could not complete an operation.

    Callers treat this as retryable: nothing from the failed unit of work
    has been committed.
    """
    pass


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write transitions.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def storage_operation(func):
    """Translate SQLAlchemy failures raised by func into StorageError."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError(str(exc)) from exc
    return wrapper


@contextmanager
def atomic():
    """
    Unit of work: everything written inside the block is committed together
    or rolled back together.

    SQLAlchemy errors (including the commit itself) surface as StorageError.
    Any other exception rolls back and propagates unchanged.
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(str(exc)) from exc
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError,
    whether raised directly or wrapped in StorageError by atomic().
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, StorageError) as exc:
            db.session.rollback()
            cause = exc.__cause__ if isinstance(exc, StorageError) else exc
            if not isinstance(cause, (OperationalError, StaleDataError)) or attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
