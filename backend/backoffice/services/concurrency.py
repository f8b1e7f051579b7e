# Overview: Service-layer operations for concurrency; row locking and retry around DB units of work.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StorageError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    SQLite still serializes writers, and a losing writer surfaces as an
    OperationalError ("database is locked") which run_with_retry absorbs.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Each retry starts after a rollback, so
    nothing from the failed attempt was committed.

    Any other exception rolls the session back and propagates. Database
    failures that survive the retries are raised as StorageError.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise StorageError(
                    "storage unavailable after retries",
                    details={"reason": str(exc.__class__.__name__)},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError(
                "storage error",
                details={"reason": str(exc.__class__.__name__)},
            ) from exc
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise StorageError("storage unavailable after retries") from last_exc


def finish(commit: bool) -> None:
    """Commit the unit of work, or only flush when the caller owns the transaction."""
    if commit:
        db.session.commit()
    else:
        db.session.flush()


def run_unit(func, *, commit: bool = True):
    """
    Run a ledger unit of work.

    With commit=True the unit owns its transaction and is retried as a whole.
    With commit=False it joins the caller's open transaction: it is executed
    once and never rolled back or retried here, because a rollback would also
    discard work the caller already flushed.
    """
    if commit:
        return run_with_retry(func)
    return func()
