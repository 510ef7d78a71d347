# Overview: Unit-of-work and retry helpers for every stock-mutating operation.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConcurrencyConflictError, InternalError, InventoryError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the write lock is taken up front by begin_write().
    """
    return query.with_for_update()


def begin_write() -> None:
    """Open the transaction in write mode where the dialect needs it."""
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run func as one unit of work: begin, call, commit.

    Everything func does through db.session (variant updates, movement rows,
    order/PO writes) commits together or not at all.

    - InventoryError (business rules): rollback and re-raise, never retried.
    - OperationalError (locks, deadlocks) and StaleDataError (Variant.version
      mismatch): rollback and re-run func from scratch, so stock checks see
      the winner's committed state. Raises ConcurrencyConflictError once the
      attempt budget is spent.
    - Any other SQLAlchemyError: rollback, raised as InternalError.
    """
    if attempts is None:
        attempts = current_app.config.get("STOCK_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("STOCK_RETRY_BACKOFF", 0.05)

    for attempt in range(attempts):
        try:
            begin_write()
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConcurrencyConflictError(
                    "Concurrent modification detected, please retry",
                    details={"attempts": attempts, "cause": exc.__class__.__name__},
                ) from exc
            current_app.logger.warning(
                "Transaction conflict (%s), retrying attempt %d/%d",
                exc.__class__.__name__, attempt + 2, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except InventoryError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise InternalError(
                "Storage failure",
                details={"cause": exc.__class__.__name__},
            ) from exc
        except Exception:
            db.session.rollback()
            raise
