# Overview: Row locking and retry helpers shared by the ledger services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

TRANSIENT_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for read-check-write sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05, retry_on=()):
    """
    Run a unit of work, rolling back and retrying on concurrency failures.

    Always retries OperationalError (lock timeouts, deadlocks) and
    StaleDataError. Extra exception types (e.g. IntegrityError for an
    invoice number collision) are passed via retry_on.

    Any other exception rolls the session back and propagates, so a failed
    unit of work never leaves partial writes pending in the session.
    """
    if attempts is None:
        attempts = current_app.config.get("RETRY_ATTEMPTS", 3)
    retryable = TRANSIENT_ERRORS + tuple(retry_on)

    for attempt in range(attempts):
        try:
            return func()
        except retryable as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after %s (attempt %d/%d)", type(exc).__name__, attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
