# Overview: Retry helpers for database writes that can lose a race.

from __future__ import annotations

import time

from sqlalchemy.exc import IntegrityError, OperationalError

from ..extensions import db


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05, retry_on=(OperationalError,)):
    """
    Execute a DB operation, rolling back and retrying on the given errors.

    `func` must rebuild its pending rows on every call: the rollback discards
    whatever the failed attempt added to the session.
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def commit_unique(build, *, attempts: int = 5):
    """
    Add the rows produced by `build()` and commit, retrying when a unique
    constraint (e.g. a generated document number) collides.
    """
    def _op():
        row = build()
        db.session.commit()
        return row
    return run_with_retry(_op, attempts=attempts, backoff_base=0.0, retry_on=(IntegrityError, OperationalError))
