# Overview: Row locking and retry helpers for inventory read-modify-write.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the inventory row being adjusted.

    NOTE: SQLite ignores FOR UPDATE; there the version_id check on
    InventoryItem is what catches a lost update.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run a unit of work, rolling back and retrying on lock or version conflicts.

    `func` must be safe to re-run from scratch: it re-reads whatever it
    modifies. The final failure is re-raised to the caller.
    """
    if attempts is None:
        attempts = current_app.config.get("INVENTORY_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("INVENTORY_RETRY_BACKOFF", 0.1)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Concurrent inventory update detected (attempt %s/%s): %s",
                attempt + 1, attempts, exc,
            )
            time.sleep(backoff_base * (2 ** attempt))
