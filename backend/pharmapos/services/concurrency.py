# Overview: Service-layer helpers for locking and transactional retry.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PersistenceError
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id columns still catch lost updates there.
    """
    return query.with_for_update()


def _default_attempts() -> int:
    try:
        return int(current_app.config.get("DB_RETRY_ATTEMPTS", 3))
    except RuntimeError:
        return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute one transactional unit with retry on concurrency-related failures.

    func must do all of its writes and commit before returning. Whatever it
    raises, the session is rolled back first so nothing partial survives:
    - OperationalError (deadlocks, locks) and StaleDataError (optimistic
      locking conflicts) are retried with exponential backoff, then surfaced
      as PersistenceError.
    - any other SQLAlchemyError becomes PersistenceError immediately.
    - domain errors propagate unchanged.
    """
    if attempts is None:
        attempts = _default_attempts()

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceError(
                    "Storage conflict persisted after retries",
                    details={"attempts": attempts, "cause": exc.__class__.__name__},
                ) from exc
            logger.warning("Concurrent update conflict (%s), retry %d/%d", exc.__class__.__name__, attempt + 1, attempts - 1)
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(
                "Storage failure; operation rolled back",
                details={"cause": exc.__class__.__name__},
            ) from exc
        except Exception:
            db.session.rollback()
            raise
    raise PersistenceError("Operation was not attempted", details={"attempts": attempts})
