import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError

from models import db
from scheduling.errors import StorageUnavailable

logger = logging.getLogger(__name__)


def _backoff_delay(attempt: int, base: float, max_delay: float) -> float:
    return min(base * (2 ** (attempt - 1)), max_delay)


def run_write(fn, label="write", attempts=None):
    """
    Run a unit of work that commits, retrying transient connection/timeout
    failures (OperationalError) with exponential backoff.

    IntegrityError and domain errors are not retried: they propagate as-is.
    After the last attempt the failure surfaces as StorageUnavailable and the
    write is not assumed to have happened.
    """
    cfg = current_app.config
    attempts = attempts or cfg.get("WRITE_RETRY_ATTEMPTS", 3)
    base = cfg.get("WRITE_RETRY_BACKOFF_SECONDS", 0.2)
    max_delay = cfg.get("WRITE_RETRY_MAX_DELAY_SECONDS", 2.0)

    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except OperationalError as exc:
            db.session.rollback()
            if attempt >= attempts:
                logger.error("%s failed after %d attempts: %s", label, attempt, exc)
                raise StorageUnavailable() from exc
            delay = _backoff_delay(attempt, base, max_delay)
            logger.warning("%s attempt %d/%d failed, retrying in %.2fs: %s", label, attempt, attempts, delay, exc)
            time.sleep(delay)
