from __future__ import annotations

import logging
import random
import time
from typing import Callable, TypeVar

import psycopg2

from coach.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 3
BASE_DELAY_SECONDS = 0.2
MAX_DELAY_SECONDS = 2.0


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, ConcurrencyConflict):
        return True
    return isinstance(exc, psycopg2.OperationalError)


def _backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    delay = base_delay * (2 ** attempt)
    # up to 50% jitter
    delay += delay * random.random() * 0.5
    return min(delay, max_delay)


def with_retry(
    operation: Callable[[], T],
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY_SECONDS,
    max_delay: float = MAX_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run a store operation, retrying conflicts and transient DB errors with exponential backoff."""
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as exc:
            if not _is_retryable(exc):
                raise
            if attempt >= max_retries:
                logger.error("Store operation failed after %s attempts: %s", attempt + 1, exc)
                raise
            delay = _backoff_delay(attempt, base_delay, max_delay)
            logger.info(
                "Store operation failed (attempt %s/%s), retrying in %.0fms",
                attempt + 1,
                max_retries + 1,
                delay * 1000,
            )
            sleep(delay)
            attempt += 1
