"""Bounded exponential backoff for calls to remote services."""

import logging
import time
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0


def backoff_delay(attempt: int, base_delay: float = DEFAULT_BASE_DELAY, cap: Optional[float] = None) -> float:
    """Delay before retry number ``attempt`` (0-based): base, 2*base, 4*base, ..."""
    delay = base_delay * (2 ** attempt)
    return min(delay, cap) if cap is not None else delay


def with_retry(
    operation: Callable[[], T],
    *,
    is_retryable: Callable[[Exception], bool],
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "request",
) -> T:
    """Run ``operation``, retrying up to ``max_retries`` times on retryable errors.

    Errors the predicate rejects, and the last error once retries are used up,
    propagate unchanged.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as e:
            if attempt >= max_retries or not is_retryable(e):
                raise
            delay = backoff_delay(attempt, base_delay)
            logger.warning(f"{description} failed ({e}); retrying in {delay:.1f}s "
                           f"(attempt {attempt + 1}/{max_retries})")
            sleep(delay)
            attempt += 1
