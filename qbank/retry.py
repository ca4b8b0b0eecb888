"""Retry with exponential backoff around fallible datastore work."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
#: Seconds; attempt ``n`` (0-based) is followed by a ``base * 2**n`` wait.
DEFAULT_BASE_DELAY = 1.0


def with_retry(
    operation: Callable[[], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *operation* until it succeeds or *max_attempts* is reached.

    Args:
        operation: Zero-argument callable to invoke.
        max_attempts: Total number of calls before giving up.
        base_delay: Wait after the first failure, doubled on each retry.
        retry_on: Exception types that trigger a retry. Anything else
            propagates immediately.
        sleep: Wait function, replaceable in tests.

    Returns:
        Whatever *operation* returns on its first successful call.

    Raises:
        The exception from the final attempt, unchanged.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except retry_on as exc:
            attempt += 1
            logger.warning(
                "Attempt %d/%d failed: %s", attempt, max_attempts, exc
            )
            if attempt >= max_attempts:
                raise
            sleep(base_delay * 2 ** (attempt - 1))
