"""
Retry with exponential backoff

Only for read-style or idempotent calls (rate lookups, provider searches,
order cancellation). Never wrap a charge or a refund with this: an
ambiguous failure there must surface instead of being repeated.
"""

import logging
import time
from typing import Callable, Optional, TypeVar

import requests

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 1.0
DEFAULT_MAX_DELAY = 10.0
DEFAULT_MULTIPLIER = 2.0


def _status_code(error: BaseException) -> Optional[int]:
    response = getattr(error, 'response', None)
    code = getattr(response, 'status_code', None)
    if code is None:
        code = getattr(error, 'status_code', None) or getattr(error, 'http_status', None)
    return code if isinstance(code, int) else None


def is_retryable_error(error: BaseException) -> bool:
    """Connection resets, timeouts and 5xx responses are worth another try."""
    if isinstance(error, (requests.ConnectionError, requests.Timeout, ConnectionError, TimeoutError)):
        return True
    code = _status_code(error)
    return code is not None and 500 <= code < 600


def retry_with_backoff(
    func: Callable[[], T],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    multiplier: float = DEFAULT_MULTIPLIER,
    retryable: Callable[[BaseException], bool] = is_retryable_error,
    description: str = 'operation',
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        try:
            return func()
        except Exception as e:
            if attempt >= max_attempts or not retryable(e):
                raise
            logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}), "
                f"retrying in {delay:.1f}s: {e}"
            )
            sleep(delay)
            delay = min(delay * multiplier, max_delay)
    raise RuntimeError('unreachable')  # pragma: no cover
