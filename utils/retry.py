"""
Retry utilities with exponential backoff for transient network errors.

S3 and the automation API both fail temporarily from time to time:
  - Throttling (HTTP 429, S3 "SlowDown")
  - Server errors (HTTP 500/502/503/504)
  - Connection resets and timeouts

Those go away if we wait and try again. Each wait doubles (capped at
max_delay) and is multiplied by a random jitter factor in [0.5, 1.5) so that
many clients retrying at once do not hit the service in lockstep.

USAGE:
------
    from utils.retry import retry_on_transient_error, is_transient_network_error

    @retry_on_transient_error(is_retryable=is_transient_network_error, max_retries=3)
    def call_api():
        return session.get(url, timeout=30)
"""

import time
import random
from functools import wraps
from typing import Callable, Optional


def retry_on_transient_error(
    is_retryable: Callable[[Exception], bool],
    max_retries: int = 5,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    on_retry: Optional[Callable[[Exception, int, float], None]] = None,
):
    """
    Decorator that retries a function on transient errors with exponential backoff.

    Args:
        is_retryable: Takes an exception and returns True if the call should
                      be retried. Non-retryable exceptions propagate at once.
        max_retries: Retry attempts after the initial try (total = max_retries + 1).
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for a single delay, before jitter.
        on_retry: Optional callback (exc, failed_attempt, delay) invoked
                  before sleeping.

    Returns:
        A decorator that wraps functions with retry logic.

    Raises:
        The last exception encountered once retries are exhausted.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except Exception as exc:
                    if not is_retryable(exc):
                        raise
                    last_exception = exc

                    if attempt < max_retries:
                        delay = min(base_delay * (2 ** attempt), max_delay)
                        delay *= 0.5 + random.random()
                        if on_retry:
                            on_retry(exc, attempt + 1, delay)
                        time.sleep(delay)

            raise last_exception

        return wrapper
    return decorator


# HTTP status codes that indicate transient server issues
TRANSIENT_HTTP_STATUS_CODES = {
    429,  # Too Many Requests (rate limited)
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}

# S3 error codes that are worth another attempt
TRANSIENT_S3_ERROR_CODES = {
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestTimeout",
    "InternalError",
    "ServiceUnavailable",
}

TRANSIENT_NETWORK_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    OSError,
)


def is_transient_network_error(exc: Exception) -> bool:
    """Check if an exception is a transient network error."""
    return isinstance(exc, TRANSIENT_NETWORK_EXCEPTIONS)


def log_retry(exc: Exception, attempt: int, delay: float) -> None:
    """Report an upcoming retry on the activity log."""
    from sorta import Sorta

    status = getattr(getattr(exc, 'response', None), 'status_code', None)
    error_desc = f"HTTP {status}" if status else type(exc).__name__
    Sorta.print_log(f"  [yellow]Retry:[/yellow] {error_desc} on attempt {attempt}, retrying in {delay:.1f}s...")
