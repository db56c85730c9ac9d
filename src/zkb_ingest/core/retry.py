"""
zkb-ingest Retry Logic

Resilient HTTP request handling with exponential backoff for transient failures.

- Classifies HTTP status codes as transient or permanent
- Parses Retry-After headers
- Builds tenacity AsyncRetrying controllers that retry only TransientFetchError
- Jitter to prevent thundering herd

Usage:
    async for attempt in async_retrying(max_attempts=5):
        with attempt:
            return await fetch_once()
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Literal, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.wait import wait_base

from .config import is_retry_disabled
from .errors import TransientFetchError
from .logging import get_logger

logger = get_logger(__name__)

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_MIN_WAIT = 1  # seconds
DEFAULT_MAX_WAIT = 60  # seconds

# HTTP status codes that should trigger retry
RETRYABLE_STATUS_CODES = {
    408,  # Request Timeout
    429,  # Too Many Requests (rate limited)
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}

# Status codes that should NOT be retried (client errors)
NON_RETRYABLE_STATUS_CODES = {
    400,  # Bad Request
    401,  # Unauthorized
    403,  # Forbidden
    404,  # Not Found
    422,  # Unprocessable Entity
}

StatusClass = Literal["ok", "transient", "permanent"]


def classify_status(status_code: int) -> StatusClass:
    """
    Classify an HTTP status code.

    Any 5xx is transient even when not listed explicitly; any other
    non-2xx code is permanent.
    """
    if 200 <= status_code < 300:
        return "ok"
    if status_code in RETRYABLE_STATUS_CODES or status_code >= 500:
        return "transient"
    return "permanent"


def parse_retry_after(headers: Mapping[str, str]) -> Optional[int]:
    """
    Parse Retry-After header from HTTP response.

    Args:
        headers: HTTP headers (dict-like)

    Returns:
        Number of seconds to wait, or None if not present
    """
    try:
        retry_after = headers.get("Retry-After")
        if retry_after:
            # Retry-After can be seconds or HTTP-date; only seconds are honoured
            return int(retry_after)
    except (ValueError, TypeError, AttributeError):
        pass
    return None


class wait_retry_after(wait_base):
    """
    Honour a server-supplied Retry-After, else defer to a fallback wait.

    The Retry-After value is read from the ``retry_after`` attribute of the
    exception that ended the previous attempt, and capped at max_wait.
    """

    def __init__(self, fallback: wait_base, max_wait: float) -> None:
        self.fallback = fallback
        self.max_wait = max_wait

    def __call__(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is not None:
            return min(float(retry_after), self.max_wait)
        return self.fallback(retry_state)


def async_retrying(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT,
    max_wait: float = DEFAULT_MAX_WAIT,
) -> AsyncRetrying:
    """
    Build a tenacity controller for an async fetch.

    Only TransientFetchError is retried; every other exception propagates
    on the first attempt. The last TransientFetchError is re-raised when
    the budget is spent. ZKB_NO_RETRY collapses the budget to one attempt.

    Args:
        max_attempts: Total attempts including the first
        min_wait: Initial backoff in seconds
        max_wait: Backoff ceiling in seconds
    """
    if is_retry_disabled():
        max_attempts = 1

    return AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_retry_after(
            wait_exponential_jitter(
                initial=min_wait,
                max=max_wait,
                jitter=max_wait * 0.1,
            ),
            max_wait=max_wait,
        ),
        retry=retry_if_exception_type(TransientFetchError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
