"""
Retry policy for remote text generation.

Bounded exponential backoff built on tenacity. Only transient provider
failures are retried; configuration and response-format errors fail fast.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

import tenacity

from .errors import LLMProviderError, RequestCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Attempts and backoff for remote calls. Delay before attempt n+1 is base_delay * 2**(n-1)."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay cannot be negative, got {self.base_delay}")


def should_retry(exception: BaseException) -> bool:
    """Check if an exception should trigger another attempt."""
    if isinstance(exception, RequestCancelled):
        return False
    if isinstance(exception, LLMProviderError):
        return exception.retryable
    return True


def _check_cancelled(cancel_event) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RequestCancelled("Request cancelled by caller")


def call_with_retry(
    fn: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
    cancel_event=None,
    label: str = "remote",
) -> T:
    """
    Call fn until it succeeds, a non-retryable error occurs, or attempts run out.

    Args:
        fn: Zero-argument callable performing one attempt
        policy: Attempts and backoff; defaults to RetryPolicy()
        sleep: Sleep function used between attempts (injected in tests)
        cancel_event: Optional threading.Event checked before every attempt
        label: Name used in log messages

    Returns:
        The first successful result

    Raises:
        RequestCancelled: If cancel_event is set at an attempt boundary
        Exception: The last error once retries are exhausted
    """
    policy = policy or RetryPolicy()

    retrying = tenacity.Retrying(
        retry=tenacity.retry_if_exception(should_retry),
        stop=tenacity.stop_after_attempt(policy.max_retries),
        wait=tenacity.wait_exponential(multiplier=policy.base_delay, min=0, max=policy.max_delay),
        sleep=sleep,
        before_sleep=lambda retry_state: logger.warning(
            f"[RETRY] {label} attempt {retry_state.attempt_number}/{policy.max_retries} "
            f"failed: {retry_state.outcome.exception()}"
        ),
        reraise=True,
    )

    for attempt in retrying:
        with attempt:
            _check_cancelled(cancel_event)
            return fn()
