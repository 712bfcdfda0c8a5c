"""Resilient remote call decorator built on tenacity.

Only rate-limit rejections are retried.  Every other remote failure is
reported to the caller on the first attempt.  Backoff is exponential with
jitter, but never shorter than the ``Retry-After`` the remote asked for.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.wait import wait_base

from slackmcp.domain.errors import RateLimitedError

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])

DEFAULT_ATTEMPTS = 3


class wait_retry_after(wait_base):
    """Wait at least as long as the remote's ``Retry-After`` hint.

    Falls back to *fallback* when the last failure carried no hint.
    """

    def __init__(self, fallback: wait_base, cap: float = 60.0) -> None:
        self.fallback = fallback
        self.cap = cap

    def __call__(self, retry_state: RetryCallState) -> float:
        backoff = self.fallback(retry_state)
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        hint = getattr(exception, "retry_after", None)
        if hint is None:
            return backoff
        return min(max(float(hint), backoff), self.cap)


def raise_on_final_failure(retry_state: RetryCallState) -> Any:
    """Log retry exhaustion and re-raise the last failure.

    Args:
        retry_state: Tenacity retry state with attempt info and exception.

    Raises:
        RateLimitedError: The last rate-limit rejection from the remote.
    """
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    api_name = getattr(retry_state.fn, "_api_name", "unknown") if retry_state.fn else "unknown"

    logger.error(
        "API call failed after all retries",
        api_name=api_name,
        attempts=retry_state.attempt_number,
        exception=str(exception),
    )
    if exception is not None:
        raise exception
    return None


def _before_sleep_log(retry_state: RetryCallState) -> None:
    """Log a warning before each retry attempt.

    Args:
        retry_state: Tenacity retry state with attempt info.
    """
    api_name = getattr(retry_state.fn, "_api_name", "unknown") if retry_state.fn else "unknown"
    logger.warning(
        "Retrying API call",
        api_name=api_name,
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
    )


def resilient_api_call(
    api_name: str,
    attempts: int = DEFAULT_ATTEMPTS,
    wait: wait_base | None = None,
) -> Callable[[F], F]:
    """Create a retry decorator for a remote call.

    Returns a tenacity retry decorator configured with:
    - *attempts* attempts maximum (3 by default)
    - Exponential backoff with jitter (1s initial, 30s max, 5s jitter),
      stretched to honour any ``Retry-After`` hint
    - Retries on ``RateLimitedError`` only
    - Warning log before each retry
    - Original exception re-raised after exhaustion

    Works for both plain and ``async`` functions.

    Args:
        api_name: Human-readable name for the API (used in logs).
        attempts: Maximum number of attempts, including the first.
        wait: Override the wait strategy (tests pass ``wait_none()``).

    Returns:
        A decorator that wraps the function with retry logic.
    """

    def decorator(func: F) -> F:
        # Store api_name on function for the log callbacks
        func._api_name = api_name  # type: ignore[attr-defined]

        wrapped = retry(
            retry=retry_if_exception_type(RateLimitedError),
            stop=stop_after_attempt(attempts),
            wait=wait or wait_retry_after(wait_exponential_jitter(initial=1, max=30, jitter=5)),
            before_sleep=_before_sleep_log,
            retry_error_callback=raise_on_final_failure,
            reraise=True,
        )(func)

        return wrapped

    return decorator
