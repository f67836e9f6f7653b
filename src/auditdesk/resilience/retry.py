"""Resilient API call decorator with tenacity retry and operator notification.

Retry 3 times with exponential backoff and jitter, then hand the failure to
the configured operator notifier.  Only exceptions listed in ``retry_on``
are retried; everything else propagates on the first attempt.
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

logger = structlog.get_logger()

# Module-level notifier for operator alerts (set once at startup)
_notifier: Callable[[str, int, BaseException | None], Any] | None = None

F = TypeVar("F", bound=Callable[..., Any])


def configure_error_notifier(
    notifier: Callable[[str, int, BaseException | None], Any] | None,
) -> None:
    """Set the module-level notifier for retry exhaustion alerts.

    Args:
        notifier: A callable taking ``(api_name, attempts, exception)``, or
            ``None`` to disable notifications.
    """
    global _notifier
    _notifier = notifier


def _api_name_of(retry_state: RetryCallState) -> str:
    return getattr(retry_state.fn, "_api_name", "unknown") if retry_state.fn else "unknown"


def notify_on_final_failure(retry_state: RetryCallState) -> None:
    """Log failure and notify the operator on final retry exhaustion.

    The original exception is re-raised afterwards because ``reraise=True``
    is set on the retry policy.

    Args:
        retry_state: Tenacity retry state with attempt info and exception.
    """
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    api_name = _api_name_of(retry_state)

    logger.error(
        "API call failed after all retries",
        api_name=api_name,
        attempts=retry_state.attempt_number,
        exception=str(exception),
    )

    if _notifier is not None:
        try:
            _notifier(api_name, retry_state.attempt_number, exception)
        except Exception:
            logger.exception("Failed to send operator notification")

    if exception is not None:
        raise exception


def _before_sleep_log(retry_state: RetryCallState) -> None:
    """Log a warning before each retry attempt.

    Args:
        retry_state: Tenacity retry state with attempt info.
    """
    logger.warning(
        "Retrying API call",
        api_name=_api_name_of(retry_state),
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
    )


def resilient_api_call(
    api_name: str,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[F], F]:
    """Create a retry decorator for an API call.

    Returns a tenacity retry decorator configured with:
    - 3 attempts maximum
    - Retries only for exceptions in *retry_on*
    - Exponential backoff with jitter (1s initial, 30s max, 5s jitter)
    - Warning log before each retry
    - Operator notification on final failure
    - Original exception re-raised after exhaustion

    Args:
        api_name: Human-readable name for the API (used in logs and alerts).
        retry_on: Exception types considered transient.

    Returns:
        A decorator that wraps the function with retry logic.
    """

    def decorator(func: F) -> F:
        func._api_name = api_name  # type: ignore[attr-defined]

        wrapped = retry(
            retry=retry_if_exception_type(retry_on),
            stop=stop_after_attempt(3),
            wait=wait_exponential_jitter(initial=1, max=30, jitter=5),
            before_sleep=_before_sleep_log,
            retry_error_callback=notify_on_final_failure,
            reraise=True,
        )(func)

        return wrapped  # type: ignore[return-value]

    return decorator
