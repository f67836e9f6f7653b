"""Tests for the resilient_api_call retry decorator and operator notifier."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest

from auditdesk.resilience.retry import configure_error_notifier, resilient_api_call


class TransientError(Exception):
    pass


class PermanentError(Exception):
    pass


@pytest.fixture(autouse=True)
def reset_notifier() -> Iterator[None]:
    yield
    configure_error_notifier(None)


def _no_sleep(func: Any) -> Any:
    func.retry.sleep = lambda seconds: None
    return func


class TestResilientApiCall:
    def test_success_needs_one_attempt(self) -> None:
        calls: list[int] = []

        @resilient_api_call("test.ok", retry_on=(TransientError,))
        def call() -> str:
            calls.append(1)
            return "ok"

        assert _no_sleep(call)() == "ok"
        assert len(calls) == 1

    def test_transient_failure_is_retried(self) -> None:
        calls: list[int] = []

        @resilient_api_call("test.flaky", retry_on=(TransientError,))
        def call() -> str:
            calls.append(1)
            if len(calls) < 2:
                raise TransientError("blip")
            return "ok"

        assert _no_sleep(call)() == "ok"
        assert len(calls) == 2

    def test_exhaustion_reraises_and_notifies(self) -> None:
        notified: list[tuple[str, int, BaseException | None]] = []
        configure_error_notifier(lambda name, attempts, exc: notified.append((name, attempts, exc)))
        calls: list[int] = []

        @resilient_api_call("test.down", retry_on=(TransientError,))
        def call() -> None:
            calls.append(1)
            raise TransientError("still down")

        with pytest.raises(TransientError, match="still down"):
            _no_sleep(call)()

        assert len(calls) == 3
        assert len(notified) == 1
        name, attempts, exc = notified[0]
        assert name == "test.down"
        assert attempts == 3
        assert isinstance(exc, TransientError)

    def test_non_transient_failure_is_not_retried(self) -> None:
        notified: list[Any] = []
        configure_error_notifier(lambda *args: notified.append(args))
        calls: list[int] = []

        @resilient_api_call("test.rejected", retry_on=(TransientError,))
        def call() -> None:
            calls.append(1)
            raise PermanentError("card declined")

        with pytest.raises(PermanentError):
            _no_sleep(call)()

        assert len(calls) == 1
        assert notified == []

    def test_broken_notifier_does_not_mask_error(self) -> None:
        def broken(*args: Any) -> None:
            raise RuntimeError("alerting is down")

        configure_error_notifier(broken)

        @resilient_api_call("test.down", retry_on=(TransientError,))
        def call() -> None:
            raise TransientError("still down")

        with pytest.raises(TransientError):
            _no_sleep(call)()
