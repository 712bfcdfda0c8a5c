"""Tests for the rate-limit retry decorator."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from tenacity import wait_fixed, wait_none

from slackmcp.domain.errors import NotFoundError, RateLimitedError, RemoteServiceError
from slackmcp.resilience.retry import resilient_api_call, wait_retry_after


class TestResilientApiCall:
    """Only rate-limit rejections are retried."""

    def test_succeeds_after_rate_limit(self) -> None:
        calls = {"n": 0}

        @resilient_api_call("test", wait=wait_none())
        def flaky() -> str:
            calls["n"] += 1
            if calls["n"] < 3:
                raise RateLimitedError("conversations.history")
            return "ok"

        assert flaky() == "ok"
        assert calls["n"] == 3

    def test_reraises_rate_limit_after_exhaustion(self) -> None:
        calls = {"n": 0}

        @resilient_api_call("test", attempts=2, wait=wait_none())
        def always_limited() -> None:
            calls["n"] += 1
            raise RateLimitedError("users.list", 1.0)

        with pytest.raises(RateLimitedError):
            always_limited()
        assert calls["n"] == 2

    @pytest.mark.parametrize(
        "error",
        [NotFoundError("gone"), RemoteServiceError("conversations.replies", "not_in_channel")],
    )
    def test_other_errors_are_not_retried(self, error) -> None:
        calls = {"n": 0}

        @resilient_api_call("test", wait=wait_none())
        def failing() -> None:
            calls["n"] += 1
            raise error

        with pytest.raises(type(error)):
            failing()
        assert calls["n"] == 1

    @pytest.mark.anyio()
    async def test_async_functions_are_retried(self) -> None:
        calls = {"n": 0}

        @resilient_api_call("test", wait=wait_none())
        async def flaky() -> int:
            calls["n"] += 1
            if calls["n"] == 1:
                raise RateLimitedError("conversations.history")
            return 42

        assert await flaky() == 42
        assert calls["n"] == 2


class TestWaitRetryAfter:
    """Backoff honours the remote's Retry-After hint."""

    @staticmethod
    def _state(exception: Exception | None) -> MagicMock:
        state = MagicMock()
        state.outcome.exception.return_value = exception
        return state

    def test_hint_longer_than_backoff_wins(self) -> None:
        wait = wait_retry_after(wait_fixed(1))
        assert wait(self._state(RateLimitedError("m", 5.0))) == 5.0

    def test_backoff_longer_than_hint_wins(self) -> None:
        wait = wait_retry_after(wait_fixed(10))
        assert wait(self._state(RateLimitedError("m", 2.0))) == 10.0

    def test_hint_is_capped(self) -> None:
        wait = wait_retry_after(wait_fixed(1), cap=30.0)
        assert wait(self._state(RateLimitedError("m", 120.0))) == 30.0

    def test_no_hint_uses_backoff(self) -> None:
        wait = wait_retry_after(wait_fixed(3))
        assert wait(self._state(RateLimitedError("m"))) == 3.0
