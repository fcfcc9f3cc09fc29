"""Tests for retry.py: backoff policy and the async retry loop."""

from __future__ import annotations

import pytest

from cloudmount.retry import RetryPolicy, retry_async


class _Sleeper:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestRetryPolicy:
    def test_defaults_double_from_half_a_second(self):
        policy = RetryPolicy()
        assert [policy.calculate_delay(n) for n in range(3)] == [0.5, 1.0, 2.0]

    def test_delay_is_capped(self):
        policy = RetryPolicy(initial_delay=4.0, max_delay=5.0)
        assert policy.calculate_delay(3) == 5.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            pytest.param({"max_attempts": 0}, id="no-attempts"),
            pytest.param({"initial_delay": -1.0}, id="negative-delay"),
            pytest.param({"initial_delay": 2.0, "max_delay": 1.0}, id="cap-below-initial"),
            pytest.param({"backoff_factor": 0.5}, id="shrinking"),
        ],
    )
    def test_rejects_invalid(self, kwargs: dict):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestRetryAsync:
    async def test_returns_first_success(self):
        sleeper = _Sleeper()

        async def ok() -> str:
            return "done"

        assert await retry_async(ok, RetryPolicy(), operation="ok", sleep=sleeper) == "done"
        assert sleeper.delays == []

    async def test_retries_then_succeeds(self):
        sleeper = _Sleeper()
        calls = []

        async def flaky() -> int:
            calls.append(1)
            if len(calls) < 3:
                raise RuntimeError("boom")
            return len(calls)

        result = await retry_async(flaky, RetryPolicy(), operation="flaky", sleep=sleeper)
        assert result == 3
        assert sleeper.delays == [0.5, 1.0]

    async def test_reraises_after_last_attempt(self):
        sleeper = _Sleeper()
        calls = []

        async def always_fails() -> None:
            calls.append(1)
            raise RuntimeError(f"attempt {len(calls)}")

        with pytest.raises(RuntimeError, match="attempt 3"):
            await retry_async(always_fails, RetryPolicy(), operation="fail", sleep=sleeper)
        assert len(calls) == 3
        assert sleeper.delays == [0.5, 1.0]

    async def test_does_not_retry_unlisted_errors(self):
        sleeper = _Sleeper()
        calls = []

        async def wrong_kind() -> None:
            calls.append(1)
            raise KeyError("nope")

        with pytest.raises(KeyError):
            await retry_async(
                wrong_kind,
                RetryPolicy(),
                operation="wrong",
                retry_on=(RuntimeError,),
                sleep=sleeper,
            )
        assert len(calls) == 1
