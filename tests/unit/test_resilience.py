"""Unit tests for Resilience module."""

from __future__ import annotations

import asyncio

import pytest

from flowchord.errors.exceptions import (
    AuthError,
    NodeTimeoutError,
    PermanentError,
    TransientError,
)
from flowchord.resilience.retry import RetryPolicy, RetryStrategy
from flowchord.resilience.timeout import TimeoutManager


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_fixed_delay(self) -> None:
        """Fixed strategy should return constant delay."""
        policy = RetryPolicy(strategy=RetryStrategy.FIXED, base_delay=1.0)

        assert policy.get_delay(0) == 1.0
        assert policy.get_delay(2) == 1.0

    def test_exponential_delay(self) -> None:
        """Exponential strategy should double delay."""
        policy = RetryPolicy(strategy=RetryStrategy.EXPONENTIAL, base_delay=1.0, max_delay=100.0)

        assert policy.get_delay(0) == 1.0
        assert policy.get_delay(1) == 2.0
        assert policy.get_delay(2) == 4.0

    def test_linear_delay(self) -> None:
        policy = RetryPolicy(strategy=RetryStrategy.LINEAR, base_delay=1.0, max_delay=100.0)

        assert policy.get_delay(0) == 1.0
        assert policy.get_delay(2) == 3.0

    def test_max_delay_cap(self) -> None:
        """Should cap delay at max_delay."""
        policy = RetryPolicy(strategy=RetryStrategy.EXPONENTIAL, base_delay=1.0, max_delay=5.0)

        assert policy.get_delay(10) == 5.0

    def test_retry_after_hint(self) -> None:
        """A provider retry-after hint extends the delay, within the cap."""
        policy = RetryPolicy(base_delay=0.0, max_delay=10.0)

        assert policy.get_delay(0, TransientError("slow", provider="x", retry_after=2.0)) == 2.0
        assert policy.get_delay(0, TransientError("slow", provider="x", retry_after=60.0)) == 10.0

    def test_jitter_stays_in_range(self) -> None:
        policy = RetryPolicy(base_delay=1.0, jitter=True, jitter_factor=0.5)

        for _ in range(20):
            assert 0.5 <= policy.get_delay(0) <= 1.5

    def test_should_retry_respects_budget(self) -> None:
        """Should retry on retryable errors until the budget is spent."""
        policy = RetryPolicy(max_retries=2)
        error = TransientError("503", provider="gemini")

        assert policy.should_retry(error, 0) is True
        assert policy.should_retry(error, 1) is True
        assert policy.should_retry(error, 2) is False

    @pytest.mark.parametrize("error", [
        AuthError("bad key", provider="openai"),
        PermanentError("bad request", provider="openai"),
        ValueError("unexpected"),
    ])
    def test_non_retryable_errors(self, error) -> None:
        assert RetryPolicy(max_retries=5).should_retry(error, 0) is False

    @pytest.mark.parametrize("error", [
        NodeTimeoutError("n1", 1.0),
        ConnectionError("reset"),
        asyncio.TimeoutError(),
    ])
    def test_retryable_errors(self, error) -> None:
        assert RetryPolicy(max_retries=1).is_retryable(error) is True

    def test_with_max_retries(self) -> None:
        base = RetryPolicy(strategy=RetryStrategy.LINEAR, base_delay=0.5)
        policy = base.with_max_retries(4)

        assert policy.max_retries == 4
        assert policy.max_attempts == 5
        assert policy.strategy == RetryStrategy.LINEAR
        assert base.max_retries == 0

    def test_invalid_arguments(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay=2.0, max_delay=1.0)


class TestTimeoutManager:
    """Tests for TimeoutManager."""

    def test_from_millis(self) -> None:
        manager = TimeoutManager.from_millis(1500)

        assert manager.default_timeout == 1.5

    def test_invalid_timeouts(self) -> None:
        with pytest.raises(ValueError):
            TimeoutManager(default_timeout=0)
        with pytest.raises(ValueError):
            TimeoutManager.from_millis(-5)

    @pytest.mark.asyncio
    async def test_execute_within_timeout(self) -> None:
        async def quick(value: int) -> int:
            return value * 2

        assert await TimeoutManager(default_timeout=1.0).execute(quick, 21) == 42

    @pytest.mark.asyncio
    async def test_execute_timeout_raises_node_timeout(self) -> None:
        async def slow() -> None:
            await asyncio.sleep(5)

        with pytest.raises(NodeTimeoutError) as exc_info:
            await TimeoutManager(default_timeout=0.05).execute(slow, node_id="n1")

        assert exc_info.value.node_id == "n1"
        assert exc_info.value.retryable is True
