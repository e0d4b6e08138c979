"""Retry policy implementation."""

from __future__ import annotations

import asyncio
import random
from enum import Enum


class RetryStrategy(str, Enum):
    """Retry delay strategy."""

    FIXED = "fixed"           # Fixed delay between retries
    EXPONENTIAL = "exponential"  # Exponential backoff
    LINEAR = "linear"         # Linear increase


class RetryPolicy:
    """Retry budget for node invocations.

    An error is retried when it carries ``retryable=True`` (TransientError,
    NodeTimeoutError) or is one of ``DEFAULT_RETRYABLE``. AuthError and
    PermanentError are never retried, whatever the remaining budget.

    Example:
        >>> policy = RetryPolicy(max_retries=3, strategy=RetryStrategy.FIXED, base_delay=0.0)
        >>> policy.should_retry(TransientError("busy", provider="gemini"), attempt=0)
        True
    """

    # Retryable even without a `retryable` flag
    DEFAULT_RETRYABLE: tuple[type[Exception], ...] = (
        ConnectionError,
        asyncio.TimeoutError,
    )

    def __init__(
        self,
        max_retries: int = 0,
        strategy: RetryStrategy = RetryStrategy.FIXED,
        base_delay: float = 0.0,
        max_delay: float = 30.0,
        jitter: bool = False,
        jitter_factor: float = 0.1,
        retryable_errors: tuple[type[Exception], ...] | None = None,
    ) -> None:
        """Initialize retry policy.

        Args:
            max_retries: Additional attempts after the first one.
            strategy: Delay calculation strategy.
            base_delay: Base delay in seconds (0 retries immediately).
            max_delay: Maximum delay cap in seconds.
            jitter: Whether to add random jitter to delays.
            jitter_factor: Jitter as fraction of delay (0.0-1.0).
            retryable_errors: Exception types retried regardless of flag.
        """
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if max_delay < base_delay:
            raise ValueError("max_delay must be >= base_delay")

        self._max_retries = max_retries
        self._strategy = RetryStrategy(strategy)
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._jitter = jitter
        self._jitter_factor = jitter_factor
        self._retryable_errors = retryable_errors or self.DEFAULT_RETRYABLE

    @property
    def max_retries(self) -> int:
        """Maximum retry attempts."""
        return self._max_retries

    @property
    def max_attempts(self) -> int:
        """Total attempts including the first invocation."""
        return self._max_retries + 1

    @property
    def strategy(self) -> RetryStrategy:
        """Retry strategy."""
        return self._strategy

    def with_max_retries(self, max_retries: int) -> RetryPolicy:
        """Copy of this policy with a different retry budget."""
        return RetryPolicy(
            max_retries=max_retries,
            strategy=self._strategy,
            base_delay=self._base_delay,
            max_delay=self._max_delay,
            jitter=self._jitter,
            jitter_factor=self._jitter_factor,
            retryable_errors=self._retryable_errors,
        )

    def get_delay(self, attempt: int, error: Exception | None = None) -> float:
        """Calculate delay before the retry following ``attempt``.

        Args:
            attempt: Attempt number (0-indexed, 0 is the first invocation).
            error: Failure that triggered the retry. A ``retry_after`` hint
                on it takes precedence when larger than the computed delay.

        Returns:
            Delay in seconds.
        """
        if self._strategy == RetryStrategy.EXPONENTIAL:
            delay = self._base_delay * (2 ** attempt)
        elif self._strategy == RetryStrategy.LINEAR:
            delay = self._base_delay * (attempt + 1)
        else:
            delay = self._base_delay

        delay = min(delay, self._max_delay)

        if self._jitter and delay > 0:
            jitter_range = delay * self._jitter_factor
            delay += random.uniform(-jitter_range, jitter_range)
            delay = max(0.0, delay)

        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            delay = max(delay, min(float(retry_after), self._max_delay))

        return delay

    def is_retryable(self, error: Exception) -> bool:
        """Whether the error kind allows another attempt."""
        flag = getattr(error, "retryable", None)
        if flag is not None:
            return bool(flag)
        return isinstance(error, self._retryable_errors)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """Determine if operation should be retried.

        Args:
            error: The exception that occurred.
            attempt: Current attempt number (0-indexed).

        Returns:
            True if should retry, False otherwise.
        """
        if attempt >= self._max_retries:
            return False

        return self.is_retryable(error)
