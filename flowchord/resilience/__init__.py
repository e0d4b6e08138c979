"""Resilience module for FlowChord.

Provides the retry policy and timeout management applied to every
node invocation.
"""

from flowchord.resilience.retry import (
    RetryStrategy,
    RetryPolicy,
)
from flowchord.resilience.timeout import TimeoutManager

__all__ = [
    # Retry
    "RetryStrategy",
    "RetryPolicy",
    # Timeout
    "TimeoutManager",
]
