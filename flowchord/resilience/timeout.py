"""Timeout management implementation."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from flowchord.errors.exceptions import NodeTimeoutError


T = TypeVar("T")


class TimeoutManager:
    """Per-invocation timeout for node adapters.

    Every attempt of every node in a run gets the workflow's ``timeoutMs``.

    Example:
        >>> manager = TimeoutManager.from_millis(30000)
        >>> result = await manager.execute(adapter.invoke, config, payload, ctx, node_id="n1")
    """

    def __init__(self, default_timeout: float = 30.0) -> None:
        """Initialize timeout manager.

        Args:
            default_timeout: Timeout in seconds.
        """
        if default_timeout <= 0:
            raise ValueError("default_timeout must be positive")

        self._default_timeout = default_timeout

    @classmethod
    def from_millis(cls, timeout_ms: int) -> TimeoutManager:
        """Create a manager from a workflow ``timeoutMs`` value."""
        return cls(default_timeout=timeout_ms / 1000.0)

    @property
    def default_timeout(self) -> float:
        """Timeout in seconds."""
        return self._default_timeout

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        timeout: float | None = None,
        node_id: str | None = None,
        **kwargs: Any,
    ) -> T:
        """Execute function with timeout protection.

        The awaited call is cancelled when the deadline passes.

        Args:
            func: Async function to execute.
            *args: Positional arguments.
            timeout: Explicit timeout (overrides the default).
            node_id: Node id reported in the raised error.
            **kwargs: Keyword arguments.

        Returns:
            Result of function execution.

        Raises:
            NodeTimeoutError: If execution times out.
        """
        effective_timeout = timeout if timeout is not None else self._default_timeout

        try:
            return await asyncio.wait_for(
                func(*args, **kwargs),
                timeout=effective_timeout,
            )
        except asyncio.TimeoutError as e:
            raise NodeTimeoutError(node_id, effective_timeout) from e
