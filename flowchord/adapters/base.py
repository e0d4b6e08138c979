"""Provider Adapter contract.

Every node type is served by one ``BaseAdapter`` implementation. The
executor never branches on the node type string: it asks the
``AdapterRegistry`` for the adapter and goes through the same four calls
(``validate_config``, ``invoke``, ``opens_branch``, ``forward``) for all
of them.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
import json
import logging
import re
from typing import TYPE_CHECKING, Any, ClassVar, Mapping

from flowchord.core.types import NodeSpec, NodeType
from flowchord.errors.exceptions import (
    AdapterError,
    AuthError,
    InvalidNodeTypeError,
    MissingConfigError,
    PermanentError,
    TransientError,
)

if TYPE_CHECKING:
    from flowchord.config import Settings

logger = logging.getLogger(__name__)

# {{input}}, {{input.field}}, {{input.items.0.name}}
TEMPLATE_PATTERN = re.compile(r'\{\{\s*([\w-]+(?:\.[\w-]+)*)\s*\}\}')

DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass(frozen=True)
class InvocationContext:
    """Per-invocation facts handed to an adapter."""

    workflow_id: str
    execution_id: str
    node_id: str
    attempt: int = 1
    trigger_type: str = "manual"
    deadline: float | None = None  # event loop time

    def remaining(self, default: float = DEFAULT_REQUEST_TIMEOUT) -> float:
        """Seconds left before the deadline, for client-side timeouts."""
        if self.deadline is None:
            return default
        return max(0.001, self.deadline - asyncio.get_running_loop().time())


class BaseAdapter(ABC):
    """Abstract base class for node adapters.

    Subclasses set ``node_type`` and, when the node cannot run without
    them, ``required_config``. Errors raised from ``invoke`` must be
    ``AuthError``, ``TransientError`` or ``PermanentError``; anything else
    is recorded by the executor as a permanent failure.
    """

    node_type: ClassVar[NodeType]
    required_config: ClassVar[tuple[str, ...]] = ()

    @property
    def provider_name(self) -> str:
        return self.node_type.value

    def validate_config(self, config: Mapping[str, Any], node_id: str | None = None) -> None:
        """Check the node config before a run starts.

        Raises:
            MissingConfigError: A required key is absent or empty.
        """
        for key in self.required_config:
            if config.get(key) in (None, ""):
                raise MissingConfigError(node_id, self.node_type.value, key)

    @abstractmethod
    async def invoke(
        self,
        config: Mapping[str, Any],
        payload: Any,
        context: InvocationContext,
    ) -> Any:
        """Run the node once and return its output payload."""
        ...

    def opens_branch(self, output: Any) -> bool:
        """Whether successors may run after this output. Only conditions close."""
        return True

    def forward(self, output: Any) -> Any:
        """Payload handed to successors."""
        return output

    def __repr__(self) -> str:
        return f"{type(self).__name__}(node_type={self.node_type.value!r})"


class AdapterRegistry:
    """Maps node types to adapters.

    Example:
        >>> registry = AdapterRegistry()
        >>> registry.register(DelayAdapter())
        >>> output = await registry.invoke("delay", {"duration_ms": 10}, payload, ctx)
    """

    def __init__(self) -> None:
        self._adapters: dict[NodeType, BaseAdapter] = {}

    def register(self, adapter: BaseAdapter) -> None:
        """Register an adapter, replacing any previous one for its type."""
        self._adapters[adapter.node_type] = adapter

    def unregister(self, node_type: NodeType | str) -> bool:
        """Remove an adapter. Returns True if found."""
        try:
            key = NodeType(node_type)
        except ValueError:
            return False
        return self._adapters.pop(key, None) is not None

    def has(self, node_type: NodeType | str) -> bool:
        try:
            return NodeType(node_type) in self._adapters
        except ValueError:
            return False

    def get(self, node_type: NodeType | str, node_id: str | None = None) -> BaseAdapter:
        """Get the adapter for a node type.

        Raises:
            InvalidNodeTypeError: Unknown type or no adapter registered.
        """
        try:
            return self._adapters[NodeType(node_type)]
        except (ValueError, KeyError):
            raise InvalidNodeTypeError(node_id or "<unknown>", node_type) from None

    def validate(self, node: NodeSpec) -> None:
        """Validate a node's type and config against its adapter."""
        self.get(node.type, node.id).validate_config(node.config, node_id=node.id)

    async def invoke(
        self,
        node_type: NodeType | str,
        config: Mapping[str, Any],
        payload: Any,
        context: InvocationContext,
    ) -> Any:
        adapter = self.get(node_type, context.node_id)
        return await adapter.invoke(config, payload, context)

    def list_types(self) -> list[str]:
        """List all registered node types."""
        return [t.value for t in self._adapters]


def create_default_registry(settings: Settings | None = None) -> AdapterRegistry:
    """Registry with the eight built-in adapters."""
    from flowchord.adapters.condition import ConditionAdapter
    from flowchord.adapters.delay import DelayAdapter
    from flowchord.adapters.discord import DiscordAdapter
    from flowchord.adapters.email import EmailAdapter
    from flowchord.adapters.gemini import GeminiAdapter
    from flowchord.adapters.openai import OpenAIAdapter
    from flowchord.adapters.openrouter import OpenRouterAdapter
    from flowchord.adapters.trigger import TriggerAdapter
    from flowchord.config import get_settings

    settings = settings or get_settings()
    registry = AdapterRegistry()
    registry.register(TriggerAdapter())
    registry.register(ConditionAdapter())
    registry.register(DelayAdapter())
    registry.register(EmailAdapter(settings))
    registry.register(DiscordAdapter())
    registry.register(GeminiAdapter(settings))
    registry.register(OpenAIAdapter(settings))
    registry.register(OpenRouterAdapter(settings))
    return registry


# ----------------------------------------------------------------------
# Helpers shared by the provider variants
# ----------------------------------------------------------------------


def payload_text(payload: Any) -> str:
    """Plain-text rendering of a payload."""
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    if isinstance(payload, Mapping) and isinstance(payload.get("text"), str):
        return payload["text"]
    return json.dumps(payload, ensure_ascii=False, default=str)


def render_template(template: str | None, payload: Any) -> str:
    """Resolve ``{{input}}`` and ``{{input.path}}`` placeholders.

    A missing template renders the whole payload. Placeholders that do
    not resolve are left as written.
    """
    if template is None:
        return payload_text(payload)

    def replacer(match: re.Match) -> str:
        path = match.group(1).split(".")
        if path[0] != "input":
            return match.group(0)
        value = payload
        for key in path[1:]:
            if isinstance(value, Mapping) and key in value:
                value = value[key]
            elif isinstance(value, (list, tuple)) and key.isdigit() and int(key) < len(value):
                value = value[int(key)]
            else:
                return match.group(0)
        return payload_text(value)

    return TEMPLATE_PATTERN.sub(replacer, template)


def first_config(config: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First non-empty value among ``keys``."""
    for key in keys:
        value = config.get(key)
        if value not in (None, ""):
            return value
    return default


def parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def error_for_status(
    status_code: int,
    message: str,
    *,
    provider: str,
    retry_after: float | None = None,
) -> AdapterError:
    """Map an HTTP status to the adapter error taxonomy.

    401/403 are auth failures, 408/409/429 and 5xx are transient, every
    other status is permanent.
    """
    if status_code in (401, 403):
        return AuthError(message, provider=provider, status_code=status_code)
    if status_code in (408, 409, 429) or status_code >= 500:
        return TransientError(
            message,
            provider=provider,
            status_code=status_code,
            retry_after=retry_after,
        )
    return PermanentError(message, provider=provider, status_code=status_code)
