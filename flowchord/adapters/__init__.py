"""Provider adapters: one implementation per node type."""

from flowchord.adapters.base import (
    AdapterRegistry,
    BaseAdapter,
    InvocationContext,
    create_default_registry,
    render_template,
)
from flowchord.adapters.condition import ConditionAdapter
from flowchord.adapters.delay import DelayAdapter
from flowchord.adapters.discord import DiscordAdapter
from flowchord.adapters.email import EmailAdapter
from flowchord.adapters.gemini import GeminiAdapter
from flowchord.adapters.llm import LLMAdapter
from flowchord.adapters.openai import OpenAIAdapter
from flowchord.adapters.openrouter import OpenRouterAdapter
from flowchord.adapters.trigger import TriggerAdapter

__all__ = [
    # Contract
    "BaseAdapter",
    "InvocationContext",
    "AdapterRegistry",
    "create_default_registry",
    "render_template",
    "LLMAdapter",
    # Built-ins
    "TriggerAdapter",
    "ConditionAdapter",
    "DelayAdapter",
    "EmailAdapter",
    "DiscordAdapter",
    "GeminiAdapter",
    "OpenAIAdapter",
    "OpenRouterAdapter",
]
