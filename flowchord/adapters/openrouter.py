"""OpenRouter node.

OpenRouter speaks the OpenAI chat completions protocol, so the official
SDK is pointed at its base URL.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import openai
from openai import AsyncOpenAI

from flowchord.adapters.base import InvocationContext
from flowchord.adapters.llm import LLMAdapter, map_openai_error
from flowchord.core.types import NodeType
from flowchord.errors.exceptions import PermanentError

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-4o-mini"


class OpenRouterAdapter(LLMAdapter):
    """OpenRouter provider node. ``messages`` may replace ``prompt``/``system``."""

    node_type = NodeType.OPENROUTER

    def _settings_api_key(self) -> str:
        return self._settings.openrouter_api_key if self._settings else ""

    def _settings_model(self) -> str:
        return self._settings.default_openrouter_model if self._settings else DEFAULT_MODEL

    def _base_url(self) -> str:
        return (self._settings.openrouter_base_url if self._settings else "") or OPENROUTER_BASE_URL

    async def invoke(
        self,
        config: Mapping[str, Any],
        payload: Any,
        context: InvocationContext,
    ) -> dict[str, Any]:
        model = self.model(config)

        try:
            async with AsyncOpenAI(
                api_key=self.api_key(config),
                base_url=self._base_url(),
                timeout=context.remaining(),
                max_retries=0,
            ) as client:
                response = await client.chat.completions.create(
                    model=model,
                    messages=self.messages(config, payload),
                    temperature=self.temperature(config),
                    max_tokens=self.max_tokens(config),
                )
        except openai.OpenAIError as e:
            raise map_openai_error(e, "openrouter") from e

        if not response.choices:
            raise PermanentError("OpenRouter returned no choices", provider="openrouter")

        usage = response.usage
        logger.debug("OpenRouter node %s completed with model %s", context.node_id, model)
        return self.result(
            response.choices[0].message.content or "",
            response.model or model,
            {
                "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
                "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
            },
        )
