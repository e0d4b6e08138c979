"""OpenAI node, using the Responses API of the official SDK."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import openai
from openai import AsyncOpenAI

from flowchord.adapters.base import InvocationContext
from flowchord.adapters.llm import LLMAdapter, map_openai_error
from flowchord.core.types import NodeType

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


class OpenAIAdapter(LLMAdapter):
    """OpenAI provider node.

    Example:
        >>> adapter = OpenAIAdapter()
        >>> await adapter.invoke({"api_key": "sk-...", "model": "gpt-4o-mini"}, "Hello!", ctx)
    """

    node_type = NodeType.OPENAI

    def _settings_api_key(self) -> str:
        return self._settings.openai_api_key if self._settings else ""

    def _settings_model(self) -> str:
        return self._settings.default_openai_model if self._settings else DEFAULT_MODEL

    def _base_url(self, config: Mapping[str, Any]) -> str | None:
        url = config.get("base_url") or (self._settings.openai_base_url if self._settings else "")
        return url or None

    async def invoke(
        self,
        config: Mapping[str, Any],
        payload: Any,
        context: InvocationContext,
    ) -> dict[str, Any]:
        model = self.model(config)
        request: dict[str, Any] = {
            "model": model,
            "input": self.prompt(config, payload),
            "temperature": self.temperature(config),
            "max_output_tokens": self.max_tokens(config),
        }
        if config.get("system"):
            request["instructions"] = config["system"]

        try:
            async with AsyncOpenAI(
                api_key=self.api_key(config),
                base_url=self._base_url(config),
                timeout=context.remaining(),
                max_retries=0,
            ) as client:
                response = await client.responses.create(**request)
        except openai.OpenAIError as e:
            raise map_openai_error(e, "openai") from e

        usage = getattr(response, "usage", None)
        logger.debug("OpenAI node %s completed with model %s", context.node_id, model)
        return self.result(
            response.output_text or "",
            getattr(response, "model", None) or model,
            {
                "prompt_tokens": getattr(usage, "input_tokens", 0) or 0,
                "completion_tokens": getattr(usage, "output_tokens", 0) or 0,
            },
        )
