"""Google Gemini node.

Uses httpx against Gemini's OpenAI-compatible REST API.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

import httpx

from flowchord.adapters.base import InvocationContext, error_for_status, parse_retry_after
from flowchord.adapters.llm import LLMAdapter
from flowchord.core.types import NodeType
from flowchord.errors.exceptions import PermanentError, TransientError

if TYPE_CHECKING:
    from flowchord.config import Settings

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai"
DEFAULT_MODEL = "gemini-2.0-flash"


class GeminiAdapter(LLMAdapter):
    """Google Gemini provider node.

    Example:
        >>> adapter = GeminiAdapter()
        >>> await adapter.invoke({"api_key": "...", "prompt": "Summarize {{input}}"}, "text", ctx)
    """

    node_type = NodeType.GEMINI

    def __init__(self, settings: Settings | None = None, base_url: str = GEMINI_BASE_URL) -> None:
        super().__init__(settings)
        self._base_url = base_url.rstrip("/")

    def _settings_api_key(self) -> str:
        return self._settings.gemini_api_key if self._settings else ""

    def _settings_model(self) -> str:
        return self._settings.default_gemini_model if self._settings else DEFAULT_MODEL

    async def invoke(
        self,
        config: Mapping[str, Any],
        payload: Any,
        context: InvocationContext,
    ) -> dict[str, Any]:
        url = f"{self._base_url}/chat/completions"
        model = self.model(config)

        body: dict[str, Any] = {
            "model": model,
            "messages": self.messages(config, payload),
            "temperature": self.temperature(config),
            "max_completion_tokens": self.max_tokens(config),
        }
        headers = {
            "Authorization": f"Bearer {self.api_key(config)}",
            "Content-Type": "application/json",
        }

        timeout = context.remaining()
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(url, json=body, headers=headers)
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            self._handle_error(e)
        except httpx.TimeoutException as e:
            raise TransientError(
                f"Request to Gemini timed out after {timeout:.1f}s",
                provider="gemini",
            ) from e
        except httpx.TransportError as e:
            raise TransientError(
                f"Failed to connect to Gemini API at {self._base_url}: {e}",
                provider="gemini",
            ) from e

        try:
            choice = data["choices"][0]
            text = choice["message"].get("content") or ""
        except (KeyError, IndexError, TypeError) as e:
            raise PermanentError("Unexpected Gemini response shape", provider="gemini") from e

        usage_data = data.get("usage") or {}
        logger.debug("Gemini node %s completed with model %s", context.node_id, model)
        return self.result(
            text,
            data.get("model", model),
            {
                "prompt_tokens": usage_data.get("prompt_tokens", 0),
                "completion_tokens": usage_data.get("completion_tokens", 0),
            },
        )

    def _handle_error(self, error: httpx.HTTPStatusError) -> None:
        """Handle HTTP errors from Gemini API.

        Raises:
            AuthError: For 401/403 errors.
            TransientError: For 429 and 5xx errors.
            PermanentError: For all other HTTP errors.
        """
        status_code = error.response.status_code

        if status_code in (401, 403):
            message = "Invalid or missing API key. Get a key at https://aistudio.google.com/app/apikey"
        else:
            message = f"Gemini API error: {status_code} - {error.response.text[:500]}"

        raise error_for_status(
            status_code,
            message,
            provider="gemini",
            retry_after=parse_retry_after(error.response.headers.get("retry-after")),
        ) from error
