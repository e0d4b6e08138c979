"""Shared pieces of the LLM node adapters (gemini, openai, openrouter)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

import openai

from flowchord.adapters.base import (
    BaseAdapter,
    error_for_status,
    first_config,
    parse_retry_after,
    render_template,
)
from flowchord.errors.exceptions import (
    AdapterError,
    AuthError,
    MissingConfigError,
    PermanentError,
    TransientError,
)

if TYPE_CHECKING:
    from flowchord.config import Settings


class LLMAdapter(BaseAdapter):
    """Base for prompt-in, text-out provider nodes.

    Config keys: ``api_key`` (required unless the settings carry one),
    ``model``, ``prompt`` (template, defaults to the rendered input),
    ``system``, ``temperature``, ``max_tokens``.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings

    def _settings_api_key(self) -> str:
        return ""

    def _settings_model(self) -> str:
        return ""

    def validate_config(self, config: Mapping[str, Any], node_id: str | None = None) -> None:
        if not self.api_key(config):
            raise MissingConfigError(node_id, self.node_type.value, "api_key")

    def api_key(self, config: Mapping[str, Any]) -> str:
        return first_config(config, "api_key", "apiKey") or self._settings_api_key()

    def model(self, config: Mapping[str, Any]) -> str:
        return first_config(config, "model") or self._settings_model()

    def temperature(self, config: Mapping[str, Any]) -> float:
        value = config.get("temperature")
        if value is None:
            return self._settings.llm_temperature if self._settings else 0.7
        return float(value)

    def max_tokens(self, config: Mapping[str, Any]) -> int:
        value = first_config(config, "max_tokens", "maxTokens")
        if value is None:
            return self._settings.llm_max_tokens if self._settings else 1024
        return int(value)

    def prompt(self, config: Mapping[str, Any], payload: Any) -> str:
        return render_template(first_config(config, "prompt", "content"), payload)

    def messages(self, config: Mapping[str, Any], payload: Any) -> list[dict[str, str]]:
        """Chat messages for OpenAI-style APIs.

        An explicit ``messages`` list in the config is rendered as-is (each
        ``content`` may use placeholders); otherwise an optional system
        message is followed by the prompt.
        """
        configured = config.get("messages")
        if isinstance(configured, list) and configured:
            return [
                {
                    "role": "system" if msg.get("role") == "system" else "user",
                    "content": render_template(str(msg.get("content", "")), payload),
                }
                for msg in configured
                if isinstance(msg, Mapping)
            ]

        messages = []
        if config.get("system"):
            messages.append({"role": "system", "content": render_template(config["system"], payload)})
        messages.append({"role": "user", "content": self.prompt(config, payload)})
        return messages

    def result(self, text: str, model: str, usage: Mapping[str, int] | None = None) -> dict[str, Any]:
        usage = dict(usage or {})
        usage.setdefault("prompt_tokens", 0)
        usage.setdefault("completion_tokens", 0)
        usage.setdefault("total_tokens", usage["prompt_tokens"] + usage["completion_tokens"])
        return {
            "text": text,
            "model": model,
            "usage": usage,
            "provider": self.provider_name,
        }


def map_openai_error(error: Exception, provider: str) -> AdapterError:
    """Convert ``openai`` SDK errors to adapter errors."""
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AuthError(str(error), provider=provider, status_code=error.status_code)
    if isinstance(error, openai.APITimeoutError):
        return TransientError(f"Request to {provider} timed out", provider=provider)
    if isinstance(error, openai.APIConnectionError):
        return TransientError(f"Failed to connect to {provider}: {error}", provider=provider)
    if isinstance(error, openai.APIStatusError):
        return error_for_status(
            error.status_code,
            f"{provider} API error: {error.status_code} - {error.message}",
            provider=provider,
            retry_after=parse_retry_after(error.response.headers.get("retry-after")),
        )
    if isinstance(error, openai.APIError):
        return PermanentError(str(error), provider=provider)
    return PermanentError(f"{type(error).__name__}: {error}", provider=provider)
