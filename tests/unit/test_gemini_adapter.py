"""Unit tests for the Gemini node adapter."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from flowchord.adapters.base import InvocationContext
from flowchord.adapters.gemini import GEMINI_BASE_URL, GeminiAdapter
from flowchord.config import Settings
from flowchord.errors.exceptions import (
    AuthError,
    MissingConfigError,
    PermanentError,
    TransientError,
)

URL = f"{GEMINI_BASE_URL}/chat/completions"
CONFIG = {"api_key": "test-gemini-key", "prompt": "Summarize: {{input}}"}


@pytest.fixture
def context() -> InvocationContext:
    return InvocationContext(workflow_id="wf-1", execution_id="ex-1", node_id="g1")


@pytest.fixture
def adapter(settings) -> GeminiAdapter:
    return GeminiAdapter(settings)


def _mock_client(response=None, side_effect=None) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.__aenter__.return_value = mock_client
    mock_client.__aexit__.return_value = False
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = response
    return mock_client


def _status_error(status: int, text: str = "", headers: dict | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", URL)
    response = httpx.Response(status, text=text, headers=headers, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


def _error_response(status: int, text: str = "", headers: dict | None = None) -> MagicMock:
    response = MagicMock()
    response.raise_for_status.side_effect = _status_error(status, text, headers)
    return response


class TestGeminiAdapter:
    """Tests for GeminiAdapter."""

    def test_requires_api_key(self, adapter) -> None:
        with pytest.raises(MissingConfigError) as exc_info:
            adapter.validate_config({"prompt": "hi"}, node_id="g1")

        assert exc_info.value.key == "api_key"

    def test_api_key_from_settings(self) -> None:
        adapter = GeminiAdapter(Settings(gemini_api_key="from-env"))

        adapter.validate_config({}, node_id="g1")

    @pytest.mark.asyncio
    async def test_invoke_success(self, adapter, context) -> None:
        response = MagicMock()
        response.json.return_value = {
            "model": "gemini-2.0-flash",
            "choices": [{"message": {"content": "A short summary"}}],
            "usage": {"prompt_tokens": 12, "completion_tokens": 4},
        }
        mock_client = _mock_client(response)

        with patch("flowchord.adapters.gemini.httpx.AsyncClient", return_value=mock_client):
            result = await adapter.invoke(CONFIG, "long text", context)

        assert result == {
            "text": "A short summary",
            "model": "gemini-2.0-flash",
            "usage": {"prompt_tokens": 12, "completion_tokens": 4, "total_tokens": 16},
            "provider": "gemini",
        }
        args, kwargs = mock_client.post.call_args
        assert args[0] == URL
        assert kwargs["headers"]["Authorization"] == "Bearer test-gemini-key"
        assert kwargs["json"]["messages"] == [{"role": "user", "content": "Summarize: long text"}]
        assert kwargs["json"]["model"] == "gemini-2.0-flash"

    @pytest.mark.asyncio
    async def test_system_message(self, adapter, context) -> None:
        response = MagicMock()
        response.json.return_value = {"choices": [{"message": {"content": "ok"}}]}
        mock_client = _mock_client(response)

        with patch("flowchord.adapters.gemini.httpx.AsyncClient", return_value=mock_client):
            await adapter.invoke({**CONFIG, "system": "Be brief"}, "x", context)

        messages = mock_client.post.call_args.kwargs["json"]["messages"]
        assert messages[0] == {"role": "system", "content": "Be brief"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_error(self, status, adapter, context) -> None:
        mock_client = _mock_client(_error_response(status, "denied"))

        with patch("flowchord.adapters.gemini.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(AuthError, match="aistudio"):
                await adapter.invoke(CONFIG, "x", context)

    @pytest.mark.asyncio
    async def test_rate_limit_is_transient(self, adapter, context) -> None:
        mock_client = _mock_client(_error_response(429, "slow down", {"retry-after": "2"}))

        with patch("flowchord.adapters.gemini.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(TransientError) as exc_info:
                await adapter.invoke(CONFIG, "x", context)

        assert exc_info.value.retry_after == 2.0
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_bad_request_is_permanent(self, adapter, context) -> None:
        mock_client = _mock_client(_error_response(400, "bad model"))

        with patch("flowchord.adapters.gemini.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(PermanentError, match="bad model"):
                await adapter.invoke(CONFIG, "x", context)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        httpx.ReadTimeout("read timed out"),
        httpx.ConnectError("connection refused"),
    ])
    async def test_network_errors_are_transient(self, error, adapter, context) -> None:
        mock_client = _mock_client(side_effect=error)

        with patch("flowchord.adapters.gemini.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(TransientError):
                await adapter.invoke(CONFIG, "x", context)

    @pytest.mark.asyncio
    async def test_unexpected_shape_is_permanent(self, adapter, context) -> None:
        response = MagicMock()
        response.json.return_value = {"choices": []}
        mock_client = _mock_client(response)

        with patch("flowchord.adapters.gemini.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(PermanentError, match="response shape"):
                await adapter.invoke(CONFIG, "x", context)
