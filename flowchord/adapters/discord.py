"""Discord node, posting to a channel webhook."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from flowchord.adapters.base import (
    BaseAdapter,
    InvocationContext,
    error_for_status,
    parse_retry_after,
    render_template,
)
from flowchord.core.types import NodeType
from flowchord.errors.exceptions import PermanentError, TransientError

logger = logging.getLogger(__name__)

# Discord rejects longer message content
MAX_CONTENT_LENGTH = 2000


class DiscordAdapter(BaseAdapter):
    """Posts the rendered input to ``config["webhook_url"]``.

    Optional config: ``content`` template, ``username``, ``avatar_url``.
    """

    node_type = NodeType.DISCORD
    required_config = ("webhook_url",)

    async def invoke(
        self,
        config: Mapping[str, Any],
        payload: Any,
        context: InvocationContext,
    ) -> dict[str, Any]:
        content = render_template(config.get("content") or config.get("message"), payload)
        if not content:
            raise PermanentError("Discord message content is empty", provider="discord")
        content = content[:MAX_CONTENT_LENGTH]

        body: dict[str, Any] = {"content": content}
        if config.get("username"):
            body["username"] = config["username"]
        if config.get("avatar_url"):
            body["avatar_url"] = config["avatar_url"]

        timeout = context.remaining()
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(config["webhook_url"], json=body)
                response.raise_for_status()

        except httpx.HTTPStatusError as e:
            self._handle_error(e)
        except httpx.TimeoutException as e:
            raise TransientError(
                f"Request to Discord timed out after {timeout:.1f}s",
                provider="discord",
            ) from e
        except httpx.TransportError as e:
            raise TransientError(
                f"Failed to reach Discord webhook: {type(e).__name__}",
                provider="discord",
            ) from e

        logger.info("Discord message posted for node %s", context.node_id)
        return {
            "sent": True,
            "status_code": response.status_code,
            "content": content,
        }

    def _handle_error(self, error: httpx.HTTPStatusError) -> None:
        """Handle HTTP errors from the Discord webhook.

        Raises:
            AuthError: For 401/403 errors.
            TransientError: For 429 and 5xx errors.
            PermanentError: For all other HTTP errors.
        """
        status_code = error.response.status_code
        retry_after = parse_retry_after(error.response.headers.get("retry-after"))

        if status_code == 404:
            message = "Discord webhook not found; it may have been deleted"
        else:
            message = f"Discord webhook error: {status_code} - {error.response.text[:200]}"

        raise error_for_status(
            status_code,
            message,
            provider="discord",
            retry_after=retry_after,
        ) from error
