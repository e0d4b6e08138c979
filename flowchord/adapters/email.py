"""Email node, sent over SMTP with aiosmtplib."""

from __future__ import annotations

from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import logging
from typing import TYPE_CHECKING, Any, Mapping

import aiosmtplib

from flowchord.adapters.base import (
    BaseAdapter,
    InvocationContext,
    first_config,
    render_template,
)
from flowchord.core.types import NodeType
from flowchord.errors.exceptions import (
    AuthError,
    MissingConfigError,
    PermanentError,
    TransientError,
)

if TYPE_CHECKING:
    from flowchord.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Workflow notification"


class EmailAdapter(BaseAdapter):
    """Sends the rendered input as an email.

    Config keys: ``to`` (required, address or list), ``subject``, ``body``
    and ``html`` (``body`` and ``subject`` accept ``{{input...}}``
    placeholders), ``from_address``, ``smtp_host``, ``smtp_port``,
    ``username``, ``password``, ``use_tls``. SMTP values missing from the
    node fall back to the engine settings.
    """

    node_type = NodeType.EMAIL
    required_config = ("to",)

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings

    def validate_config(self, config: Mapping[str, Any], node_id: str | None = None) -> None:
        super().validate_config(config, node_id)
        if not self._smtp_options(config)["hostname"]:
            raise MissingConfigError(node_id, self.node_type.value, "smtp_host")

    async def invoke(
        self,
        config: Mapping[str, Any],
        payload: Any,
        context: InvocationContext,
    ) -> dict[str, Any]:
        recipients = self._recipients(config.get("to"))
        subject = render_template(config.get("subject") or DEFAULT_SUBJECT, payload)
        body = render_template(config.get("body"), payload)
        options = self._smtp_options(config)
        sender = first_config(config, "from_address", "from") or (
            self._settings.smtp_from if self._settings else ""
        ) or options["username"]

        if config.get("html"):
            msg = MIMEMultipart("alternative")
            msg.attach(MIMEText(body, "plain"))
            msg.attach(MIMEText(body, "html"))
        else:
            msg = MIMEText(body, "plain")
        msg["Subject"] = subject
        msg["To"] = ", ".join(recipients)
        if sender:
            msg["From"] = sender

        port = options["port"]
        use_tls = config.get("use_tls")
        try:
            await aiosmtplib.send(
                msg,
                hostname=options["hostname"],
                port=port,
                username=options["username"] or None,
                password=options["password"] or None,
                use_tls=bool(use_tls) if use_tls is not None else port == 465,
                start_tls=port == 587 if use_tls is None else None,
                timeout=context.remaining(),
            )
        except aiosmtplib.SMTPAuthenticationError as e:
            raise AuthError(f"SMTP authentication failed: {e.message}", provider="email", status_code=e.code) from e
        except (aiosmtplib.SMTPRecipientsRefused, aiosmtplib.SMTPSenderRefused) as e:
            raise PermanentError(f"SMTP refused the message: {e}", provider="email") from e
        except (
            aiosmtplib.SMTPConnectError,
            aiosmtplib.SMTPServerDisconnected,
            aiosmtplib.SMTPTimeoutError,
        ) as e:
            raise TransientError(f"SMTP connection failed: {e}", provider="email") from e
        except aiosmtplib.SMTPResponseException as e:
            if 400 <= e.code < 500:
                raise TransientError(f"SMTP error {e.code}: {e.message}", provider="email", status_code=e.code) from e
            raise PermanentError(f"SMTP error {e.code}: {e.message}", provider="email", status_code=e.code) from e
        except aiosmtplib.SMTPException as e:
            raise PermanentError(f"SMTP error: {e}", provider="email") from e

        logger.info("Email sent for node %s to %d recipient(s)", context.node_id, len(recipients))
        return {
            "sent": True,
            "recipients": recipients,
            "subject": subject,
        }

    def _smtp_options(self, config: Mapping[str, Any]) -> dict[str, Any]:
        s = self._settings
        return {
            "hostname": first_config(config, "smtp_host", "host") or (s.smtp_host if s else ""),
            "port": int(first_config(config, "smtp_port", "port") or (s.smtp_port if s else 587)),
            "username": first_config(config, "username", "smtp_username") or (s.smtp_username if s else ""),
            "password": first_config(config, "password", "smtp_password") or (s.smtp_password if s else ""),
        }

    @staticmethod
    def _recipients(value: Any) -> list[str]:
        if isinstance(value, str):
            return [addr.strip() for addr in value.split(",") if addr.strip()]
        return [str(addr).strip() for addr in value or [] if str(addr).strip()]
