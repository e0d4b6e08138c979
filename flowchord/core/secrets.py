"""Secret redaction for logs, events and persisted execution records.

Node configs carry provider credentials as opaque values. Anything that
leaves the engine (log lines, run events, NodeExecution input/output/error)
passes through ``redact_secrets`` first.
"""
import re
from typing import Any

REDACTED = "[REDACTED]"

# Config keys whose values are never written out
SECRET_KEYS = frozenset({
    "api_key",
    "apikey",
    "password",
    "secret",
    "token",
    "access_token",
    "authorization",
    "smtp_password",
    "webhook_url",
})

SECRET_PATTERNS = [
    (r'\bsk-[A-Za-z0-9_\-]{16,}', REDACTED),
    (r'\bAIza[0-9A-Za-z_\-]{20,}', REDACTED),
    (r'Bearer\s+[A-Za-z0-9._\-]+', 'Bearer ' + REDACTED),
    (r'https://(?:discord|discordapp)\.com/api/webhooks/\S+', 'https://discord.com/api/webhooks/' + REDACTED),
    (r'password["\']?\s*[:=]\s*["\']?[^"\'\s]+', 'password=' + REDACTED),
    (r'api[_-]?key["\']?\s*[:=]\s*["\']?[^"\'\s&]+', 'api_key=' + REDACTED),
    (r'secret["\']?\s*[:=]\s*["\']?[^"\'\s]+', 'secret=' + REDACTED),
]

_COMPILED = [(re.compile(p, re.IGNORECASE), r) for p, r in SECRET_PATTERNS]


def is_secret_key(key: Any) -> bool:
    """Whether a mapping key names a credential."""
    if not isinstance(key, str):
        return False
    normalized = key.lower().replace("-", "_")
    return normalized in SECRET_KEYS or normalized.endswith(("_api_key", "_token", "_secret"))


def redact_secrets(data: Any) -> Any:
    """Return a copy of data with credentials masked.

    Args:
        data: Data to redact (str, dict, list, tuple, or other).

    Returns:
        Redacted copy. Values under secret keys are replaced entirely,
        strings are scanned for known credential shapes.
    """
    if isinstance(data, str):
        return _redact_string(data)
    elif isinstance(data, dict):
        return {
            k: (REDACTED if is_secret_key(k) and v not in (None, "") else redact_secrets(v))
            for k, v in data.items()
        }
    elif isinstance(data, list):
        return [redact_secrets(item) for item in data]
    elif isinstance(data, tuple):
        return tuple(redact_secrets(item) for item in data)
    return data


def _redact_string(text: str) -> str:
    for pattern, replacement in _COMPILED:
        text = pattern.sub(replacement, text)
    return text
