"""Logging setup for FlowChord.

Modules log through ``logging.getLogger(__name__)``; this package only
configures handlers and formatters.
"""

from flowchord.logging.config import (
    LOG_FORMATS,
    JsonFormatter,
    build_logging_config,
    setup_logging,
)

__all__ = [
    "LOG_FORMATS",
    "JsonFormatter",
    "build_logging_config",
    "setup_logging",
]
