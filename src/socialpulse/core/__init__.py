"""Core utilities: logging, exceptions, constants."""

from socialpulse.core.exceptions import SocialPulseError
from socialpulse.core.logging import get_logger, setup_logging, symbol_context

__all__ = [
    "SocialPulseError",
    "get_logger",
    "setup_logging",
    "symbol_context",
]
