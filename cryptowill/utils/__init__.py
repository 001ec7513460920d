"""
Cross-cutting helpers for CryptoWill: logging setup and formatters.
"""

from cryptowill.utils.logging import ConsoleFormatter, JsonFormatter, configure_logging, get_logger

__all__ = [
    "ConsoleFormatter",
    "JsonFormatter",
    "configure_logging",
    "get_logger",
]
