"""
Logging utilities for the FastAPI application and the renewal job.

Provides a consistent logging format and configuration.
"""

import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    # httpx logs every request URL at INFO, including token endpoint calls.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def mask_phone(number: str | None) -> str:
    """Keep only the last four digits of a phone number for log lines."""
    if not number:
        return "<unknown>"
    digits = number.strip()
    if len(digits) <= 4:
        return "***"
    return f"***{digits[-4:]}"


__all__ = ["configure_logging", "mask_phone"]
