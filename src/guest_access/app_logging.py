"""Logging configuration and redaction helpers."""

import logging

LOGGER_NAME = "guest_access"


def configure_logging(level: int = logging.INFO) -> None:
    """Attach one stream handler to the package logger."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False


def mask_mobile(mobile: str | None) -> str:
    """Keep only the last four digits of a mobile number."""
    if not mobile:
        return "-"
    return f"***{mobile[-4:]}"


def mask_token(value: str | None, visible: int = 8) -> str:
    """Shorten a token or hash for log output."""
    if not value:
        return "-"
    return f"{value[:visible]}..."
