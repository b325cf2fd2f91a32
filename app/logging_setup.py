"""Logging configuration helpers for the Bookstore service."""

from __future__ import annotations

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _resolve_level(level_name: str) -> int:
    return getattr(logging, level_name.upper(), logging.INFO)


def configure_logging(level_name: Optional[str] = None) -> None:
    """Configure root logging using LOG_LEVEL and a concise format."""
    if level_name is None:
        from app.config import get_settings

        level_name = get_settings().LOG_LEVEL

    level = _resolve_level(level_name)
    formatter = logging.Formatter(LOG_FORMAT)
    root_logger = logging.getLogger()

    if root_logger.handlers:
        root_logger.setLevel(level)
        for handler in root_logger.handlers:
            handler.setLevel(level)
            handler.setFormatter(formatter)
        return

    logging.basicConfig(level=level)
    for handler in logging.getLogger().handlers:
        handler.setFormatter(formatter)
