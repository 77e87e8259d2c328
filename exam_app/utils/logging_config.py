"""Logging configuration helpers for the exam session server."""

from __future__ import annotations

import logging
from logging import Logger
import os


def configure_logging(level: str | None = None) -> Logger:
    """Configure basic logging for the application and return its logger.

    The level defaults to ``EXAM_APP_LOG_LEVEL`` (``INFO`` when unset).
    """
    level_name = (level or os.environ.get("EXAM_APP_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return logging.getLogger("exam_app")
