from __future__ import annotations

import logging
import os
import sys
from typing import Optional

import structlog

from trade_journal.utils.config import get_settings


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Route journal events to stdout and the journal log file as JSON lines.
    Level and file default to ``Settings.log_level`` / ``Settings.log_file``.
    """
    settings = get_settings()
    level = _level(log_level or settings.log_level)
    log_file = log_file or settings.log_file

    os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)

    logging.basicConfig(
        format="%(message)s",
        level=level,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, mode="a"),
        ],
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.get_logger("trade_journal").info(
        "logging_configured", level=logging.getLevelName(level), log_file=log_file,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
