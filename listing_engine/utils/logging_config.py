from __future__ import annotations
from os import getenv
from typing import Optional
import logging.config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging once at startup. Level defaults to $LOG_LEVEL or INFO."""
    level = (level or getenv("LOG_LEVEL") or "INFO").upper()
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "default"},
        },
        "loggers": {
            "listing_engine": {"handlers": ["console"], "level": level, "propagate": False},
            # SDK request logging
            "openai": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
        },
    })
