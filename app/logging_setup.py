"""Central logging configuration for the application.

One stdout handler on the root logger; module loggers propagate to it.
``LOG_LEVEL`` sets the level for application loggers (default INFO).
Uvicorn keeps its own loggers on the same handler and a reload never
installs a second one.
"""
from __future__ import annotations
import logging
import os
from logging.config import dictConfig

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _build_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {"level": "WARNING", "handlers": ["console"]},
        "loggers": {
            "app": {"level": level, "propagate": True},
            "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.error": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "sqlalchemy.engine": {"level": "WARNING", "propagate": True},
        },
    }


def configure_logging() -> None:
    """Configure application-wide logging once.

    If the root logger already has handlers, return to prevent duplicate output
    (important under reloaders and pytest's capture handlers).
    """
    root = logging.getLogger()
    if root.handlers:
        return
    level = os.environ.get("LOG_LEVEL", "INFO").strip().upper()
    dictConfig(_build_config(level if level in _LEVELS else "INFO"))


__all__ = ["configure_logging"]
