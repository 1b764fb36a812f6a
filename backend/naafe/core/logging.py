"""Logging setup for the API process."""

import logging

from naafe.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure the root logger once for the process.

    Args:
        level: Log level name; defaults to settings.LOG_LEVEL
    """
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    if not any(getattr(h, "_naafe", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._naafe = True
        root.addHandler(handler)

    if not settings.SQL_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
