"""Logging setup shared by the server and the command line."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

_NOISY_LOGGERS = ("urllib3", "httpx", "httpcore")


def setup_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach one stream handler to the package logger; repeated calls only adjust the level."""

    root = logging.getLogger("codegenie")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    if not any(getattr(handler, "_codegenie", False) for handler in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._codegenie = True
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root
