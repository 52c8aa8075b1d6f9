"""Logging bootstrap shared by the CLI entry points."""
from __future__ import annotations

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: Optional[int] = None) -> logging.Logger:
    """Attach one stderr handler to the package logger (idempotent)."""
    pkg_logger = logging.getLogger("kousei")
    if not pkg_logger.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter(LOG_FORMAT))
        pkg_logger.addHandler(h)
    if level is not None:
        pkg_logger.setLevel(level)
    return pkg_logger
