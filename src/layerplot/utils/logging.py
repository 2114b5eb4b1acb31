"""
Logging helpers for layerplot.

Modules inside the package only ask for a logger::

    from layerplot.utils.logging import get_logger
    logger = get_logger(__name__)

Handlers are the application's business. The package logger carries a
NullHandler (see ``layerplot/__init__.py``), so an embedding application that
configured logging receives every ``layerplot.*`` record through its own
handlers. Scripts, ``examples/`` and the viewer app call
:func:`configure_logging` to get console output::

    from layerplot.utils.logging import configure_logging
    configure_logging("DEBUG")

Nothing here writes log files or touches the root logger.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

DEFAULT_FMT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d:%(funcName)s: %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# level used when configure_logging() gets no explicit level
LOG_LEVEL_ENV = "LAYERPLOT_LOG_LEVEL"
ROOT_LOGGER_NAME = "layerplot"


def _resolve_level(level: Optional[Union[str, int]]) -> int:
    """Level name or number -> number; unknown names fall back to INFO."""
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).strip().upper(), logging.INFO)


def _console_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if isinstance(h, logging.StreamHandler) and h.stream is sys.stderr]


def configure_logging(
    level: Optional[Union[str, int]] = None,
    *,
    fmt: Optional[str] = None,
    datefmt: Optional[str] = None,
    force: bool = False,
) -> None:
    """
    Send ``layerplot`` log records to stderr.

    Parameters
    ----------
    level:
        Level name or number. Defaults to ``$LAYERPLOT_LOG_LEVEL``, else INFO.
    fmt, datefmt:
        Formatter settings; default to DEFAULT_FMT and DEFAULT_DATEFMT.
    force:
        Drop every handler already on the ``layerplot`` logger first. Without
        it, a second call only updates the level of the existing console
        handler.
    """
    numeric = _resolve_level(level)
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(numeric)

    if force:
        for h in logger.handlers[:]:
            h.close()
            logger.removeHandler(h)

    existing = _console_handlers(logger)
    if existing:
        for h in existing:
            h.setLevel(numeric)
        return

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric)
    console.setFormatter(logging.Formatter(fmt=fmt or DEFAULT_FMT, datefmt=datefmt or DEFAULT_DATEFMT))
    logger.addHandler(console)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger ``name``, or the package logger when omitted."""
    return logging.getLogger(name or ROOT_LOGGER_NAME)
