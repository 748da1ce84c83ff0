"""Logging configuration shared by the ``hledger_assist`` package.

Public helpers:

- ``configure_logging(...)``: attach one ``StreamHandler`` to the package
  logger (``"hledger_assist"``). Entry points (the CLI, the interactive
  prompt) call it once at startup; repeated calls are no-ops.
- ``get_logger(name)``: return a module logger. Until logging is configured
  the package logger carries a ``NullHandler`` so embedding editors do not see
  "no handler" noise.
- ``reset_logging()``: drop the handler installed by ``configure_logging`` so
  a later call can configure again (used by tests).

Parser and matcher modules only call ``get_logger("hledger_assist.<module>")``
and never install handlers themselves.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "hledger_assist"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False
_HANDLER: logging.Handler | None = None


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        name = level.strip().upper()
        if name.isdigit():
            return int(name)
        numeric = getattr(logging, name, None)
        if isinstance(numeric, int):
            return numeric
        return logging.INFO
    env_val = os.getenv("HLEDGER_ASSIST_LOG_LEVEL")
    if env_val:
        return _parse_level(env_val)
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure the package logger once per process.

    Parameters
    ----------
    level:
        ``int`` level or level name. ``None`` reads
        ``HLEDGER_ASSIST_LOG_LEVEL`` and falls back to ``logging.INFO``.
    fmt:
        Format string; defaults to ``HLEDGER_ASSIST_LOG_FORMAT`` when set,
        otherwise ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        Destination of the single ``StreamHandler`` (``sys.stderr``).
    """

    global _CONFIGURED, _HANDLER
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(
        logging.Formatter(fmt or os.getenv("HLEDGER_ASSIST_LOG_FORMAT") or _DEFAULT_FORMAT)
    )

    logger.setLevel(resolved)
    logger.addHandler(handler)
    # The editor host may configure the root logger; keep our records out of it.
    logger.propagate = False

    _HANDLER = handler
    _CONFIGURED = True


def reset_logging() -> None:
    """Undo ``configure_logging`` so the next call installs a fresh handler."""

    global _CONFIGURED, _HANDLER
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _HANDLER is not None:
        logger.removeHandler(_HANDLER)
        _HANDLER = None
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    _CONFIGURED = False


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)``, keeping library use silent by default."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "reset_logging"]
