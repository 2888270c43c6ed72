#!/usr/bin/env python3
# logging_config.py – rev-l2  (2026-10-19)
"""
Logging setup and the error taxonomy shared by every module.

• get_logger("controller") → logger named ``weaver.controller``
• setup_logging() is called once by the entry point; library code only logs
• I/O failures are plain ``OSError`` and are never wrapped
"""

from __future__ import annotations
import logging, sys
from pathlib import Path
from typing  import Callable, Optional

ROOT_LOGGER = "weaver"

# ────────────────────────────────────────────────────────────
# 1. formatting
# ────────────────────────────────────────────────────────────
class ColoredFormatter(logging.Formatter):
    """ANSI-colored level names for terminal output."""

    COLORS = {
        "DEBUG":    "\033[36m",
        "INFO":     "\033[32m",
        "WARNING":  "\033[33m",
        "ERROR":    "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        saved = record.levelname
        record.levelname = f"{color}{saved}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = saved


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """Configure the ``weaver`` logger tree.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: optional file that receives everything down to DEBUG
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if log_file else getattr(logging, level.upper()))
    logger.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(getattr(logging, level.upper()))
    fmt = ColoredFormatter if sys.stderr.isatty() else logging.Formatter
    console.setFormatter(fmt("%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                             datefmt="%H:%M:%S"))
    logger.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"))
        logger.addHandler(fh)
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")

# ────────────────────────────────────────────────────────────
# 2. errors
# ────────────────────────────────────────────────────────────
class WeaverError(Exception):
    """Base exception for the playlist engine."""


class ValidationError(WeaverError, ValueError):
    """Malformed argument: empty title, out-of-range option, …"""


class CollisionError(ValidationError):
    """A title (and therefore its slug) is already taken."""


class NotFoundError(WeaverError, LookupError):
    """Target playlist, index entry or track does not exist."""


class ParseError(WeaverError, ValueError):
    """On-disk JSON could not be decoded."""

# ────────────────────────────────────────────────────────────
# 3. completion helper
# ────────────────────────────────────────────────────────────
Done = Optional[Callable[..., None]]

def finish(on_done: Done, err: Optional[BaseException], *extra,
           logger: Optional[logging.Logger] = None) -> None:
    """Hand *err* to the caller's callback, or log it when there is none."""
    if on_done is not None:
        on_done(err, *extra)
    elif err is not None:
        (logger or logging.getLogger(ROOT_LOGGER)).error("%s", err)
