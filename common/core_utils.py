#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Logging helpers shared by the feed loader commands.

- ``SymbolFormatter`` puts a level symbol (from the configured symbol map)
  into every record.
- ``setup_logging`` installs console and/or file handlers on the root logger.
- ``resolve_log_level`` turns a command-line level name into its constant.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from config.config_models import SYMBOLS_DEFAULT

module_logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(symbol)s %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVEL_SYMBOL_KEYS: Dict[int, str] = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "critical",
}


class SymbolFormatter(logging.Formatter):
    """
    Formatter exposing ``%(symbol)s``, looked up by the record's level in
    ``symbols`` (``SYMBOLS_DEFAULT`` when not given).
    """

    def __init__(
        self, fmt=None, datefmt=None, style="%", validate=True, symbols=None
    ):
        super().__init__(fmt, datefmt, style, validate)
        self.symbols = symbols or SYMBOLS_DEFAULT

    def format(self, record):
        symbol_key = _LEVEL_SYMBOL_KEYS.get(record.levelno)
        record.symbol = self.symbols.get(symbol_key, "") if symbol_key else ""
        return super().format(record)


def resolve_log_level(log_level_str: str) -> int:
    """Map a level name such as 'debug' to its logging constant, INFO if unknown."""
    log_level_val = getattr(logging, str(log_level_str).upper(), None)
    if not isinstance(log_level_val, int):
        print(
            f"Warning: Invalid log level '{log_level_str}'. Defaulting to INFO.",
            file=sys.stderr,
        )
        return logging.INFO
    return log_level_val


def _format_with_prefix(log_prefix: Optional[str]) -> str:
    prefix = log_prefix.strip() if log_prefix else ""
    return f"{prefix} {LOG_FORMAT}" if prefix else LOG_FORMAT


def _build_handlers(log_file: Optional[str], log_to_console: bool) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if log_file:
        log_path = Path(log_file)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path, mode="a"))
        except OSError as e:
            print(
                f"Warning: Cannot log to {log_path}: {e}. Continuing without a log file.",
                file=sys.stderr,
            )
    if log_to_console:
        handlers.append(logging.StreamHandler(sys.stdout))
    return handlers


def setup_logging(
    log_level: int = logging.INFO,
    log_file: Optional[str] = None,
    log_to_console: bool = True,
    log_prefix: Optional[str] = None,
    symbols: Optional[Dict[str, str]] = None,
) -> None:
    """
    Configures root logging for a command-line run.

    Parameters:
    log_level: int
        Root logger level. Defaults to logging.INFO.
    log_file: Optional[str]
        Append log lines to this file as well. Parent directories are
        created; if the file cannot be opened a warning goes to stderr and
        logging carries on without it.
    log_to_console: bool
        Log to stdout. When neither console nor file logging is available,
        stdout is used anyway at INFO or lower.
    log_prefix: Optional[str]
        Text put in front of every line, e.g. ``[GTFS-FEEDS]``.
    symbols: Optional[Dict[str, str]]
        Level symbols for the formatter.
    """
    handlers = _build_handlers(log_file, log_to_console)
    if not handlers:  # pragma: no cover
        handlers.append(logging.StreamHandler(sys.stdout))
        log_level = min(log_level, logging.INFO)

    line_format = _format_with_prefix(log_prefix)
    formatter = SymbolFormatter(fmt=line_format, datefmt=LOG_DATE_FORMAT, symbols=symbols)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    module_logger.debug(
        f"Logging to {len(handlers)} handler(s) at {logging.getLevelName(log_level)}"
    )
