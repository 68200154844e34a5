"""
Simple logging module for the blueprint engine.

Every component logs to console (stdout) with colored, structured output.
Runs execute concurrently, so per-run messages go through ``bind_run`` and
carry the run id.

Usage:
    from shared.logger import bind_run, get_logger

    logger = get_logger(__name__)  # Use module name
    log = bind_run(logger, run_id)

    log.info("Message here")  # -> "[run_ab12] Message here"
"""

import logging
import sys
from typing import Any, MutableMapping, Optional, Tuple

# Global cache of loggers
_loggers = {}


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output"""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record):
        # Color a copy so other handlers still see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


class RunLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the run id it belongs to."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['run_id']}] {msg}", kwargs


def _level_from_config() -> int:
    from shared.config import config

    level = logging.getLevelName(config.log_level)
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Get a logger that outputs colored, structured logs to console.

    Args:
        name: Logger name (typically __name__ or component name)
        level: Logging level (default: config.log_level)

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    level = _level_from_config() if level is None else level

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        ColoredFormatter(
            fmt='%(asctime)s | %(name)s | %(levelname)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
    )
    logger.addHandler(console_handler)

    _loggers[name] = logger
    return logger


def bind_run(logger: logging.Logger, run_id: str) -> RunLoggerAdapter:
    return RunLoggerAdapter(logger, {"run_id": run_id})


def set_level(level: int) -> None:
    """Change the level of every logger created through get_logger."""
    for logger in _loggers.values():
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
