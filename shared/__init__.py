"""Shared utilities (configuration, logging, database) for the blueprint engine"""

from .config import config, EngineConfig
from .logger import bind_run, get_logger, set_level

__all__ = [
    "config",
    "EngineConfig",
    "bind_run",
    "get_logger",
    "set_level",
]
