"""
Central logging configuration for weeksync.

Installs a colorized console handler and sets package logger levels, with
environment overrides for troubleshooting.
"""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

_TRUTHY = ("1", "true", "yes", "on")
_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR")

PACKAGE_LOGGERS = [
    "weeksync",
    "weeksync.sync_cache",
    "weeksync.store",
    "weeksync.recurrence",
    "weeksync.week_view",
    "weeksync.service",
]


def build_console_handler(level: int = logging.NOTSET) -> logging.Handler:
    """Create a stderr handler with the colorized weeksync format."""
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
    return handler


def configure_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    level_name: Optional[str] = None,
) -> None:
    """
    Configure console logging and weeksync logger levels.

    Args:
        debug_mode: Whether to enable debug logging for weeksync modules
        force_debug: Override debug mode setting (None to use env var detection)
        level_name: Root level name (e.g. from settings.log_level)

    Environment Variables:
        WEEKSYNC_DEBUG: Set to '1', 'true', 'yes', 'on' to force debug logging
        WEEKSYNC_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("WEEKSYNC_DEBUG", "").strip().lower() in _TRUTHY
    env_log_level = os.getenv("WEEKSYNC_LOG_LEVEL", "").strip().upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if level_name and level_name.upper() in _LEVEL_NAMES and not final_debug:
        root_level = getattr(logging, level_name.upper())
    if env_log_level in _LEVEL_NAMES:
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    # Only add a handler if none exist, to avoid duplicate output.
    if not root_logger.handlers:
        root_logger.addHandler(build_console_handler())

    package_level = logging.DEBUG if final_debug else root_level
    for name in PACKAGE_LOGGERS:
        logging.getLogger(name).setLevel(package_level)

    # Event loop debug logs are noise unless explicitly asked for.
    logging.getLogger("asyncio").setLevel(logging.DEBUG if final_debug else logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging configured: root=%s, weeksync=%s",
        logging.getLevelName(root_level),
        logging.getLevelName(package_level),
    )


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for name in [*PACKAGE_LOGGERS, "asyncio"]:
        status[name] = logging.getLevelName(logging.getLogger(name).level)
    return status
