"""
Central logging configuration for wallcal.

Installs a colorized console handler once and quiets chatty third-party
loggers (httpx request lines, aiohttp access logs) while keeping wallcal's own
modules at the requested verbosity.
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

# Third-party libraries that generate excessive debug logs
NOISY_LOGGERS = (
    "aiohttp.access",
    "aiohttp.server",
    "aiohttp.web_log",
    "httpx",
    "httpcore",
    "asyncio",
)

WALLCAL_LOGGERS = (
    "wallcal",
    "wallcal.ical_parser",
    "wallcal.recurrence",
    "wallcal.proxy_fetcher",
    "wallcal.merger",
    "wallcal.aggregator",
    "wallcal.server",
)


def init_logging(level_name: Optional[str] = None) -> None:
    """Attach a colorized stderr handler to the root logger.

    Only installs a handler if none are present, so calling it twice (or
    after a test harness configured logging) does not duplicate output.
    """
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(
            ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS)
        )
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logger levels for wallcal.

    Args:
        debug_mode: Whether to enable debug logging for wallcal modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        WALLCAL_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        WALLCAL_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("WALLCAL_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("WALLCAL_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)
    logging.getLogger().setLevel(root_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    wallcal_level = logging.DEBUG if final_debug else logging.INFO
    for name in WALLCAL_LOGGERS:
        logging.getLogger(name).setLevel(wallcal_level)

    logging.getLogger(__name__).info(
        "Logging configured (debug=%s, root=%s)", final_debug, logging.getLevelName(root_level)
    )


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for name in ("wallcal", "httpx", "aiohttp.access", "asyncio"):
        status[name] = logging.getLevelName(logging.getLogger(name).level)
    return status
