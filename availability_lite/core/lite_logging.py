"""
Central logging configuration for availability_lite.

Suppresses verbose debug logs from third-party libraries while keeping the
package's own diagnostics (expansion warnings, fetch failures) visible.
"""

import logging
import os
from typing import Optional

# Third-party libraries that generate excessive debug logs
NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.INFO,
}

PACKAGE_LOGGERS = (
    "availability_lite",
    "availability_lite.domain.expander",
    "availability_lite.domain.pipeline",
    "availability_lite.calendar.fetcher",
    "availability_lite.calendar.ics_parser",
    "availability_lite.api.server",
)


def configure_lite_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for availability_lite.

    Args:
        debug_mode: Whether to enable debug logging for availability_lite modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        AVAILABILITY_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        AVAILABILITY_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("AVAILABILITY_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("AVAILABILITY_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Don't use basicConfig(force=True) so the colorlog handler from __init__ survives
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s"))
        root_logger.addHandler(handler)

    logger_config = dict(NOISY_LOGGERS)
    package_level = logging.DEBUG if final_debug else logging.INFO
    for module in PACKAGE_LOGGERS:
        logger_config[module] = package_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for availability_lite modules")
    else:
        root_logger.info("Production logging configuration applied")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ("availability_lite", "aiohttp.access", "httpx", "asyncio"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
