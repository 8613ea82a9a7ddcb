"""availability_lite - personal availability calendar with plan-calendar overlap detection.

The package keeps top-level imports light so it can be inspected without pulling
in the HTTP stack. The expansion engine lives in ``availability_lite.domain``.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Honors the AVAILABILITY_DEBUG environment variable (truthy values: "1",
    "true", "yes", "on") which forces DEBUG verbosity during troubleshooting.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("AVAILABILITY_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none are present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message (only the level is colorized)
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def run_server(args: Optional[object] = None) -> None:
    """Start the availability_lite HTTP server, or print the schedule once.

    Args:
        args: Optional argparse namespace with ``port``, ``print_schedule`` and
            ``topics`` attributes.
    """
    import logging
    import os

    _init_logging(os.environ.get("AVAILABILITY_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from availability_lite.core.config_manager import ConfigManager

    config = ConfigManager().build_config()

    if args is not None:
        port = getattr(args, "port", None)
        if port is not None:
            config = config.model_copy(update={"server_port": int(port)})
            logger.debug("Applied command line port override: %d", port)

    if config.log_level:
        logger.info("Applying configured log_level=%s", config.log_level)
        logging.getLogger().setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    if getattr(args, "print_schedule", False):
        from availability_lite.api.server import print_schedule

        print_schedule(config, topics=list(getattr(args, "topics", None) or []))
        return

    from availability_lite.api.server import start_server

    logger.debug(
        "Resolved configuration (diagnostic): %s",
        config.model_dump(include={"name", "horizon_weeks", "timezone", "server_bind", "server_port"}),
    )
    start_server(config)
