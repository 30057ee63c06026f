"""Loguru sinks for the command-line scripts.

Library modules log through ``logging.getLogger(__name__)``; the scripts
call ``configure_logging`` once so those records reach the loguru sinks
(stderr plus a rotating log file).
"""

import logging
import sys
from pathlib import Path

from loguru import logger

from docgraph.config_loader import LoggingConfig


class InterceptHandler(logging.Handler):
    """Forward standard logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller outside the logging module so loguru reports the right origin
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(config: LoggingConfig | None = None, verbose: bool = False) -> None:
    """Install stderr and file sinks and route stdlib logging into them.

    Args:
        config: Logging settings (level, log file, rotation, retention)
        verbose: Force DEBUG on stderr
    """
    config = config or LoggingConfig()
    stderr_level = "DEBUG" if verbose else config.level

    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level=stderr_level,
    )
    if config.log_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}",
            level="DEBUG",
            rotation=config.rotation,
            retention=config.retention,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=logging.DEBUG, force=True)
