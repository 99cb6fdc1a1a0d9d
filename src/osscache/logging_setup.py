"""Logging configuration for osscache processes."""

import logging
import logging.handlers
import sys

from .config import LoggingConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Rotate at 5MB per file
MAX_LOG_BYTES = 5 * 1024 * 1024


def configure_logging(config: LoggingConfig, debug: bool = False) -> None:
    """Install console and rotating file handlers on the root logger.

    error.log keeps ERROR and above (5 files), combined.log keeps every
    record (10 files). If the log directory cannot be created, logging
    falls back to the console only.

    Args:
        config: Logging settings
        debug: Force DEBUG level regardless of config
    """
    level = logging.DEBUG if debug else getattr(
        logging, config.level.upper(), logging.INFO
    )
    formatter = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if config.directory is None:
        return

    try:
        config.directory.mkdir(parents=True, exist_ok=True)
        error_file = logging.handlers.RotatingFileHandler(
            config.directory / "error.log", maxBytes=MAX_LOG_BYTES, backupCount=5
        )
        combined_file = logging.handlers.RotatingFileHandler(
            config.directory / "combined.log", maxBytes=MAX_LOG_BYTES, backupCount=10
        )
    except OSError as e:
        root.warning(f"File logging disabled, cannot write to {config.directory}: {e}")
        return

    error_file.setLevel(logging.ERROR)
    for handler in (error_file, combined_file):
        handler.setFormatter(formatter)
        root.addHandler(handler)
