"""
Logging configuration using loguru.

Library code logs through ``loguru.logger`` directly and never configures
sinks. The CLI calls :func:`configure_cli_logging` once per command: warnings
(or everything, with ``--verbose``) go to stderr, and a rotating
``sleepsync.log`` under the data directory keeps the sync history.
"""

import sys
from pathlib import Path

from loguru import logger

LOG_FILE_NAME = "sleepsync.log"
CONSOLE_FORMAT = "<level>[{level.name}]</level> {message}"
VERBOSE_FORMAT = "<green>{time:HH:mm:ss}</green> <level>{level: <8}</level> <cyan>{name}</cyan> {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} | {message}"


def setup_logging(
    level: str = "WARNING",
    log_file: str | Path | None = None,
    fmt: str = CONSOLE_FORMAT,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """
    Replace loguru's sinks with a console sink and an optional file sink.

    Args:
        level: Minimum console level (DEBUG, INFO, WARNING, ERROR).
        log_file: Path to the log file. If None, only logs to stderr.
        fmt: Loguru format string for the console sink.
        rotation: Log file rotation size.
        retention: How long to keep rotated logs.
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format=fmt)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        # The file keeps INFO even when the console only shows warnings.
        logger.add(
            str(path),
            level="DEBUG" if level == "DEBUG" else "INFO",
            format=FILE_FORMAT,
            rotation=rotation,
            retention=retention,
        )


def configure_cli_logging(verbose: bool, log_dir: str | Path) -> Path:
    """Logging for one CLI invocation; returns the log file path."""
    log_file = Path(log_dir).expanduser() / LOG_FILE_NAME
    if verbose:
        setup_logging(level="DEBUG", log_file=log_file, fmt=VERBOSE_FORMAT)
    else:
        setup_logging(level="WARNING", log_file=log_file)
    return log_file
