"""Loguru sinks for the coordination service.

Every record carries a ``service`` extra; stage and expert fields bound by
the engine (``logger.info(msg, expert=...)``) appear in the ``{extra}`` column
or, with ``json_logs``, as JSON keys.
"""

import sys
from pathlib import Path

from loguru import logger

SERVICE_NAME = "trainer-coordination"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level> | {extra}"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message} | {extra}"


def setup_logger(
    level: str = "INFO",
    log_file: str | None = None,
    *,
    json_logs: bool = False,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """Replace the default loguru handler with the service sinks.

    Args:
        level: Minimum level for every sink
        log_file: Optional rotating file sink; its directory is created
        json_logs: Emit one JSON object per record on stderr instead of text
        rotation: File rotation threshold (e.g. "10 MB", "1 day")
        retention: How long rotated files are kept
    """
    logger.remove()
    logger.configure(extra={"service": SERVICE_NAME})

    if json_logs:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=level,
            colorize=True,
        )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            format=FILE_FORMAT,
            level=level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            backtrace=True,
            diagnose=False,
        )

    logger.debug("Logger configured", level=level, json_logs=json_logs, log_file=log_file or "")
