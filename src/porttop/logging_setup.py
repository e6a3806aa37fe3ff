"""structlog configuration; the terminal belongs to the dashboard."""

import logging
from pathlib import Path
from typing import TextIO

import structlog

DEFAULT_LOG_FILE = Path.home() / ".cache" / "porttop" / "porttop.log"


def configure_logging(log_file: Path | None = None, level: str = "info") -> TextIO:
    """
    Route structlog output to ``log_file`` as key=value lines.

    Args:
        log_file: Destination. Default ``~/.cache/porttop/porttop.log``.
        level: Minimum level name.

    Returns:
        The opened log stream, for the caller to close on exit.
    """
    path = log_file or DEFAULT_LOG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    stream = open(path, "a", encoding="utf-8")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "event"]),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.WriteLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )
    return stream
