"""Logging configuration for crawl-relay.

Every record carries a ``worker`` attribute: the name of the asyncio task
that emitted it (``crawl-worker-<n>`` inside a worker pool), or ``-``
outside one. Interleaved output from concurrent workers stays readable.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(worker)s] %(message)s'

NOISY_LOGGERS = ('httpx', 'httpcore', 'aiohttp', 'asyncio', 'playwright')


class WorkerContextFilter(logging.Filter):
    """Stamp records with the name of the current asyncio task."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            task = asyncio.current_task()
        except RuntimeError:
            task = None
        record.worker = task.get_name() if task else '-'
        return True


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        format_string: Optional custom format string; may use ``%(worker)s``
        quiet_loggers: Third-party loggers capped at WARNING
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    worker_filter = WorkerContextFilter()
    for handler in handlers:
        handler.addFilter(worker_filter)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=format_string or DEFAULT_FORMAT,
        handlers=handlers,
        force=True
    )

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)
