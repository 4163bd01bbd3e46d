"""Centralized logging configuration for the sync service."""

import logging
import os
import re
import sys
import time
from datetime import date, datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

DATE_PLACEHOLDER = "{date}"
DATE_FORMAT = "%d-%m-%Y"


def expand_log_file(log_file: str, today: date | None = None) -> str:
    """Replace a ``{date}`` placeholder in a log file path with ``dd-MM-yyyy``."""
    today = today or date.today()
    return log_file.replace(DATE_PLACEHOLDER, today.strftime(DATE_FORMAT))


class DailyLogFileHandler(TimedRotatingFileHandler):
    """Rotating file handler for log paths with a ``{date}`` placeholder.

    At midnight the handler switches to the file named after the new day
    and deletes all but the newest ``retention_days`` dated files. Paths
    without the placeholder rotate the standard way, keeping
    ``retention_days`` backups.
    """

    def __init__(self, pattern: str, retention_days: int = 30, encoding: str = "utf-8"):
        self.pattern = pattern
        self.retention_days = retention_days

        path = Path(expand_log_file(pattern))
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(path, when="midnight", backupCount=retention_days, encoding=encoding)

        if self.is_dated:
            self.prune()

    @property
    def is_dated(self) -> bool:
        return DATE_PLACEHOLDER in Path(self.pattern).name

    def doRollover(self) -> None:
        if not self.is_dated:
            super().doRollover()
            return

        if self.stream:
            self.stream.close()
            self.stream = None

        self.baseFilename = os.path.abspath(expand_log_file(self.pattern))
        self.rolloverAt = self.computeRollover(int(time.time()))
        if not self.delay:
            self.stream = self._open()
        self.prune()

    def dated_files(self) -> list[tuple[date, Path]]:
        """Existing files that match the pattern, newest first."""
        pattern = Path(self.pattern)
        prefix, _, suffix = pattern.name.partition(DATE_PLACEHOLDER)
        matcher = re.compile(re.escape(prefix) + r"(\d{2}-\d{2}-\d{4})" + re.escape(suffix))

        found = []
        for path in Path(self.baseFilename).parent.iterdir():
            match = matcher.fullmatch(path.name)
            if not match:
                continue
            try:
                day = datetime.strptime(match.group(1), DATE_FORMAT).date()
            except ValueError:
                continue
            found.append((day, path))
        return sorted(found, reverse=True)

    def prune(self) -> None:
        """Delete dated files beyond the newest ``retention_days``."""
        for _, path in self.dated_files()[self.retention_days :]:
            if str(path.resolve()) == str(Path(self.baseFilename).resolve()):
                continue
            path.unlink(missing_ok=True)


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    log_file: str | None = None,
    retention_days: int = 30,
) -> None:
    """
    Configure structured logging for the sync service.

    This function sets up structlog with:
    - JSON formatting for production (when json_logs=True)
    - Console formatting for interactive runs (when json_logs=False)
    - Configurable log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - Optional daily log files, keeping ``retention_days`` of them

    Every handler on the root logger renders through structlog, so an
    entry (exception included) is written as a single record.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, output JSON logs. If False, use console format.
        log_file: Optional path to log file; ``{date}`` expands to dd-MM-yyyy.
        retention_days: Number of daily files to keep.

    Example:
        >>> configure_logging(log_level="DEBUG", json_logs=False)
        >>> log = structlog.stdlib.get_logger()
        >>> log.info("sync_run_started")
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        stream=sys.stdout,
    )

    if log_file:
        file_handler = DailyLogFileHandler(log_file, retention_days=retention_days)
        file_handler.setLevel(numeric_level)
        logging.root.addHandler(file_handler)

    shared_processors: list[Any] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        renderer: Any = structlog.processors.JSONRenderer()
        # tracebacks go into the "exception" field
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    for handler in logging.root.handlers:
        handler.setFormatter(formatter)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                ],
            ),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
