"""
Logging setup for trackprobe.

Worker processes and the scheduler log through named loggers
("worker", "scheduler", "loader", ...). The CLI installs handlers on the
root logger once: JSON lines for log files, and either JSON or colored
text on stderr.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JSONFormatter(logging.Formatter):
    """
    Render each record as a single JSON object per line.

    Context bound with create_logger_with_context (the request id of the
    file being analyzed, for instance) appears under "extra".
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process": record.process,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        context = getattr(record, "context", None)
        if context:
            entry["extra"] = context

        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Text formatter that colors the level name for terminals."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        record.levelname = f"{self.COLORS.get(levelname, '')}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            # Other handlers see the same record object
            record.levelname = levelname


def _console_formatter(log_format: str, colored: bool) -> logging.Formatter:
    if log_format == "json":
        return JSONFormatter()
    if colored:
        return ColoredFormatter(TEXT_FORMAT, DATE_FORMAT)
    return logging.Formatter(TEXT_FORMAT, DATE_FORMAT)


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    max_bytes: int = 10485760,
    backup_count: int = 5,
    console_enabled: bool = True,
    colored: bool = True,
) -> None:
    """
    Replace the root logger's handlers.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Console format, "json" or "text"
        log_file: Optional path of a rotating JSON log file
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files to keep
        console_enabled: Whether to log to stderr
        colored: Color level names in text console output
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    root.handlers = []

    if console_enabled:
        # stdout carries the per-file report lines
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(_console_formatter(log_format, colored))
        root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)


def setup_logging_from_config(log_config: Mapping[str, Any], verbose: bool = False) -> None:
    """Apply the ``logging`` section of a loaded configuration."""
    setup_logging(
        level="DEBUG" if verbose else log_config.get("level", "INFO"),
        log_format=log_config.get("format", "json"),
        log_file=log_config.get("file"),
        max_bytes=log_config.get("max_bytes", 10485760),
        backup_count=log_config.get("backup_count", 5),
        colored=log_config.get("colored", True),
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """
    Adapter binding fixed context to every record.

    The context dict is attached to the record as ``context`` and also
    rendered as a ``[key=value ...]`` prefix so text output carries it.
    """

    def process(
        self, msg: str, kwargs: Dict[str, Any]
    ) -> tuple[str, Dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["context"] = dict(self.extra)
        kwargs["extra"] = extra
        prefix = " ".join(f"{k}={v}" for k, v in self.extra.items())
        return (f"[{prefix}] {msg}" if prefix else msg), kwargs


def create_logger_with_context(
    name: str, context: Dict[str, Any]
) -> LoggerAdapter:
    """
    Create a logger that tags every message with ``context``.

    Example:
        log = create_logger_with_context("worker", {"request_id": "abc123"})
        log.info("Decoding")
        # Logs: "[request_id=abc123] Decoding"
    """
    return LoggerAdapter(get_logger(name), context)
