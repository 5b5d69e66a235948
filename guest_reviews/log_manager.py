"""
Logging setup for the guest review service.

The console gets Rich output on stderr. The JSON-lines file log records one
object per event; ingestion and moderation events carry their review
context (review id, Hostaway id, ingestion source, counts) as top-level
keys so a run can be traced with plain grep/jq.
"""

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

_NOISY_LOGGERS = ("urllib3", "requests", "httpx", "httpcore", "asyncio",
                  "uvicorn.access", "watchfiles")

# Attributes passed via ``extra=`` that are copied into the JSON entry
CONTEXT_FIELDS = ("review_id", "source_id", "approved", "source", "normalized",
                  "added", "total", "store_path")


class _JsonFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            if key in record.__dict__:
                entry[key] = record.__dict__[key]
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[str] = "logs",
    log_file: str = "reviews.log",
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 5,
    console: Optional[Console] = None,
) -> None:
    """Configure root logging. Safe to call more than once.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_dir: Directory for the JSON log file; None disables file logging.
        log_file: Log file name inside log_dir.
        max_bytes: Max size per log file before rotation.
        backup_count: Number of rotated log files to keep.
        console: Optional Rich Console instance (created if None).
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    rich_handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(numeric_level)
    root.addHandler(rich_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_path / log_file),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(_JsonFormatter())
        root.addHandler(file_handler)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)


def setup_logging_from_config(config: Dict[str, Any],
                              console: Optional[Console] = None) -> None:
    """setup_logging() driven by the log_* keys of the service config."""
    setup_logging(
        level=config.get("log_level", "INFO"),
        log_dir=config.get("log_dir", "logs"),
        log_file=config.get("log_file", "reviews.log"),
        max_bytes=config.get("log_max_bytes", 5 * 1024 * 1024),
        backup_count=config.get("log_backup_count", 5),
        console=console,
    )
