"""Logging configuration with structured JSON support."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class JsonFormatter(logging.Formatter):
    """Format logs as structured JSON, merging ``extra_context`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "lineno": record.lineno,
            "thread": record.threadName,
        }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_context"):
            payload.update(record.extra_context)  # type: ignore

        return json.dumps(payload, default=str)


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[str | Path] = None,
    json_logs: bool = False,
) -> None:
    """Configure global logging."""
    handlers: list[Any] = [logging.StreamHandler(sys.stdout)]

    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "propel.log"))

    if json_logs:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level.upper(),
        handlers=handlers,
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger instance."""
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: str, message: str, *, extra: Optional[dict[str, Any]] = None) -> None:
    extra_context = {"extra_context": extra or {}}
    logger.log(getattr(logging, level.upper()), message, extra=extra_context)
