from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

LOGGER_NAME = "city_pulse"
LOG_FILE_NAME = "api.log.jsonl"


class EventFormatter(jsonlogger.JsonFormatter):
    """One JSON object per line with ``ts`` and ``level`` next to the event fields."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("ts", datetime.fromtimestamp(record.created, UTC).isoformat())
        log_record["level"] = record.levelname


def log_dir_for(out_dir: str) -> Path:
    """``<out_dir>/logs``, or a temp-dir location when that cannot be created."""
    preferred = Path(out_dir) / "logs"
    try:
        preferred.mkdir(parents=True, exist_ok=True)
        return preferred
    except OSError:
        fallback = Path(gettempdir()) / "city-pulse" / "logs"
        fallback.mkdir(parents=True, exist_ok=True)
        return fallback


def configure_logging(*, out_dir: str, level: str) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    resolved = logging.getLevelName(level.upper())
    logger.setLevel(resolved if isinstance(resolved, int) else logging.INFO)
    logger.propagate = False

    formatter = EventFormatter()
    handlers: list[logging.Handler] = [
        logging.StreamHandler(),
        logging.FileHandler(log_dir_for(out_dir) / LOG_FILE_NAME, encoding="utf-8"),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


LOGGER: logging.Logger | None = None


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    global LOGGER
    if LOGGER is None:
        LOGGER = configure_logging(out_dir=settings.out_dir, level=settings.log_level)
    LOGGER.log(level, event, extra={"event": event, **fields})
