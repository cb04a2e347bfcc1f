from __future__ import annotations

import contextvars
import logging
import sys
from pathlib import Path
from typing import Any

import orjson

_heal_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("heal_context", default={})

_RESERVED = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__.keys() | {"message", "asctime"}
)


class ORJSONFormatter(logging.Formatter):
    """One JSON object per record, with heal context and ``extra`` fields merged in."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - fmt
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        payload.update(_heal_context.get())
        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith("_"):
                continue
            payload.setdefault(key, value)
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode()


def setup_logging(log_level: str = "INFO", log_file: Path | None = None) -> None:
    """Route the ``selfheal`` loggers through the JSON formatter."""

    root = logging.getLogger("selfheal")
    root.setLevel(log_level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = ORJSONFormatter()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


def set_heal_context(**kwargs: Any) -> None:
    """Attach metadata (for instance the current test name) to later records."""

    context = dict(_heal_context.get())
    context.update({key: value for key, value in kwargs.items() if value is not None})
    _heal_context.set(context)


def clear_heal_context() -> None:
    _heal_context.set({})


def ensure_logging(log_level: str = "INFO") -> None:
    """Install the default handlers unless the ``selfheal`` logger already has some."""

    if not logging.getLogger("selfheal").handlers:
        setup_logging(log_level)
