"""cachekit.core.logging

Logging setup for the ``cachekit`` logger tree.

Messages are short snake_case event names; context travels in ``extra``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cachekit.core.config import LoggingConfig

ROOT_LOGGER = "cachekit"

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED}


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra = _extra_fields(record)
        if extra:
            line += " " + " ".join(f"{k}={v}" for k, v in sorted(extra.items()))
        return line


def configure_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Install a single stream handler on the ``cachekit`` logger.

    Calling it again replaces the handler installed by the previous call.
    """

    cfg = config or LoggingConfig()
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, "_cachekit_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter() if cfg.json_output else TextFormatter())
    handler._cachekit_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(cfg.level.upper())
    return logger
