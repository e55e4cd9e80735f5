"""Process-level logging setup for the relay server and CLI.

Library modules only create module loggers; handlers are installed here, once,
by `imagerelay.api.main` and the `serve` CLI command.
"""

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any


LOG_LEVEL_STR = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL = getattr(logging, LOG_LEVEL_STR, logging.INFO)
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").lower()

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_record: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "generation_id"):
            log_record["generation_id"] = record.generation_id  # type: ignore[attr-defined]

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record)


def setup_logging(level: int | None = None, fmt: str | None = None) -> logging.Logger:
    """Configure the root logger with one stdout handler.

    Args:
        level: Overrides `LOG_LEVEL`.
        fmt: `json` or `text`; overrides `LOG_FORMAT`.
    """
    logger = logging.getLogger()
    logger.setLevel(level if level is not None else LOG_LEVEL)

    handler = logging.StreamHandler(sys.stdout)
    if (fmt or LOG_FORMAT) == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        handler.setFormatter(JSONFormatter())

    # Replace uvicorn's default handlers so every line has one format.
    logger.handlers = []
    logger.addHandler(handler)

    # Per-request polling would otherwise flood the log.
    for noisy_logger in ("httpx", "httpcore"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    return logger
