"""Structured JSON logging setup."""

import json
import logging
import sys
from datetime import datetime, timezone

from budgetly.core.config import settings

# Attributes present on every LogRecord; anything else came in through extra=
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def setup_logging(level: str = None) -> None:
    """Configure the root logger once for the process."""
    root = logging.getLogger()
    level_name = (level or settings.LOG_LEVEL).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # Avoid duplicate handlers when called from both worker and scripts
    for handler in list(root.handlers):
        if getattr(handler, "_budgetly_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    handler._budgetly_handler = True
    root.addHandler(handler)

    # SQL echo is controlled by the engine, keep the logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DEBUG else logging.WARNING
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
