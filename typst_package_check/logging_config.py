"""
Logging configuration.

Human readable logs go to stderr. Webhook deliveries are additionally
recorded as JSON lines by the ``typst_package_check.deliveries`` logger, one
entry per state change, so that each delivery can be followed from receipt
to its final Check Run.
"""

import json
import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

LOG_FORMAT = "[%(asctime)s] %(name)s %(levelname)s: %(message)s"
DELIVERY_LOGGER = "typst_package_check.deliveries"

DELIVERY_FIELDS = [
    "event",
    "delivery",
    "repository",
    "sha",
    "state",
    "package",
    "check_run",
    "conclusion",
    "reason",
    "error",
]


class DeliveryLogFormatter(logging.Formatter):
    """Formats delivery records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in DELIVERY_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def configure_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_format: bool = False,
) -> None:
    """
    Configure the package loggers.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Also write logs to this file, rotated daily (optional)
        json_format: Write every record as JSON instead of plain text
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    formatter: logging.Formatter = DeliveryLogFormatter() if json_format else logging.Formatter(LOG_FORMAT)

    root = logging.getLogger("typst_package_check")
    root.setLevel(numeric_level)
    root.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_handler = TimedRotatingFileHandler(
            log_file,
            when="midnight",
            backupCount=7,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Deliveries always get the structured format.
    deliveries = logging.getLogger(DELIVERY_LOGGER)
    deliveries.setLevel(numeric_level)
    deliveries.propagate = False
    deliveries.handlers.clear()
    delivery_handler = logging.StreamHandler(sys.stderr)
    delivery_handler.setFormatter(DeliveryLogFormatter())
    deliveries.addHandler(delivery_handler)
    if log_file:
        delivery_file_handler = TimedRotatingFileHandler(
            str(Path(log_file).with_suffix(".deliveries.log")),
            when="midnight",
            backupCount=7,
            encoding="utf-8",
        )
        delivery_file_handler.setFormatter(DeliveryLogFormatter())
        deliveries.addHandler(delivery_file_handler)


def get_delivery_logger() -> logging.Logger:
    """Get the structured webhook delivery logger."""
    return logging.getLogger(DELIVERY_LOGGER)
