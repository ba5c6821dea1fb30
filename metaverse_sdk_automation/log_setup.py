"""JSON line logging for automation runs."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from metaverse_sdk_automation.const import LOG_FILE

_RESERVED_RECORD_FIELDS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class JsonLineLogFormatter(logging.Formatter):
    """Emit one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single JSON object string.

        Args:
            record: The log record to format.

        Returns:
            A JSON string with ``time``, ``level``, ``msg`` and any ``extra``
            fields of the record.
        """
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        event: dict[str, object] = {
            "time": timestamp.replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "msg": record.getMessage(),
            "logger": record.name,
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_FIELDS and not key.startswith("_"):
                event[key] = value
        if record.exc_info:
            event["error"] = self.formatException(record.exc_info)
        try:
            return json.dumps(event, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return json.dumps({"level": "error", "msg": record.getMessage()})


def configure_logging(
    verbose: bool = False,
    log_to_file: bool = False,
    log_path: Path | None = None,
) -> logging.Logger:
    """Configure the package logger for a CLI run.

    Args:
        verbose: Log at DEBUG instead of INFO.
        log_to_file: Also write records to ``log_path``.
        log_path: Log file, ``metaverse-sdk-automation.log`` in the cwd by
            default.

    Returns:
        The configured package logger.
    """
    package_logger = logging.getLogger("metaverse_sdk_automation")
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    package_logger.propagate = False
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    formatter = JsonLineLogFormatter()
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    package_logger.addHandler(stream_handler)

    if log_to_file:
        file_handler = logging.FileHandler(log_path or Path(LOG_FILE), encoding="utf-8")
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    return package_logger
