# audit_json/logging_config.py

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from audit_json.core.config import log_level


# Liste de clés "standard" du LogRecord à ne pas dupliquer
_STANDARD_RECORD_KEYS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}


class JSONLogFormatter(logging.Formatter):
    """
    Formatter qui produit une ligne JSON par log.
    Il fusionne les champs standards (timestamp, niveau...)
    avec les champs fournis via extra={...} (table, action, transaction_id...).
    """

    def format(self, record: logging.LogRecord) -> str:
        log: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_KEYS:
                continue
            if key.startswith("_"):
                continue
            if key in log:
                continue
            log[key] = value

        if record.exc_info:
            log["exc_info"] = self.formatException(record.exc_info)

        # default=str : les horodatages et TableRef passés en extra restent sérialisables
        return json.dumps(log, ensure_ascii=False, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure le logging global pour utiliser le formatter JSON.
    """
    level = level or log_level()
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "audit_json.logging_config.JSONLogFormatter",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            }
        },
        "loggers": {
            "audit_json": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
            # Les sous-loggers remontent au logger "audit_json"
            "audit_json.capture": {"level": level},
            "audit_json.attach": {"level": level},
        },
        "root": {
            "handlers": ["console"],
            "level": "WARNING",
        },
    }

    logging.config.dictConfig(config)
