"""Structured logging setup.

Log calls pass a dotted event name as the message and put data in
``extra``; the JSON formatter writes every non-standard record attribute as
a top-level key next to the trace ids of the active span.
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from daycycle.telemetry import current_trace_ids

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "asyncio")


def _build_reserved_keys() -> Set[str]:
    probe = logging.LogRecord(
        name="daycycle.probe",
        level=logging.INFO,
        pathname=__file__,
        lineno=0,
        msg="",
        args=(),
        exc_info=None,
    )
    reserved = set(probe.__dict__.keys())
    reserved.update({"asctime", "message", "taskName"})
    return reserved


_RESERVED_LOG_RECORD_KEYS = _build_reserved_keys()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class CustomJsonFormatter(logging.Formatter):
    """One JSON object per record.

    Fixed keys (``timestamp``, ``level``, ``logger``, ``event``) come first;
    context and ``extra`` attributes follow. ``None`` values are dropped.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_LOG_RECORD_KEYS or key in entry or value is None:
                continue
            entry[key] = value

        entry.update(current_trace_ids())
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(level: Optional[str] = None, json_output: bool = True) -> None:
    """Configure the root logger through ``logging.config.dictConfig``.

    Args:
        level: Root log level; defaults to ``LOG_LEVEL`` from settings
        json_output: Emit JSON lines; plain text is easier to read locally
    """
    if level is None:
        from daycycle.settings import get_settings
        level = get_settings().log_level
    level = level.upper()

    config_dict: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "daycycle_json": {
                "()": "daycycle.logging.logger.CustomJsonFormatter",
            },
            "daycycle_text": {
                "format": "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s",
            },
        },
        "filters": {
            "daycycle_context": {
                "()": "daycycle.logging.filters.ContextFilter",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "daycycle_json" if json_output else "daycycle_text",
                "filters": ["daycycle_context"],
                "stream": "ext://sys.stdout",
            }
        },
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        "root": {
            "level": level,
            "handlers": ["console"],
        },
    }

    logging.config.dictConfig(config_dict)
