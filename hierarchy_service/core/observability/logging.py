"""
Logging setup for the Asset Hierarchy Service.

Production emits one JSON object per line; other environments get a readable
line with the hierarchy context appended. Context travels in `extra`: the
tenant (organization_id, user_id) and, for store failures, the error code plus
the collection or operation that failed.
"""

import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict

from hierarchy_service.app.config import get_settings
from hierarchy_service.core.exceptions import HierarchyServiceError

CONTEXT_FIELDS = ("organization_id", "user_id", "error_code", "collection", "operation", "id")

NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "gotrue")


def hierarchy_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Context fields present on a record, in CONTEXT_FIELDS order."""
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


def error_log_extra(error: HierarchyServiceError, **fields: Any) -> Dict[str, Any]:
    """
    Build `extra` for logging a service error.

    Carries the error code and whichever context fields the error holds
    (collection for fetches, operation and record id for writes), plus any
    caller-supplied fields that are not None.
    """
    extra: Dict[str, Any] = {"error_code": error.error_code.value}
    extra.update({k: v for k, v in error.context.items() if k in CONTEXT_FIELDS})
    extra.update({k: v for k, v in fields.items() if v is not None})
    return extra


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production log collectors."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(hierarchy_context(record))
        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


class ContextFormatter(logging.Formatter):
    """Readable formatter that appends hierarchy context as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = hierarchy_context(record)
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        return line


def setup_logging() -> None:
    """Install one stdout handler on the root logger, formatted per environment."""
    settings = get_settings()

    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if settings.environment == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ContextFormatter("%(asctime)s %(levelname)-8s %(name)s - %(message)s", datefmt="%H:%M:%S"))
    root.addHandler(handler)

    # Store client chatter (HTTP/2 frames, PostgREST and auth requests)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
