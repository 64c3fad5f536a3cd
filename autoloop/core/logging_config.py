"""
Structured Logging Configuration for AutoLoop

Every log line can be correlated back to what produced it:
- API requests:   request_id (X-Request-ID header or generated)
- Workflow runs:  request_id = execution log id, plus workflow_id / business_id

Correlation fields live in a ContextVar, so they follow the current request
or job across awaits without being passed around. A logging.Filter copies
them onto each record; both formatters read them from there.
"""

import logging
import json
import sys
from datetime import datetime
from typing import Any, Dict, Optional
from contextvars import ContextVar
import os

CORRELATION_FIELDS = ("request_id", "workflow_id", "business_id")

_correlation: ContextVar[Dict[str, str]] = ContextVar("autoloop_correlation", default={})

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler", "kombu")

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info', 'taskName',
    *CORRELATION_FIELDS,
}


class CorrelationFilter(logging.Filter):
    """Attach the current correlation fields to every record (None when unset)."""

    def filter(self, record: logging.LogRecord) -> bool:
        fields = _correlation.get()
        for name in CORRELATION_FIELDS:
            setattr(record, name, fields.get(name))
        return True


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line (production).

    {"timestamp", "level", "logger", "message",
     "request_id"?, "workflow_id"?, "business_id"?, "exception"?, "context"?}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in CORRELATION_FIELDS:
            value = getattr(record, name, None)
            if value:
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields passed via logger.info("msg", extra={"key": "value"})
        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_data["context"] = extra_fields

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StandardFormatter(logging.Formatter):
    """
    Human-readable lines for development:

    [2026-03-10 12:00:00] INFO     autoloop.core.engine - message [run=... workflow=...]
    """

    LABELS = {"request_id": "run", "workflow_id": "workflow", "business_id": "business"}

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{timestamp}] {record.levelname:8s} {record.name} - {record.getMessage()}"

        tags = [
            f"{self.LABELS[name]}={getattr(record, name)}"
            for name in CORRELATION_FIELDS
            if getattr(record, name, None)
        ]
        if tags:
            line += f" [{' '.join(tags)}]"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


def setup_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_file: Optional[str] = None
) -> None:
    """
    Configure the root logger for the API process or a Celery worker.

    LOG_LEVEL / JSON_LOGS / LOG_FILE take precedence over the arguments.

    Examples:
        setup_logging(level="DEBUG")                          # local API
        setup_logging(json_logs=True, log_file="/var/log/autoloop.log")   # workers
    """
    level = os.getenv("LOG_LEVEL", level).upper()
    json_logs = os.getenv("JSON_LOGS", "true" if json_logs else "false").lower() == "true"
    log_file = os.getenv("LOG_FILE", log_file)

    numeric_level = getattr(logging, level, logging.INFO)
    formatter = JSONFormatter() if json_logs else StandardFormatter()
    correlation = CorrelationFilter()

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        handler.addFilter(correlation)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    logging.getLogger(__name__).info(
        f"Logging configured (level={level}, json={json_logs}, file={log_file or 'none'})"
    )


# ============================================================================
# CORRELATION
# ============================================================================

def set_request_id(request_id: Optional[str]) -> None:
    """Correlation id for the current API request."""
    _correlation.set({"request_id": request_id} if request_id else {})


def bind_run(execution_id: str, workflow_id: Optional[str] = None, business_id: Optional[str] = None) -> None:
    """
    Tag everything logged during a workflow run. The execution log id doubles
    as the request id so API and worker lines can be joined on one field.
    """
    fields = {"request_id": execution_id}
    if workflow_id:
        fields["workflow_id"] = workflow_id
    if business_id:
        fields["business_id"] = business_id
    _correlation.set(fields)


def clear_request_id() -> None:
    """Drop all correlation fields so they do not leak into the next request or job."""
    _correlation.set({})


def get_request_id() -> Optional[str]:
    return _correlation.get().get("request_id")


def get_correlation() -> Dict[str, str]:
    return dict(_correlation.get())
