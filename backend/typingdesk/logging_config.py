"""
JSON log output for the TypingDesk backend.

Every record leaves the process as one JSON line on stdout:

    {"timestamp": "...Z", "level": "INFO", "channel": "membership",
     "message": "...", "context": {"request_id": "...", ...}, "extra": {...}}

Loggers are named `typingdesk.<channel>`; the channel is the part after
the prefix. `context` holds identifiers a log search filters on (request,
batch, student, relation) and `extra` holds measurements and payload
details (durations, counts, added/removed ids).
"""

import json
import logging
import os
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone

LOGGER_PREFIX = "typingdesk"

CHANNELS = ["http", "db", "membership", "auth"]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Set per HTTP request by request_scope(); empty outside a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


class RequestContextFilter(logging.Filter):
    """Stamp channel, request id and the structured fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "channel"):
            prefix = LOGGER_PREFIX + "."
            record.channel = record.name[len(prefix):] if record.name.startswith(prefix) else record.name
        record.request_id = request_id_var.get()
        record.context = getattr(record, "context", None) or {}
        record.extra_data = getattr(record, "extra_data", None) or {}
        return True


class StructuredJsonFormatter(logging.Formatter):
    """Render a filtered record as a single JSON object."""

    def formatTime(self, record, datefmt=None):
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return stamp.strftime("%Y-%m-%dT%H:%M:%S.") + "{:03d}Z".format(int(record.msecs))

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "channel": getattr(record, "channel", record.name),
            "message": record.getMessage(),
            "context": {"request_id": getattr(record, "request_id", ""),
                        **getattr(record, "context", {})},
            "extra": getattr(record, "extra_data", {}),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def build_handler(stream=None) -> logging.Handler:
    """Stream handler writing JSON lines, stdout unless another stream is given."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(StructuredJsonFormatter())
    return handler


def setup_logging() -> logging.Logger:
    """Route every logger through one JSON handler at LOG_LEVEL."""
    root = logging.getLogger()
    root.handlers = [build_handler()]
    root.setLevel(_level(LOG_LEVEL))
    for channel in CHANNELS:
        get_logger(channel).setLevel(_level(LOG_LEVEL))
    return root


def get_logger(channel: str) -> logging.Logger:
    return logging.getLogger("{}.{}".format(LOGGER_PREFIX, channel))


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None):
    """
    Log `message` at `level` (a name such as "INFO") with structured fields.

    context goes under "context" next to the request id; extra_data goes
    under "extra".
    """
    logger.log(_level(level), message,
               extra={"context": context or {}, "extra_data": extra_data or {}})


def generate_request_id() -> str:
    return str(uuid.uuid4())


@contextmanager
def request_scope(request_id: str = None):
    """Bind a request id for the duration of the block, yielding it."""
    request_id = request_id or generate_request_id()
    token = request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        request_id_var.reset(token)
