"""
Structured JSON logging with:
  - Console output
  - Rotating file output (configurable size / backup count)
  - Client / request IDs injected into every record
"""

import json
import logging
import logging.handlers
import sys
import time
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Optional

from app.config import Settings, get_settings

# ── Context variables so per-request metadata travels through async calls ─────
_client_id_var: ContextVar[str] = ContextVar("client_id", default="")
_request_id_var: ContextVar[str] = ContextVar("request_id", default="")

_RESERVED_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message",
    "taskName",
}


def set_logging_context(client_id: str = "", request_id: str = "") -> None:
    _client_id_var.set(client_id)
    _request_id_var.set(request_id)


def new_request_id() -> str:
    rid = str(uuid.uuid4())[:8]
    _request_id_var.set(rid)
    return rid


def current_request_id() -> str:
    return _request_id_var.get()


# ── JSON formatter ─────────────────────────────────────────────────────────────
class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "client_id": _client_id_var.get() or record.__dict__.get("client_id", ""),
            "request_id": _request_id_var.get() or record.__dict__.get("request_id", ""),
            "msg": record.getMessage(),
        }
        # Carry any extra keys set via `logger.info("...", extra={...})`
        for key, val in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in payload and not key.startswith("_"):
                payload[key] = val

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def configure_logging(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove default handlers
    root.handlers.clear()

    formatter = JsonFormatter()

    # Console
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    # Rotating file
    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=settings.log_file,
            maxBytes=settings.log_rotation_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
