"""Structured logging for the rate limiter service.

- JSON lines on stdout (or a rotating file), one object per event
- ``request_id`` from the request-id middleware attached to every record
- Raw caller identities never reach a log line: limiter keys are hashed and
  header-like fields are redacted
- ``rate_limit.*`` events share one field set built by ``rate_limit_fields``
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Mapping

from app.adapters.rate_limit.base import RateLimitDecision
from app.core.config import LogSettings, settings

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Extras that may carry a caller's secret or raw identity
REDACTED_FIELDS: frozenset[str] = frozenset(
    {"key", "api_key", "x-api-key", "authorization", "cookie"}
)
REDACTED = "[REDACTED]"

# Everything a bare LogRecord carries; the rest of __dict__ is ``extra=...``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def hash_identifier(value: str) -> str:
    """Return a short, stable SHA-256 prefix safe to log in place of value."""

    return hashlib.sha256(value.encode()).hexdigest()[:16]


def rate_limit_fields(
    key: str,
    decision: RateLimitDecision,
    *,
    policy: str | None,
) -> dict[str, Any]:
    """Build the ``extra`` payload shared by all ``rate_limit.*`` events.

    Args:
        key: Limiter key; only its hash and namespace are logged.
        decision: Outcome of the check being logged.
        policy: Name of the applied preset.

    Returns:
        Dict with key_hash, key_type, policy, allowed, limit, remaining,
        reset_at and retry_after_s.
    """

    return {
        "key_hash": hash_identifier(key),
        "key_type": key.split(":", 1)[0] if ":" in key else "raw",
        "policy": policy,
        "allowed": decision.allowed,
        "limit": decision.limit,
        "remaining": decision.remaining,
        "reset_at": decision.reset_at,
        "retry_after_s": decision.retry_after_seconds,
    }


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            k: REDACTED if str(k).lower() in REDACTED_FIELDS else _redact(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v) for v in value)
    return value


def record_extras(record: LogRecord) -> dict[str, Any]:
    """Return the ``extra=...`` fields of a record."""

    return {
        k: v
        for k, v in record.__dict__.items()
        if k not in _RECORD_ATTRS and not k.startswith("_")
    }


class LogContextFilter(logging.Filter):
    """Attach the current request id and redact sensitive extras in place."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        for name, value in record_extras(record).items():
            if name.lower() in REDACTED_FIELDS:
                setattr(record, name, REDACTED)
            elif isinstance(value, (Mapping, list, tuple)):
                setattr(record, name, _redact(value))
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, extras."""

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({k: v for k, v in record_extras(record).items() if v is not None})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output == "stdout":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/app.log")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if log_settings.max_bytes:
        return RotatingFileHandler(
            file_path,
            maxBytes=log_settings.max_bytes,
            backupCount=log_settings.backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(file_path, encoding="utf-8")


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install a single root handler according to ``LOG_*`` settings.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(LogContextFilter())
    if cfg.format == "plain":
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # uvicorn installs its own handlers; keep its records out of ours
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
