import json
import logging
from logging.handlers import RotatingFileHandler
from datetime import datetime, timezone

from app.core.config import settings


class JsonFormatter(logging.Formatter):
    """JSON log formatter with support for extra fields."""

    # Fields to extract from log record's extra dict
    EXTRA_FIELDS = (
        "request_id", "path", "method", "status_code", "latency_ms",
        "session_id", "template_id", "payment_id", "checkout_id", "matched_by",
        "provider", "environment", "attempt", "max_attempts", "delay_seconds",
        "outcome", "error", "event_id", "delivery_id", "channel",
        "breaker_name", "old_state", "new_state", "count", "notification_type",
        "setting_key", "payload",
    )

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> None:
    formatter = JsonFormatter()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    handlers = [handler]
    if settings.log_file:
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    root.handlers = handlers


SENSITIVE_KEYS = frozenset({"token", "secret", "password", "passkey", "key", "authorization", "cookie", "api_key"})


def redact(value, depth: int = 0):
    """Copy of a webhook payload that is safe to log (credentials masked)."""
    if depth > 6:
        return value
    if isinstance(value, dict):
        return {
            k: ("<redacted>" if str(k).lower() in SENSITIVE_KEYS else redact(v, depth + 1))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact(v, depth + 1) for v in value]
    return value
