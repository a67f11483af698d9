"""
JSON logs for the proxy. Caller tokens, the upstream key and the Supabase service key
travel in Authorization/apikey headers; any of them that reach a log line are masked.
"""
import json
import logging
import re
from logging.handlers import RotatingFileHandler
from datetime import datetime, timezone

from genproxy.core.config import settings

REDACTED = "[REDACTED]"
SECRET_RE = re.compile(r"(?i)(bearer\s+|apikey[\"']?\s*[:=]\s*[\"']?)[^\s\"',;&}]+")
# httpx/httpcore log every request line at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def redact(value: str) -> str:
    """Mask bearer tokens and apikey values, keeping the scheme/key name."""
    return SECRET_RE.sub(lambda m: m.group(1) + REDACTED, value)


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message plus known request fields."""

    EXTRA_FIELDS = (
        "user_id", "model", "backend", "task_id", "attempt", "amount",
        "status_code", "latency_ms", "error", "path", "method", "strategy",
        "payload_bytes",
    )

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }

        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is None:
                continue
            payload[field] = redact(value) if isinstance(value, str) else value

        if record.exc_info:
            payload["exception"] = redact(self.formatException(record.exc_info))

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> None:
    formatter = JsonFormatter()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    handlers: list[logging.Handler] = [handler]
    if settings.log_file:
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    root.handlers = handlers
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
