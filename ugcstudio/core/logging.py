"""
Structured JSON logging for the API and the dispatch worker.

Only whitelisted `extra` keys reach the output, so payloads and secrets passed
by mistake are dropped. The HTTP middleware binds the request id for the
duration of a request; every record emitted meanwhile carries it.
"""
import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from ugcstudio.core.config import settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Outbound HTTP clients log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "stripe")


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, message, whitelisted extras."""

    EXTRA_FIELDS = (
        # payments and ledger
        "event_id", "event_type", "account_id", "credits", "error_code",
        # batches and dispatch
        "batch_id", "idempotency_key", "attempt",
        # http
        "request_id", "path", "method", "status_code", "latency_ms", "error",
        # circuit breaker
        "breaker_name", "old_state", "new_state",
    )

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            {name: getattr(record, name) for name in self.EXTRA_FIELDS if getattr(record, name, None) is not None}
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> None:
    """Install JSON handlers on the root logger (stdout, plus a rotating file when LOG_FILE is set)."""
    formatter = JsonFormatter()
    context = RequestContextFilter()

    stream = logging.StreamHandler()
    handlers: list[logging.Handler] = [stream]
    if settings.log_file:
        handlers.append(
            RotatingFileHandler(
                settings.log_file,
                maxBytes=settings.log_max_bytes,
                backupCount=settings.log_backup_count,
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context)

    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    root.handlers = handlers
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
