"""
Custom JSON formatter for logging (without external dependencies).
"""
import json
import logging
from datetime import datetime, timezone


EXTRA_FIELDS = (
    "request_id",
    "user_id",
    "operation",
    "status",
    "idempotency_key",
    "order_id",
    "order_number",
    "entry_type",
    "event_type",
    "event_id",
    "from_status",
    "to_status",
    "dispute_id",
    "return_id",
    "error",
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add extra fields if present
        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)
