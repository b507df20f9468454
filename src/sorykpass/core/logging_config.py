"""
Structured logging configuration with trace IDs
"""
import logging
import contextvars
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from sorykpass.core.config import settings

# Context variable to store trace ID across async calls
trace_id_var = contextvars.ContextVar('trace_id', default=None)

# Diagnostic fields copied from `extra=` into every JSON record
CONTEXT_FIELDS = (
    'order_id',
    'session_id',
    'token',
    'event_id',
    'user_id',
    'error_kind',
    'duration_ms',
)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with trace ID and checkout context fields"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.utcnow().isoformat()
        log_record['level'] = record.levelname
        log_record['service'] = 'sorykpass-checkout'

        trace_id = get_trace_id()
        if trace_id:
            log_record['trace_id'] = trace_id

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                value = getattr(record, field)
                if field == 'token' and isinstance(value, str):
                    value = mask_token(value)
                log_record[field] = value


def mask_token(token: Optional[str]) -> Optional[str]:
    """Gateway tokens are credentials for a pending transaction; only log a prefix."""
    if not token:
        return token
    return token[:10] + "..."


def setup_logging() -> logging.Logger:
    """Configure logging for the service"""
    if settings.LOG_JSON:
        formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.LOG_LEVEL)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.LOG_FILE:
        file_handler = logging.FileHandler(settings.LOG_FILE)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Reduce noise from libraries
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)

    return root_logger


def get_trace_id() -> Optional[str]:
    """Get current trace ID"""
    return trace_id_var.get()


def set_trace_id(trace_id: str):
    """Set trace ID for current context"""
    trace_id_var.set(trace_id)


def generate_trace_id() -> str:
    """Generate a new trace ID"""
    return str(uuid.uuid4())
