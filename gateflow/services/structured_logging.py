"""
Structured JSON logging for the GateFlow payment service.

Provides structured logging with:
- JSON format output when enabled
- Request context integration (request_id, method, path)
- Consistent log structure for webhook ingestion and outbound delivery

Logs include: timestamp, level, logger, message, request_id, method, path and
any keyword fields passed to the logger (event_id, event_type, error_kind ...).
"""

import json
import logging
import time
from typing import Optional
from datetime import datetime, timezone
from flask import Flask, has_request_context
from gateflow.services.request_context import get_request_context, get_request_id


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def __init__(self, json_enabled: bool = True):
        super().__init__()
        self.json_enabled = json_enabled

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON or plain text."""
        if not self.json_enabled:
            return super().format(record)

        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if has_request_context():
            log_entry.update(get_request_context())

        if hasattr(record, 'extra_fields'):
            log_entry.update(record.extra_fields)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class StructuredLogger:
    """Structured logger with request context integration."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _log_with_context(self, level: int, message: str, exc_info=None, **kwargs):
        extra_fields = kwargs.copy()

        if 'request_id' not in extra_fields and has_request_context():
            extra_fields['request_id'] = get_request_id()

        self.logger.log(level, message, exc_info=exc_info,
                        extra={'extra_fields': extra_fields})

    def debug(self, message: str, **kwargs):
        self._log_with_context(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log_with_context(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log_with_context(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log_with_context(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log an error together with the active exception traceback."""
        self._log_with_context(logging.ERROR, message, exc_info=True, **kwargs)

    # Convenience methods for common log types
    def log_request_end(self, method: str, path: str, status_code: int, duration_ms: float, **kwargs):
        self.info(
            f"Request completed: {method} {path} - {status_code} ({duration_ms}ms)",
            event_type='request_end',
            method=method,
            path=path,
            status_code=status_code,
            duration_ms=duration_ms,
            **kwargs
        )

    def log_webhook_event(self, provider: str, event_id: str, event_type: str,
                          processed: bool, message: str, **kwargs):
        """Log the outcome of one inbound webhook delivery."""
        level = logging.INFO if processed else logging.WARNING
        self._log_with_context(
            level,
            f"[{provider}] {event_type}: {message}",
            event_type='webhook',
            provider=provider,
            webhook_event_id=event_id,
            webhook_event_type=event_type,
            processed=processed,
            **kwargs
        )

    def log_idempotency_event(self, event: str, **kwargs):
        self.info(
            f"Idempotency {event}",
            event_type='idempotency',
            idempotency_event=event,
            **kwargs
        )

    def log_error_event(self, error: str, error_kind: str = 'application', **kwargs):
        """Log an error tagged with its taxonomy kind so operators can alert on it."""
        self.error(
            f"Error: {error}",
            event_type='error',
            error_kind=error_kind,
            error_message=error,
            **kwargs
        )


def get_logger(name: str) -> StructuredLogger:
    """Get structured logger instance."""
    return StructuredLogger(name)


def mask_email(email: Optional[str]) -> Optional[str]:
    """Mask an email for logs: jane@example.com -> j***@example.com."""
    if not email or '@' not in email:
        return email
    local, _, domain = email.partition('@')
    return f"{local[:1]}***@{domain}"


def configure_logging(app: Flask):
    """Configure structured logging for Flask application."""
    json_enabled = bool(app.config.get('GATEFLOW_LOG_JSON', True))
    log_level = str(app.config.get('LOG_LEVEL', 'INFO')).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(StructuredFormatter(json_enabled=json_enabled))
    root_logger.addHandler(console_handler)

    app.logger.setLevel(getattr(logging, log_level, logging.INFO))

    loggers_to_configure = [
        'gateflow.webhooks.stripe',
        'gateflow.dispatcher',
        'gateflow.appliers',
        'gateflow.idempotency',
        'gateflow.notifier',
        'gateflow.outbound_webhooks',
        'gateflow.tracking',
        'gateflow.checkout',
        'gateflow.payments',
        'gateflow.coupons',
        'gateflow.access',
        'gateflow.ledger',
        'gateflow.emailer',
        'gateflow.rate_limit',
        'gateflow.errors',
    ]

    for logger_name in loggers_to_configure:
        logging.getLogger(logger_name).setLevel(getattr(logging, log_level, logging.INFO))

    get_logger('gateflow.config').info(
        "Logging configured",
        json_enabled=json_enabled,
        log_level=log_level,
    )


class LoggingMiddleware:
    """Middleware for automatic request completion logging."""

    SKIP_PATHS = ('/healthz', '/readyz', '/metrics')

    def __init__(self, app: Flask):
        self.app = app
        self.logger = get_logger('gateflow.requests')
        app.after_request(self._after_request)

    def _after_request(self, response):
        from flask import request, g

        if request.path in self.SKIP_PATHS:
            return response

        duration_ms = 0
        if hasattr(g, 'request_start_time'):
            duration_ms = round((time.time() - g.request_start_time) * 1000, 2)

        self.logger.log_request_end(
            method=request.method,
            path=request.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        return response


def init_logging(app: Flask):
    """Initialize structured logging for Flask application."""
    configure_logging(app)
    LoggingMiddleware(app)

    get_logger('gateflow.startup').info(
        "Application starting",
        debug=app.debug,
        testing=app.testing
    )
