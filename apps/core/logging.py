"""
Structured logging helpers.

- JSONFormatter: renders log records as one JSON object per line
- SecurityLogger: structured security events for authorization denials
"""
import json
import logging
import traceback
from django.utils import timezone
import sentry_sdk


# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_RECORD_ATTRS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs', 'message',
    'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
    'taskName',
})


class JSONFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging.

    Extra fields passed via ``logger.info(..., extra={...})`` are copied
    into the payload; values that are not JSON serializable are rendered
    with ``str()``.
    """

    def format(self, record):
        log_data = {
            'timestamp': timezone.now().isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_ATTRS or key.startswith('_'):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class SecurityLogger:
    """
    Centralized logging for authorization security events.

    All events go to the ``security`` logger with structured context.
    Critical events (cross-tenant access attempts) are also sent to Sentry
    for alerting; without a configured DSN that call is a no-op.
    """

    CRITICAL_EVENTS = {
        'cross_tenant_access_denied',
    }

    @staticmethod
    def log_event(event_type: str, level: str = 'warning', **context):
        """
        Log a security event with structured data.

        Args:
            event_type: Type of security event (e.g., 'permission_denied')
            level: Log level ('info', 'warning', 'error', 'critical')
            **context: Additional context (principal_id, business_id, ...)
        """
        logger = logging.getLogger('security')

        log_data = {
            'event_type': event_type,
            'timestamp': timezone.now().isoformat(),
        }
        log_data.update(context)

        log_method = getattr(logger, level, logger.warning)
        log_method(f"Security event: {event_type}", extra=log_data)

        if event_type in SecurityLogger.CRITICAL_EVENTS:
            sentry_sdk.capture_message(
                f"Critical security event: {event_type}",
                level='error',
            )

    @staticmethod
    def log_permission_denied(principal_id, permission: str, business_id=None):
        """Log an ordinary permission denial."""
        SecurityLogger.log_event(
            'permission_denied',
            level='info',
            principal_id=str(principal_id),
            permission=permission,
            target_business_id=business_id,
        )

    @staticmethod
    def log_out_of_scope(principal_id, permission: str, principal_business_id, target_business_id):
        """
        Log a request against a business outside the principal's scope.

        This is kept distinct from an ordinary denial: the principal may
        well hold the permission name, but not for this tenant.
        """
        SecurityLogger.log_event(
            'cross_tenant_access_denied',
            level='warning',
            principal_id=str(principal_id),
            permission=permission,
            principal_business_id=principal_business_id,
            target_business_id=target_business_id,
        )

    @staticmethod
    def log_inactive_principal(principal_id, permission: str):
        """Log an authorization attempt by a deactivated principal."""
        SecurityLogger.log_event(
            'inactive_principal',
            level='warning',
            principal_id=str(principal_id),
            permission=permission,
        )
