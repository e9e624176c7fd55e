"""
Logging configuration for instance attestation.

Provides structured JSON logging and an audit logger for attestation
decisions, replay-limit hits and counter cleanup.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line, with the request ID and any audit fields
    merged in.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = get_request_id()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Logger for attestation audit events.

    Every login decision is recorded, accepted or denied, together with
    the failure code that denied it.
    """

    def __init__(self, name: str = "instance_attest.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            "request_id": get_request_id(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def attestation_decision(
        self,
        role: str,
        instance_id: str,
        allowed: bool,
        failure_code: Optional[str] = None,
        count: Optional[int] = None
    ) -> None:
        """Log an attestation decision."""
        level = logging.INFO if allowed else logging.WARNING
        decision = "ALLOW" if allowed else "DENY"
        self._log(
            level,
            "ATTESTATION_DECISION",
            role=role,
            instance_id=instance_id,
            decision=decision,
            failure_code=failure_code,
            count=count,
            message=f"Attestation {decision} for instance {instance_id} on role {role}"
        )

    def auth_limit_exceeded(self, instance_id: str, count: int, limit: int) -> None:
        self._log(
            logging.WARNING,
            "AUTH_LIMIT_EXCEEDED",
            instance_id=instance_id,
            count=count,
            limit=limit,
            message=f"Instance {instance_id} made {count} attempts, limit {limit}"
        )

    def attempts_swept(self, removed: int) -> None:
        self._log(
            logging.INFO,
            "ATTEMPTS_SWEPT",
            removed=removed,
            message=f"{removed} expired auth attempts removed"
        )

    def role_written(self, name: str) -> None:
        self._log(logging.INFO, "ROLE_WRITTEN", role=name, message=f"Role {name} written")

    def role_deleted(self, name: str) -> None:
        self._log(logging.INFO, "ROLE_DELETED", role=name, message=f"Role {name} deleted")

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request ID for the current context, generating one if needed."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    return request_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
