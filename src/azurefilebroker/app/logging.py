"""JSON logging configuration with operation correlation and secret redaction."""

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pythonjsonlogger import jsonlogger

from azurefilebroker.app.config import LoggingConfig, get_settings

# Context variable correlating all logs of one broker operation
operation_id_ctx: ContextVar[str | None] = ContextVar("operation_id", default=None)

REDACTED = "*REDACTED*"
SECRET_FIELDS = frozenset({"password", "client_secret", "access_key", "db_password"})

# Attributes every LogRecord has; anything else came in through extra=
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__)


def get_operation_id() -> str | None:
    """Get current operation_id from context."""
    return operation_id_ctx.get()


def set_operation_id(operation_id: str | None = None) -> str:
    """Set operation_id in context, generating one if not provided.

    Args:
        operation_id: Optional ID to set. If None, generates a new UUID.

    Returns:
        The operation ID that was set.
    """
    oid = operation_id or str(uuid4())
    operation_id_ctx.set(oid)
    return oid


def clear_operation_context() -> None:
    """Clear operation context (call at end of operation)."""
    operation_id_ctx.set(None)


def redact(value: Any) -> Any:
    """Return value with secret-bearing keys masked, recursing into containers."""
    if isinstance(value, dict):
        return {
            k: REDACTED if k in SECRET_FIELDS else redact(v) for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(v) for v in value]
    return value


class RedactFilter(logging.Filter):
    """Mask secrets passed through the 'extra' fields of a log call.

    Mount configs carry the storage account key as 'password'; it must
    never reach the log sink.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in list(record.__dict__.items()):
            if key in _RECORD_ATTRS:
                continue
            if key in SECRET_FIELDS:
                setattr(record, key, REDACTED)
            elif isinstance(value, (dict, list, tuple)):
                setattr(record, key, redact(value))
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with schema version and operation context.

    Adds the following standard fields to all logs:
    - timestamp: ISO 8601 format with timezone
    - level: Log level name
    - logger: Logger name
    - pid: Process ID
    - schema_version: Log schema version (for backwards compatibility)
    - service: Service name
    - operation_id: Broker operation ID (if set in context)
    """

    def __init__(
        self, *args: Any, logging_config: LoggingConfig | None = None, **kwargs: Any
    ) -> None:
        super().__init__(*args, **kwargs)
        config = logging_config or get_settings().logging
        self._schema_version = config.schema_version
        self._service = config.service_name

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(
            record.created, tz=timezone.utc
        ).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["pid"] = record.process

        log_record["schema_version"] = self._schema_version
        log_record["service"] = self._service

        if operation_id := get_operation_id():
            log_record["operation_id"] = operation_id

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging(
    level: int | None = None, logging_config: LoggingConfig | None = None
) -> None:
    """Configure JSON logging for the broker process.

    Args:
        level: Log level. If None, uses the configured level.
        logging_config: Defaults to get_settings().logging
    """
    config = logging_config or get_settings().logging

    if level is None:
        level = getattr(logging, config.level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter(logging_config=config))
    handler.addFilter(RedactFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Azure SDK logs every HTTP request at INFO
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("azure.core.pipeline.policies.http_logging_policy").setLevel(
        logging.WARNING
    )
