"""
Structured logging system with correlation IDs for the vector engine.

This module provides structured logging on top of structlog, with correlation ID
tracking so every log line emitted while serving one store operation can be tied
together.
"""

import logging
import logging.handlers
import uuid
import time
import threading
import contextvars
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from enum import Enum

import structlog


# Context variable for correlation ID
correlation_id_context: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)

# Context variable for request ID
request_id_context: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)

_structlog_lock = threading.Lock()
_structlog_configured = False


class LogLevel(Enum):
    """Log levels for structured logging."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _iso_timestamp(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class CorrelationIdProcessor:
    """Processor to add correlation ID to log records."""

    def __call__(self, logger, method_name, event_dict):
        correlation_id = correlation_id_context.get()
        if correlation_id:
            event_dict["correlation_id"] = correlation_id

        request_id = request_id_context.get()
        if request_id:
            event_dict["request_id"] = request_id

        return event_dict


class TimestampProcessor:
    """Processor to add consistent timestamps."""

    def __call__(self, logger, method_name, event_dict):
        now = time.time()
        event_dict["timestamp"] = now
        event_dict["timestamp_iso"] = _iso_timestamp(now)
        return event_dict


class VectorEngineFormatter:
    """Fill in the fields every vector engine log event carries."""

    def __call__(self, logger, method_name, event_dict):
        event_dict.setdefault("level", method_name)
        event_dict.setdefault("logger", getattr(logger, "name", None))
        event_dict["thread_name"] = threading.current_thread().name
        return event_dict


def _configure_structlog(json_format: bool = False, force: bool = False):
    """Install the structlog processor chain once per process (or again when forced)."""
    global _structlog_configured

    with _structlog_lock:
        if _structlog_configured and not force:
            return

        renderer = (
            structlog.processors.JSONRenderer()
            if json_format
            else structlog.dev.ConsoleRenderer(colors=False)
        )
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                TimestampProcessor(),
                CorrelationIdProcessor(),
                VectorEngineFormatter(),
                renderer,
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=False,
        )
        _structlog_configured = True


class StructuredLogger:
    """
    Structured logger with correlation ID support.

    The component name is bound onto the underlying structlog logger, so loggers for
    different components can coexist.
    """

    def __init__(self, name: str, component: Optional[str] = None):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            component: Component name for logging context
        """
        self.name = name
        self.component = component or name

        _configure_structlog()
        self.logger = structlog.get_logger(name).bind(component=self.component)

    def _log(self, level: LogLevel, message: str, **kwargs):
        getattr(self.logger, level.value)(message, **kwargs)

    def debug(self, message: str, **kwargs):
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, error: Optional[Exception] = None, **kwargs):
        """Log error message with optional exception."""
        if error:
            kwargs.update(
                {
                    "error_type": type(error).__name__,
                    "error_message": str(error),
                }
            )
        self._log(LogLevel.ERROR, message, **kwargs)

    def with_context(self, **context) -> "StructuredLogger":
        """Create a new logger with additional context."""
        new_logger = StructuredLogger(self.name, self.component)
        new_logger.logger = self.logger.bind(**context)
        return new_logger


class CorrelationIdManager:
    """Manager for correlation ID lifecycle."""

    @staticmethod
    def generate_correlation_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def set_correlation_id(correlation_id: Optional[str]):
        correlation_id_context.set(correlation_id)

    @staticmethod
    def get_correlation_id() -> Optional[str]:
        return correlation_id_context.get()

    @staticmethod
    def set_request_id(request_id: Optional[str]):
        request_id_context.set(request_id)

    @staticmethod
    def get_request_id() -> Optional[str]:
        return request_id_context.get()

    @staticmethod
    def clear_context():
        """Clear all context variables."""
        correlation_id_context.set(None)
        request_id_context.set(None)


class LoggingContext:
    """
    Context manager that scopes a correlation ID.

    An existing correlation ID is reused, so nested operations (a CLI command running
    several store calls) share one ID.
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = (
            correlation_id
            or CorrelationIdManager.get_correlation_id()
            or CorrelationIdManager.generate_correlation_id()
        )
        self._token = None

    def __enter__(self):
        self._token = correlation_id_context.set(self.correlation_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        correlation_id_context.reset(self._token)


class OperationLogger:
    """Logger for tracking operations with timing."""

    def __init__(
        self,
        logger: StructuredLogger,
        operation: str,
        level: LogLevel = LogLevel.DEBUG,
        **context,
    ):
        """
        Initialize operation logger.

        Args:
            logger: Structured logger instance
            operation: Operation name
            level: Level used for start and success events (failures always log as errors)
            **context: Fields attached to every event of this operation
        """
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[float] = None
        self.context: Dict[str, Any] = dict(context)

    def start(self, **context):
        self.start_time = time.perf_counter()
        self.context.update(context)
        self.logger._log(
            self.level,
            f"Starting operation: {self.operation}",
            operation=self.operation,
            operation_status="started",
            **self.context,
        )

    def _duration_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000 if self.start_time else 0.0

    def success(self, **additional_context):
        self.logger._log(
            self.level,
            f"Operation completed: {self.operation}",
            operation=self.operation,
            operation_status="success",
            duration_ms=self._duration_ms(),
            **self.context,
            **additional_context,
        )

    def error(self, error: Exception, **additional_context):
        self.logger.error(
            f"Operation failed: {self.operation}",
            error=error,
            operation=self.operation,
            operation_status="error",
            duration_ms=self._duration_ms(),
            **self.context,
            **additional_context,
        )

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.error(exc_val)
        else:
            self.success()


class JSONFormatter(logging.Formatter):
    """JSON formatter for standard library logging integration."""

    def format(self, record):
        log_entry = {
            "timestamp": record.created,
            "timestamp_iso": _iso_timestamp(record.created),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread_name": record.threadName,
        }

        correlation_id = CorrelationIdManager.get_correlation_id()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def get_logger(name: str, component: Optional[str] = None) -> StructuredLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name
        component: Component name for context

    Returns:
        Configured structured logger
    """
    return StructuredLogger(name, component)


def configure_logging(logging_config=None, log_level: str = "INFO", json_format: bool = False):
    """
    Configure global logging settings.

    Args:
        logging_config: Optional LoggingConfig from the configuration manager; when given,
            its level, format, structured flag and file settings take precedence
        log_level: Minimum log level
        json_format: Whether to use JSON formatting
    """
    fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path = None
    max_file_size = 10 * 1024 * 1024
    backup_count = 5
    enable_console = True

    if logging_config is not None:
        level_value = logging_config.level
        log_level = getattr(level_value, "value", level_value)
        fmt = logging_config.format
        json_format = logging_config.structured
        file_path = logging_config.file_path
        max_file_size = logging_config.max_file_size
        backup_count = logging_config.backup_count
        enable_console = logging_config.enable_console

    level = getattr(logging, str(log_level).upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    formatter = JSONFormatter() if json_format else logging.Formatter(fmt)

    if enable_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if file_path:
        file_handler = logging.handlers.RotatingFileHandler(
            file_path, maxBytes=max_file_size, backupCount=backup_count
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    _configure_structlog(json_format=json_format, force=True)
