"""
Monitoring module for the vector engine.

Structured logging with correlation IDs for store operations.
"""

from .structured_logger import (
    StructuredLogger,
    CorrelationIdManager,
    LoggingContext,
    OperationLogger,
    JSONFormatter,
    get_logger,
    configure_logging,
)

__all__ = [
    'StructuredLogger',
    'CorrelationIdManager',
    'LoggingContext',
    'OperationLogger',
    'JSONFormatter',
    'get_logger',
    'configure_logging',
]
