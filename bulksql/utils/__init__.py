"""Utilities for bulksql setup and configuration.

Includes:
- Configuration loading with env var substitution
- Structured logging and context-aware logging
"""

from .config_loader import load_yaml_with_env
from .logging import StructuredLogger, configure_logging, logger
from .logging_context import (
    LoggingContext,
    OperationMetrics,
    OperationType,
    create_logging_context,
    get_logging_context,
    set_logging_context,
)

__all__ = [
    "load_yaml_with_env",
    "StructuredLogger",
    "configure_logging",
    "logger",
    "LoggingContext",
    "OperationMetrics",
    "OperationType",
    "create_logging_context",
    "get_logging_context",
    "set_logging_context",
]
