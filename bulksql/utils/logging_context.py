"""Context-aware structured logging.

A ``LoggingContext`` carries fields (connection, table) that are attached to
every message it logs, and times operations through ``operation()``.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from bulksql.utils import logging as logging_module
from bulksql.utils.logging import StructuredLogger


class OperationType(str, Enum):
    """Kinds of operations logged by the writer."""

    TABULATE = "tabulate"
    BULK_LOAD = "bulk_load"
    INSERT = "insert"
    MERGE = "merge"
    JOIN_QUERY = "join_query"
    DDL = "ddl"
    CLEANUP = "cleanup"
    CONNECT = "connect"


@dataclass
class OperationMetrics:
    """Timing and row counts for one operation."""

    start_time: Optional[float] = None
    end_time: Optional[float] = None
    rows_in: Optional[int] = None
    rows_out: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return (self.end_time - self.start_time) * 1000

    @property
    def row_delta(self) -> Optional[int]:
        if self.rows_in is None or self.rows_out is None:
            return None
        return self.rows_out - self.rows_in

    def to_dict(self) -> Dict[str, Any]:
        """Only the fields that were set."""
        result: Dict[str, Any] = {}
        if self.elapsed_ms is not None:
            result["elapsed_ms"] = round(self.elapsed_ms, 2)
        if self.rows_in is not None:
            result["rows_in"] = self.rows_in
        if self.rows_out is not None:
            result["rows_out"] = self.rows_out
        if self.row_delta is not None:
            result["row_delta"] = self.row_delta
        result.update(self.extra)
        return result


class LoggingContext:
    """Structured logger bound to connection/table context."""

    def __init__(
        self,
        logger: Optional[StructuredLogger] = None,
        connection: Optional[str] = None,
        table: Optional[str] = None,
        operation_name: Optional[str] = None,
    ):
        self._logger = logger
        self.connection = connection
        self.table = table
        self.operation_name = operation_name

    @property
    def logger(self) -> StructuredLogger:
        if self._logger is not None:
            return self._logger
        return logging_module.logger

    def _base_context(self) -> Dict[str, Any]:
        ctx: Dict[str, Any] = {"timestamp": datetime.now(timezone.utc).isoformat()}
        if self.connection:
            ctx["connection"] = self.connection
        if self.table:
            ctx["table"] = self.table
        if self.operation_name:
            ctx["operation"] = self.operation_name
        return ctx

    def with_context(self, **kwargs) -> "LoggingContext":
        """Return a new context with some fields replaced."""
        params = {
            "logger": self._logger,
            "connection": self.connection,
            "table": self.table,
            "operation_name": self.operation_name,
        }
        params.update(kwargs)
        return LoggingContext(**params)

    def __enter__(self) -> "LoggingContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_val is not None:
            self.error(
                f"Exception in context: {exc_val}",
                error_type=exc_type.__name__,
            )
        return False

    def _log(self, level: str, message: str, **kwargs) -> None:
        context = self._base_context()
        context.pop("timestamp", None)
        context.update(kwargs)
        getattr(self.logger, level)(message, **context)

    def info(self, message: str, **kwargs) -> None:
        self._log("info", message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log("warning", message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log("error", message, **kwargs)

    def debug(self, message: str, **kwargs) -> None:
        self._log("debug", message, **kwargs)

    def log_operation_start(self, op_type: OperationType, description: str, **kwargs) -> OperationMetrics:
        metrics = OperationMetrics(start_time=time.time())
        self.debug(f"Starting {op_type.value}: {description}", **kwargs)
        return metrics

    def log_operation_end(
        self, op_type: OperationType, description: str, metrics: OperationMetrics, **kwargs
    ) -> None:
        metrics.end_time = time.time()
        self.info(f"Completed {op_type.value}: {description}", **metrics.to_dict(), **kwargs)

    @contextmanager
    def operation(self, op_type: OperationType, description: str, **kwargs) -> Iterator[OperationMetrics]:
        """Time an operation, logging start, completion or failure."""
        metrics = self.log_operation_start(op_type, description, **kwargs)
        try:
            yield metrics
        except Exception as e:
            metrics.end_time = time.time()
            self.error(
                f"Failed {op_type.value}: {description}",
                error_type=type(e).__name__,
                error_message=str(e),
                **metrics.to_dict(),
                **kwargs,
            )
            raise
        self.log_operation_end(op_type, description, metrics, **kwargs)

    def log_connection(self, connection_type: str, connection_name: str, action: str = "connect", **kwargs) -> None:
        self.debug(
            f"Connection {action}: {connection_name}",
            connection_type=connection_type,
            **kwargs,
        )

    def log_sql(self, sql: str, **kwargs) -> None:
        # First line only
        first_line = sql.strip().splitlines()[0] if sql.strip() else ""
        self.debug("Executing SQL", sql=first_line[:200], **kwargs)


_global_context: Optional[LoggingContext] = None


def get_logging_context() -> LoggingContext:
    """Return the process-wide logging context, creating it on first use."""
    global _global_context
    if _global_context is None:
        _global_context = LoggingContext()
    return _global_context


def set_logging_context(ctx: LoggingContext) -> None:
    global _global_context
    _global_context = ctx


def create_logging_context(
    connection: Optional[str] = None,
    table: Optional[str] = None,
    logger: Optional[StructuredLogger] = None,
) -> LoggingContext:
    return LoggingContext(logger=logger, connection=connection, table=table)
