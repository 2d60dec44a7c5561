"""Custom exceptions for bulksql."""

from typing import Any, List, Optional


class BulkSqlException(Exception):
    """Base exception for all bulksql errors."""

    pass


class ConfigValidationError(BulkSqlException):
    """Configuration validation failed."""

    def __init__(self, message: str, file: Optional[str] = None):
        self.message = message
        self.file = file
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        parts = ["Configuration validation error"]
        if self.file:
            parts.append(f"\n  File: {self.file}")
        parts.append(f"\n  Error: {self.message}")
        return "".join(parts)


class ConnectionError(BulkSqlException):
    """Connection failed or invalid."""

    def __init__(self, connection_name: str, reason: str, suggestions: Optional[List[str]] = None):
        self.connection_name = connection_name
        self.reason = reason
        self.suggestions = suggestions or []
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        """Format connection error with suggestions."""
        parts = [
            f"✗ Connection failed: {self.connection_name}",
            f"\n  Reason: {self.reason}",
        ]

        if self.suggestions:
            parts.append("\n\n  Suggestions:")
            for i, suggestion in enumerate(self.suggestions, 1):
                parts.append(f"\n    {i}. {suggestion}")

        return "".join(parts)


class UnmappedTypeError(BulkSqlException):
    """A primitive type has no column type in the type mapping."""

    def __init__(self, primitive_type: str, available: Optional[List[str]] = None):
        self.primitive_type = primitive_type
        self.available = sorted(available or [])
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        parts = [f"✗ No column type mapped for primitive type '{self.primitive_type}'"]
        if self.available:
            parts.append(f"\n  Mapped types: {', '.join(self.available)}")
        parts.append("\n  Add an entry via BulkWriterOptions.type_overrides")
        return "".join(parts)


class UnreadableFieldError(BulkSqlException):
    """Declared field could not be read from a record."""

    def __init__(self, record_type: Any, field_name: str, reason: Optional[str] = None):
        self.record_type = record_type
        self.field_name = field_name
        self.reason = reason
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        type_name = getattr(self.record_type, "__name__", str(self.record_type))
        parts = [f"✗ Field '{self.field_name}' is not readable on {type_name}"]
        if self.reason:
            parts.append(f"\n  Reason: {self.reason}")
        return "".join(parts)


class TransferError(BulkSqlException):
    """Bulk transfer into a table was rejected by the store."""

    def __init__(
        self,
        destination_table: str,
        row_count: int,
        original_error: Optional[Exception] = None,
    ):
        self.destination_table = destination_table
        self.row_count = row_count
        self.original_error = original_error
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        parts = [
            f"✗ Bulk transfer into {self.destination_table} failed",
            f"\n  Rows: {self.row_count}",
        ]
        if self.original_error is not None:
            parts.append(f"\n  Type: {type(self.original_error).__name__}")
            parts.append(f"\n  Error: {self.original_error}")
        return "".join(parts)


class StagingOperationError(BulkSqlException):
    """A step of the staging table sequence failed."""

    def __init__(
        self,
        table_name: str,
        operation: str,
        original_error: Optional[Exception] = None,
    ):
        self.table_name = table_name
        self.operation = operation
        self.original_error = original_error
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        parts = [f"✗ Unable to {self.operation} {self.table_name}"]
        if self.original_error is not None:
            parts.append(f"\n  Type: {type(self.original_error).__name__}")
            parts.append(f"\n  Error: {self.original_error}")
        return "".join(parts)


class MissingTableNameError(BulkSqlException):
    """No destination table could be resolved."""

    def __init__(self, record_type: Any = None):
        self.record_type = record_type
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        if self.record_type is None:
            return "✗ The table name was not found: pass table_name explicitly"
        type_name = getattr(self.record_type, "__name__", str(self.record_type))
        return (
            f"✗ The table name was not found for {type_name}"
            "\n  Pass table_name or declare one in the record metadata"
        )


class MissingMetadataError(BulkSqlException):
    """Records would produce a buffer with no columns."""

    def __init__(self, record_type: Any = None, table_name: Optional[str] = None):
        self.record_type = record_type
        self.table_name = table_name
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        type_name = getattr(self.record_type, "__name__", None) or "records"
        target = f" for {self.table_name}" if self.table_name else ""
        return (
            f"✗ No persisted fields declared for {type_name}{target}"
            "\n  Register the record type (MetadataRegistry.register or @persisted)"
            " or pass record_type for mapping records"
        )
