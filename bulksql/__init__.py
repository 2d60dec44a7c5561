"""bulksql - bulk inserts, staging merges and join queries for SQL Server."""

__version__ = "0.3.0"

from bulksql.exceptions import (
    BulkSqlException,
    MissingMetadataError,
    MissingTableNameError,
    StagingOperationError,
    TransferError,
    UnmappedTypeError,
    UnreadableFieldError,
)
from bulksql.metadata import FieldDescriptor, FieldKind, MetadataRegistry, field, persisted
from bulksql.tabular import RecordTabulator, TabularBuffer
from bulksql.type_mapping import ColumnType, TypeMapper

__all__ = [
    "BulkSqlException",
    "ColumnType",
    "FieldDescriptor",
    "FieldKind",
    "MetadataRegistry",
    "MissingMetadataError",
    "MissingTableNameError",
    "RecordTabulator",
    "StagingOperationError",
    "TabularBuffer",
    "TransferError",
    "TypeMapper",
    "UnmappedTypeError",
    "UnreadableFieldError",
    "field",
    "persisted",
    "__version__",
]


# Importing the package does not import sqlalchemy
def __getattr__(name):
    if name == "SqlServerBulkWriter":
        from bulksql.writers.sql_server_writer import SqlServerBulkWriter

        return SqlServerBulkWriter
    if name == "AzureSQL":
        from bulksql.connections.azure_sql import AzureSQL

        return AzureSQL
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
