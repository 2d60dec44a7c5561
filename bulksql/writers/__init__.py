"""Writers that move tabular data into SQL Server."""

from bulksql.writers.bulk_loader import BulkLoader
from bulksql.writers.sql_server_writer import SqlServerBulkWriter
from bulksql.writers.staging import (
    CleanupAction,
    StagedStatement,
    StagingMergeCoordinator,
    staging_table_name,
)

__all__ = [
    "BulkLoader",
    "CleanupAction",
    "SqlServerBulkWriter",
    "StagedStatement",
    "StagingMergeCoordinator",
    "staging_table_name",
]
