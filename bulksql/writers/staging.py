"""Staging table protocol for set-based merges and join queries.

Every call runs on a single session:

1. ``SELECT OBJECT_ID('<staging>')`` to see whether the staging table exists
2. ``CREATE TABLE <staging> ( col type, ... )`` when it does not
3. bulk load the buffer into the staging table
4. run the caller's statement with ``; TRUNCATE TABLE <staging>`` or
   ``; DROP TABLE <staging>`` appended, as one batch

The staging name depends only on the destination table. Two concurrent
calls against the same destination share one staging name and are not
serialized; a failed call can leave the staging table behind, which
``drop_staging`` cleans up.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import pandas as pd

from bulksql.config import BulkWriterOptions
from bulksql.exceptions import MissingMetadataError, StagingOperationError
from bulksql.tabular import TabularBuffer
from bulksql.type_mapping import TypeMapper
from bulksql.utils.logging_context import OperationType, get_logging_context
from bulksql.writers.bulk_loader import BulkLoader

STATEMENT_SEPARATOR = "; "


class CleanupAction(str, Enum):
    TRUNCATE = "TRUNCATE TABLE"
    DROP = "DROP TABLE"

    @classmethod
    def for_keep(cls, keep_staging_table: bool) -> "CleanupAction":
        return cls.TRUNCATE if keep_staging_table else cls.DROP


@dataclass(frozen=True)
class StagedStatement:
    """Caller SQL plus the staging cleanup clause sent in the same batch."""

    body: str
    staging_table: str
    cleanup: CleanupAction

    @property
    def cleanup_sql(self) -> str:
        return f"{self.cleanup.value} {self.staging_table}"

    def render(self) -> str:
        return f"{self.body}{STATEMENT_SEPARATOR}{self.cleanup_sql}"

    def __str__(self) -> str:
        return self.render()


def staging_table_name(destination_table: str, prefix: str = "#TmpTable") -> str:
    """'Users' -> '#TmpTableUsers'."""
    return f"{prefix}{destination_table}"


def exists_sql(staging_table: str) -> str:
    return f"SELECT OBJECT_ID('{staging_table}')"


def create_table_sql(staging_table: str, buffer: TabularBuffer, type_mapper: TypeMapper) -> str:
    if not buffer.columns:
        raise MissingMetadataError(table_name=buffer.name or staging_table)
    return f"CREATE TABLE {staging_table} ( {type_mapper.column_definitions(buffer.columns)} )"


def drop_table_sql(staging_table: str) -> str:
    return f"{CleanupAction.DROP.value} {staging_table}"


class StagingMergeCoordinator:
    """
    Runs merge-loads and join queries through a session-scoped staging table.

    Args:
        connection: Connection exposing ``session()`` as a context manager
        type_mapper: Column types for staging DDL
        loader: Bulk loader used for the staging load
        options: Timeouts, batch size and staging prefix
    """

    def __init__(
        self,
        connection: Any,
        type_mapper: Optional[TypeMapper] = None,
        loader: Optional[BulkLoader] = None,
        options: Optional[BulkWriterOptions] = None,
    ):
        self.connection = connection
        self.options = options or BulkWriterOptions()
        self.type_mapper = type_mapper or TypeMapper(
            overrides=self.options.type_overrides,
            string_length=self.options.string_length,
        )
        self.loader = loader or BulkLoader()
        self.ctx = get_logging_context()

    def staging_table_for(self, destination_table: str) -> str:
        return staging_table_name(destination_table, self.options.staging_prefix)

    def _staging_exists(self, session: Any, staging_table: str) -> bool:
        return session.scalar(exists_sql(staging_table)) is not None

    def _stage(self, session: Any, buffer: TabularBuffer, staging_table: str, create_sql: str) -> None:
        ctx = self.ctx.with_context(table=staging_table)
        if not self._staging_exists(session, staging_table):
            ctx.log_sql(create_sql)
            session.execute(create_sql)
            ctx.debug("Created staging table", columns=len(buffer.columns))
        else:
            ctx.debug("Reusing existing staging table")

        self.loader.load(
            session,
            buffer,
            staging_table,
            batch_size=self.options.batch_size,
            timeout=self.options.staging_timeout,
        )

    def merge_load(
        self,
        buffer: TabularBuffer,
        destination_table: str,
        merge_statement: str,
        keep_staging_table: bool = False,
    ) -> int:
        """
        Stage a buffer and run a set-based statement against it.

        Args:
            buffer: Rows to stage
            destination_table: Real table the statement updates
            merge_statement: SQL reading from the staging table
            keep_staging_table: Truncate instead of drop after the statement

        Returns:
            Rows affected by the merge statement

        Raises:
            MissingMetadataError: If the buffer has no columns
            StagingOperationError: If any step fails
        """
        staging_table = self.staging_table_for(destination_table)
        create_sql = create_table_sql(staging_table, buffer, self.type_mapper)
        statement = StagedStatement(
            merge_statement, staging_table, CleanupAction.for_keep(keep_staging_table)
        )
        ctx = self.ctx.with_context(table=destination_table)

        try:
            with ctx.operation(OperationType.MERGE, f"via {staging_table}") as metrics:
                metrics.rows_in = buffer.row_count
                with self.connection.session() as session:
                    self._stage(session, buffer, staging_table, create_sql)
                    ctx.log_sql(statement.render())
                    affected = session.execute(
                        statement.render(), timeout=self.options.statement_timeout
                    )
                metrics.rows_out = affected
            return affected
        except StagingOperationError:
            raise
        except Exception as e:
            raise StagingOperationError(destination_table, "merge load", original_error=e) from e

    def join_query(
        self,
        buffer: TabularBuffer,
        destination_table: str,
        query_sql: str,
        keep_staging_table: bool = False,
    ) -> pd.DataFrame:
        """
        Stage a buffer and return the rows of a query joining against it.

        The cleanup clause runs in the same batch as the query; its result
        set is materialized before the batch finishes.

        Raises:
            MissingMetadataError: If the buffer has no columns
            StagingOperationError: If any step fails
        """
        staging_table = self.staging_table_for(destination_table)
        create_sql = create_table_sql(staging_table, buffer, self.type_mapper)
        statement = StagedStatement(
            query_sql, staging_table, CleanupAction.for_keep(keep_staging_table)
        )
        ctx = self.ctx.with_context(table=destination_table)

        try:
            with ctx.operation(OperationType.JOIN_QUERY, f"via {staging_table}") as metrics:
                metrics.rows_in = buffer.row_count
                with self.connection.session() as session:
                    self._stage(session, buffer, staging_table, create_sql)
                    ctx.log_sql(statement.render())
                    result = session.query(
                        statement.render(), timeout=self.options.statement_timeout
                    )
                metrics.rows_out = len(result)
            return result
        except StagingOperationError:
            raise
        except Exception as e:
            raise StagingOperationError(destination_table, "join query", original_error=e) from e

    def drop_staging(self, destination_table: str) -> None:
        """
        Drop the staging table for a destination if it exists.

        Safe to call repeatedly; used to clean up after an aborted call.

        Raises:
            StagingOperationError: If the check or drop fails
        """
        staging_table = self.staging_table_for(destination_table)
        ctx = self.ctx.with_context(table=destination_table)
        try:
            with ctx.operation(OperationType.CLEANUP, f"drop {staging_table}"):
                with self.connection.session() as session:
                    if self._staging_exists(session, staging_table):
                        session.execute(drop_table_sql(staging_table))
                        ctx.info("Dropped staging table", staging_table=staging_table)
                    else:
                        ctx.debug("No staging table to drop", staging_table=staging_table)
        except StagingOperationError:
            raise
        except Exception as e:
            raise StagingOperationError(
                destination_table, "drop staging table for", original_error=e
            ) from e
