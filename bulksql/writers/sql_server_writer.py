"""Record-level bulk writer for SQL Server.

Entry points:
- ``insert``: bulk load records straight into their table
- ``update_data``: stage records and run an UPDATE/MERGE against them
- ``bulk_select``: stage records and return the rows of a join query
- ``drop_temp_table_for``: remove a staging table left by an aborted call
"""

from typing import Any, Iterable, List, Optional, Sequence, Union

import pandas as pd

from bulksql.config import BulkWriterOptions
from bulksql.exceptions import MissingMetadataError, MissingTableNameError
from bulksql.metadata import FieldDescriptor, MetadataProvider, default_registry
from bulksql.tabular import RecordTabulator, TabularBuffer
from bulksql.type_mapping import TypeMapper
from bulksql.utils.logging_context import OperationType, get_logging_context
from bulksql.writers.bulk_loader import BulkLoader
from bulksql.writers.staging import StagingMergeCoordinator


class SqlServerBulkWriter:
    """
    Moves collections of records into SQL Server without row-by-row round trips.

    Supports:
    - Direct bulk insert into the record type's table
    - Merge-load through a ``#TmpTable<table>`` staging table
    - Join queries against staged records
    """

    def __init__(
        self,
        connection: Any,
        metadata: Optional[MetadataProvider] = None,
        options: Optional[BulkWriterOptions] = None,
        type_mapper: Optional[TypeMapper] = None,
    ):
        """
        Initialize the writer.

        Args:
            connection: Connection exposing ``session()`` (e.g. AzureSQL)
            metadata: Table names and persisted fields per record type;
                defaults to the registry filled by ``@persisted``
            options: Timeouts, batch size and staging settings
            type_mapper: Column types for staging DDL
        """
        self.connection = connection
        self.metadata = metadata or default_registry
        self.options = options or BulkWriterOptions()
        self.type_mapper = type_mapper or TypeMapper(
            overrides=self.options.type_overrides,
            string_length=self.options.string_length,
        )
        self.tabulator = RecordTabulator()
        self.loader = BulkLoader()
        self.staging = StagingMergeCoordinator(
            connection,
            type_mapper=self.type_mapper,
            loader=self.loader,
            options=self.options,
        )
        self.ctx = get_logging_context()

    def resolve_table_name(self, record_type: Optional[type], table_name: Optional[str] = None) -> str:
        """
        Explicit name first, then the name declared for the record type.

        Raises:
            MissingTableNameError: If neither yields a non-blank name
        """
        if table_name is None and record_type is not None:
            table_name = self.metadata.table_name_for(record_type)

        if table_name is None or not table_name.strip():
            raise MissingTableNameError(record_type)
        return table_name

    def fields_for(self, record_type: Optional[type]) -> List[FieldDescriptor]:
        if record_type is None:
            return []
        return self.metadata.persisted_fields_for(record_type)

    def to_buffer(
        self,
        records: Sequence[Any],
        table_name: Optional[str] = None,
        record_type: Optional[type] = None,
        require_columns: bool = False,
    ) -> TabularBuffer:
        """
        Resolve the destination for the records and tabulate them.

        Raises:
            MissingTableNameError: If no destination can be resolved
            MissingMetadataError: If the record type declares no persisted
                columns and there are records (or ``require_columns`` is set)
        """
        if records is None:
            raise ValueError("records must not be None")
        records = list(records)
        if record_type is None and records:
            record_type = type(records[0])

        table_name = self.resolve_table_name(record_type, table_name)
        columns = self.tabulator.columns_for(self.fields_for(record_type))
        if not columns and (records or require_columns):
            raise MissingMetadataError(record_type, table_name)

        ctx = self.ctx.with_context(table=table_name)
        with ctx.operation(OperationType.TABULATE, f"{len(records)} records") as metrics:
            buffer = self.tabulator.tabulate(records, columns, name=table_name)
            metrics.rows_out = buffer.row_count
        return buffer

    def insert(
        self,
        records: Iterable[Any],
        table_name: Optional[str] = None,
        record_type: Optional[type] = None,
    ) -> int:
        """
        Bulk insert records directly into their destination table.

        Args:
            records: Records to insert
            table_name: Destination override; defaults to the declared table
            record_type: Record type for metadata lookup; defaults to the
                type of the first record

        Returns:
            Rows inserted

        Raises:
            MissingTableNameError: If no destination can be resolved
            MissingMetadataError: If the record type declares no columns
            UnreadableFieldError: If a record lacks a declared field
            TransferError: If the store rejects the rows
        """
        buffer = self.to_buffer(records, table_name, record_type)
        if buffer.row_count == 0:
            self.ctx.info("No records to insert", table=buffer.name)
            return 0

        ctx = self.ctx.with_context(table=buffer.name)
        with ctx.operation(OperationType.INSERT, f"{buffer.row_count} rows") as metrics:
            metrics.rows_in = buffer.row_count
            with self.connection.session() as session:
                inserted = self.loader.load(
                    session,
                    buffer,
                    buffer.name,
                    batch_size=self.options.batch_size,
                    timeout=self.options.direct_timeout,
                )
            metrics.rows_out = inserted
        return inserted

    def update_data(
        self,
        records: Iterable[Any],
        sql_update: str,
        table_name: Optional[str] = None,
        keep_table: bool = False,
        record_type: Optional[type] = None,
    ) -> int:
        """
        Stage records and run ``sql_update`` against ``#TmpTable<table>``.

        Returns:
            Rows affected by ``sql_update``

        Raises:
            MissingTableNameError: If no destination can be resolved
            StagingOperationError: If the staging sequence fails
        """
        buffer = self.to_buffer(records, table_name, record_type, require_columns=True)
        return self.staging.merge_load(buffer, buffer.name, sql_update, keep_staging_table=keep_table)

    def bulk_select(
        self,
        records: Union[TabularBuffer, Iterable[Any]],
        join_select: str,
        table_name: Optional[str] = None,
        keep_table: bool = False,
        record_type: Optional[type] = None,
    ) -> pd.DataFrame:
        """
        Stage records (or a prepared buffer) and return the rows of ``join_select``.

        Raises:
            MissingTableNameError: If no destination can be resolved
            StagingOperationError: If the staging sequence fails
        """
        if isinstance(records, TabularBuffer):
            buffer = records
            table_name = self.resolve_table_name(record_type, table_name or buffer.name)
        else:
            buffer = self.to_buffer(records, table_name, record_type, require_columns=True)
            table_name = buffer.name
        return self.staging.join_query(buffer, table_name, join_select, keep_staging_table=keep_table)

    def drop_temp_table_for(self, table_name: str) -> None:
        """Drop ``#TmpTable<table_name>`` if it exists."""
        self.staging.drop_staging(table_name)
