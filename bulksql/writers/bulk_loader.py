"""Bulk transfer of a TabularBuffer into a SQL Server table."""

from typing import Any, Optional

from bulksql.exceptions import TransferError
from bulksql.tabular import TabularBuffer
from bulksql.utils.logging_context import OperationType, get_logging_context

DEFAULT_TIMEOUT = 200


class BulkLoader:
    """Pushes TabularBuffers through the session's bulk insert path."""

    def __init__(self):
        self.ctx = get_logging_context()

    def load(
        self,
        session: Any,
        buffer: TabularBuffer,
        destination_table: str,
        batch_size: Optional[int] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> int:
        """
        Bulk load a buffer into a table.

        Args:
            session: Open store session exposing ``bulk_insert``
            buffer: Rows to load
            destination_table: Table receiving the rows
            batch_size: Rows per batch; None sends everything in one batch
            timeout: Server-side timeout in seconds

        Returns:
            Rows submitted (equal to the buffer row count)

        Raises:
            TransferError: If the store rejects the transfer. Not retried.
        """
        row_count = buffer.row_count
        if row_count == 0:
            self.ctx.debug("Nothing to bulk load", table=destination_table)
            return 0

        effective_batch = batch_size or row_count
        ctx = self.ctx.with_context(table=destination_table)
        with ctx.operation(
            OperationType.BULK_LOAD,
            f"{row_count} rows",
            batch_size=effective_batch,
        ) as metrics:
            metrics.rows_in = row_count
            try:
                loaded = session.bulk_insert(
                    destination_table,
                    buffer.column_names,
                    buffer.rows,
                    batch_size=effective_batch,
                    timeout=timeout,
                )
            except Exception as e:
                raise TransferError(destination_table, row_count, original_error=e) from e
            metrics.rows_out = loaded
        return loaded
