"""Record to tabular conversion."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from bulksql.exceptions import UnreadableFieldError
from bulksql.metadata import FieldDescriptor
from bulksql.utils.logging_context import get_logging_context


@dataclass
class TabularBuffer:
    """Column-typed rows ready for bulk transfer.

    Row values are positional: ``rows[r][i]`` belongs to ``columns[i]``.
    """

    name: Optional[str] = None
    columns: List[FieldDescriptor] = field(default_factory=list)
    rows: List[Tuple[Any, ...]] = field(default_factory=list)

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def add_row(self, values: Sequence[Any]) -> None:
        if len(values) != len(self.columns):
            raise ValueError(
                f"Row has {len(values)} values but buffer has {len(self.columns)} columns"
            )
        self.rows.append(tuple(values))

    def to_pandas(self) -> pd.DataFrame:
        return pd.DataFrame.from_records(self.rows, columns=self.column_names)

    @classmethod
    def from_pandas(
        cls,
        df: pd.DataFrame,
        columns: Sequence[FieldDescriptor],
        name: Optional[str] = None,
    ) -> "TabularBuffer":
        """Build a buffer from a DataFrame, selecting the declared columns in order."""
        names = [c.name for c in columns]
        missing = [n for n in names if n not in df.columns]
        if missing:
            raise UnreadableFieldError(pd.DataFrame, missing[0], reason="column not in DataFrame")
        frame = df[names].astype(object).where(df[names].notna(), None)
        return cls(
            name=name,
            columns=list(columns),
            rows=[tuple(r) for r in frame.itertuples(index=False, name=None)],
        )


_MISSING = object()


def _read_value(record: Any, column: FieldDescriptor) -> Any:
    if isinstance(record, Mapping):
        value = record.get(column.name, _MISSING)
    else:
        value = getattr(record, column.name, _MISSING)

    if value is _MISSING:
        raise UnreadableFieldError(type(record), column.name, reason="field is not gettable")
    return value


class RecordTabulator:
    """Turns records into a TabularBuffer using declared field descriptors."""

    def columns_for(self, fields: Iterable[FieldDescriptor]) -> List[FieldDescriptor]:
        """Persisted primitive fields only, in declared order."""
        return [f for f in fields if f.is_column]

    def tabulate(
        self,
        records: Iterable[Any],
        fields: Iterable[FieldDescriptor],
        name: Optional[str] = None,
    ) -> TabularBuffer:
        """
        Convert records to a TabularBuffer.

        ``None`` in a non-nullable column is kept and logged as a warning;
        the store decides whether to reject it.

        Args:
            records: Objects or mappings exposing the declared fields
            fields: Field descriptors for the record type
            name: Buffer name (usually the destination table)

        Returns:
            TabularBuffer with one row per record. Empty input gives zero
            rows with the columns still populated.

        Raises:
            ValueError: If records is None
            UnreadableFieldError: If a record lacks a declared field
        """
        if records is None:
            raise ValueError("records must not be None")

        buffer = TabularBuffer(name=name, columns=self.columns_for(fields))
        for record in records:
            buffer.rows.append(tuple(_read_value(record, col) for col in buffer.columns))
        self._warn_unexpected_nulls(buffer)
        return buffer

    def _warn_unexpected_nulls(self, buffer: TabularBuffer) -> None:
        ctx = get_logging_context()
        for i, column in enumerate(buffer.columns):
            if column.nullable:
                continue
            nulls = sum(1 for row in buffer.rows if row[i] is None)
            if nulls:
                ctx.warning(
                    "Null values in non-nullable field",
                    buffer=buffer.name,
                    field=column.name,
                    null_count=nulls,
                )
