"""Primitive type to SQL Server column type mapping.

The mapping is built once when a ``TypeMapper`` is constructed and exposed
read-only afterwards. SQL Server has no unsigned integer columns, so unsigned
types widen to a signed type. Both ``datetime`` and ``timespan`` map to
``time``: the date part of a datetime value is lost in staging tables.
"""

import datetime
import re
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from bulksql.exceptions import UnmappedTypeError

DEFAULT_STRING_LENGTH = 4000


@dataclass(frozen=True)
class ColumnType:
    """SQL Server column type with optional length or precision."""

    name: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None

    def to_sql(self) -> str:
        if self.length is not None:
            return f"{self.name}({self.length})"
        if self.precision is not None:
            if self.scale is not None:
                return f"{self.name}({self.precision},{self.scale})"
            return f"{self.name}({self.precision})"
        return self.name

    def __str__(self) -> str:
        return self.to_sql()

    @classmethod
    def parse(cls, text: str) -> "ColumnType":
        """Parse DDL text such as 'nvarchar(4000)' or 'decimal(18,2)'."""
        match = re.fullmatch(r"\s*(\w+)\s*(?:\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\))?\s*", text)
        if not match:
            raise ValueError(f"Invalid column type: '{text}'")
        name, first, second = match.groups()
        if first is None:
            return cls(name=name)
        if second is not None or name.lower() in ("decimal", "numeric"):
            return cls(
                name=name,
                precision=int(first),
                scale=int(second) if second is not None else None,
            )
        return cls(name=name, length=int(first))


def default_type_map(string_length: int = DEFAULT_STRING_LENGTH) -> Dict[str, ColumnType]:
    """Default primitive type table used by the writer."""
    return {
        "boolean": ColumnType("bit"),
        "byte": ColumnType("tinyint"),
        "sbyte": ColumnType("int"),
        "char": ColumnType("char"),
        "datetime": ColumnType("time"),
        "timespan": ColumnType("time"),
        "decimal": ColumnType("decimal"),
        "double": ColumnType("float"),
        "single": ColumnType("real"),
        "int16": ColumnType("smallint"),
        "int32": ColumnType("int"),
        "int64": ColumnType("bigint"),
        "uint16": ColumnType("int"),
        "uint32": ColumnType("int"),
        "uint64": ColumnType("bigint"),
        "string": ColumnType("nvarchar", length=string_length),
    }


# Checked in order: bool subclasses int.
PYTHON_TO_PRIMITIVE = (
    (bool, "boolean"),
    (int, "int64"),
    (float, "double"),
    (Decimal, "decimal"),
    (str, "string"),
    (datetime.datetime, "datetime"),
    (datetime.date, "datetime"),
    (datetime.time, "datetime"),
    (datetime.timedelta, "timespan"),
)


def normalize_primitive(name: str) -> str:
    """Normalize 'System.Int64' / 'INT64' to 'int64'."""
    key = name.strip().lower()
    if key.startswith("system."):
        key = key[len("system.") :]
    return key


def primitive_for_python_type(tp: type) -> str:
    """Return the primitive type name for a Python type.

    Raises:
        UnmappedTypeError: If the type has no primitive equivalent
    """
    for python_type, primitive in PYTHON_TO_PRIMITIVE:
        if isinstance(tp, type) and issubclass(tp, python_type):
            return primitive
    raise UnmappedTypeError(
        getattr(tp, "__name__", str(tp)),
        available=[p.__name__ for p, _ in PYTHON_TO_PRIMITIVE],
    )


class TypeMapper:
    """Immutable lookup from primitive type names to column types."""

    def __init__(
        self,
        overrides: Optional[Mapping[str, str]] = None,
        string_length: int = DEFAULT_STRING_LENGTH,
    ):
        table = default_type_map(string_length)
        for primitive, sql_type in (overrides or {}).items():
            table[normalize_primitive(primitive)] = ColumnType.parse(sql_type)
        self._table = MappingProxyType(table)

    @property
    def mapping(self) -> Mapping[str, ColumnType]:
        return self._table

    def column_type(self, primitive_type: str) -> ColumnType:
        """
        Look up the column type for a primitive type name.

        Args:
            primitive_type: Primitive name, e.g. 'int64' or 'System.Int64'

        Returns:
            ColumnType for DDL generation

        Raises:
            UnmappedTypeError: If no entry exists
        """
        key = normalize_primitive(primitive_type)
        try:
            return self._table[key]
        except KeyError:
            raise UnmappedTypeError(primitive_type, available=list(self._table)) from None

    def column_definitions(self, columns: Iterable) -> str:
        """Render 'name type, name type' for a sequence of field descriptors."""
        return ", ".join(
            f"{col.name} {self.column_type(col.primitive_type).to_sql()}" for col in columns
        )

    def __contains__(self, primitive_type: str) -> bool:
        return normalize_primitive(primitive_type) in self._table
