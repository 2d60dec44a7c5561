"""Record metadata: destination table and persisted fields per record type.

Field lists are declared up front, either by registering them on a
``MetadataRegistry`` or with the ``persisted`` class decorator. Nothing is
discovered by inspecting record instances at write time.
"""

import types
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union, get_args, get_origin

from bulksql.type_mapping import normalize_primitive, primitive_for_python_type


class FieldKind(str, Enum):
    """What a declared field holds."""

    PRIMITIVE = "primitive"
    RELATIONSHIP = "relationship"
    COLLECTION = "collection"


@dataclass(frozen=True)
class FieldDescriptor:
    """A declared field on a record type."""

    name: str
    primitive_type: str
    nullable: bool = False
    kind: FieldKind = FieldKind.PRIMITIVE
    persisted: bool = True
    readable: bool = True
    writable: bool = True

    @property
    def is_column(self) -> bool:
        """True if the field is stored as a column."""
        return (
            self.kind == FieldKind.PRIMITIVE
            and self.persisted
            and self.readable
            and self.writable
        )


@dataclass(frozen=True)
class RecordMetadata:
    """Declared metadata for one record type."""

    table_name: Optional[str]
    fields: Tuple[FieldDescriptor, ...]


class MetadataProvider(Protocol):
    """Answers table name and persisted field questions for a record type."""

    def table_name_for(self, record_type: type) -> Optional[str]: ...

    def persisted_fields_for(self, record_type: type) -> List[FieldDescriptor]: ...


FieldSpec = Union[FieldDescriptor, Tuple[str, Any], Tuple[str, Any, bool]]

_UNION_ORIGINS = tuple(o for o in (Union, getattr(types, "UnionType", None)) if o is not None)


def unwrap_optional(type_: Any) -> Tuple[Any, bool]:
    """``Optional[X]`` gives ``(X, True)``; anything else ``(type_, False)``."""
    if get_origin(type_) not in _UNION_ORIGINS:
        return type_, False
    members = [a for a in get_args(type_) if a is not type(None)]
    if len(members) != 1:
        return type_, False
    return members[0], True


def field(
    name: str,
    type_: Union[str, type],
    nullable: bool = False,
    kind: FieldKind = FieldKind.PRIMITIVE,
    persisted: bool = True,
) -> FieldDescriptor:
    """Build a FieldDescriptor from a primitive name or a Python type.

    ``Optional[X]`` declares a nullable field whose column type comes from ``X``.
    """
    type_, optional = unwrap_optional(type_)
    nullable = nullable or optional
    if kind != FieldKind.PRIMITIVE:
        primitive = type_ if isinstance(type_, str) else getattr(type_, "__name__", str(type_))
    elif isinstance(type_, str):
        primitive = normalize_primitive(type_)
    else:
        primitive = primitive_for_python_type(type_)
    return FieldDescriptor(
        name=name,
        primitive_type=primitive,
        nullable=nullable,
        kind=FieldKind(kind),
        persisted=persisted,
    )


def _to_descriptor(spec: FieldSpec) -> FieldDescriptor:
    if isinstance(spec, FieldDescriptor):
        return spec
    if isinstance(spec, tuple) and len(spec) in (2, 3):
        return field(*spec)
    raise TypeError(f"Invalid field declaration: {spec!r}")


class MetadataRegistry:
    """In-memory MetadataProvider keyed by record type."""

    def __init__(self):
        self._records: Dict[type, RecordMetadata] = {}

    def register(
        self,
        record_type: type,
        fields: Sequence[FieldSpec],
        table_name: Optional[str] = None,
    ) -> RecordMetadata:
        """
        Declare the metadata for a record type.

        Args:
            record_type: The record class
            fields: Ordered field declarations (FieldDescriptor or
                (name, type[, nullable]) tuples)
            table_name: Destination table, if the type has one

        Returns:
            The registered RecordMetadata

        Raises:
            ValueError: If a field name is declared twice
        """
        descriptors = tuple(_to_descriptor(f) for f in fields)
        seen = set()
        for desc in descriptors:
            if desc.name in seen:
                raise ValueError(
                    f"Field '{desc.name}' declared twice on {record_type.__name__}"
                )
            seen.add(desc.name)

        metadata = RecordMetadata(table_name=table_name, fields=descriptors)
        self._records[record_type] = metadata
        return metadata

    def metadata_for(self, record_type: type) -> Optional[RecordMetadata]:
        # Subclasses inherit the metadata of the nearest registered base
        for klass in getattr(record_type, "__mro__", (record_type,)):
            if klass in self._records:
                return self._records[klass]
        return None

    def table_name_for(self, record_type: type) -> Optional[str]:
        metadata = self.metadata_for(record_type)
        return metadata.table_name if metadata else None

    def persisted_fields_for(self, record_type: type) -> List[FieldDescriptor]:
        metadata = self.metadata_for(record_type)
        if metadata is None:
            return []
        return [f for f in metadata.fields if f.is_column]

    def __contains__(self, record_type: type) -> bool:
        return self.metadata_for(record_type) is not None


default_registry = MetadataRegistry()


def persisted(
    fields: Sequence[FieldSpec],
    table: Optional[str] = None,
    registry: Optional[MetadataRegistry] = None,
):
    """Class decorator registering record metadata.

    Example:
        >>> @persisted(table="Users", fields=[("id", int), ("name", str)])
        ... class User:
        ...     ...
    """

    def decorator(cls):
        (registry or default_registry).register(cls, fields, table_name=table)
        return cls

    return decorator
