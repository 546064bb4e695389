"""
Record field lookup.

The bridge is triggered by structured input records whose shape is known
from their field definitions. Templates only need two questions answered
about a record: is a name one of its fields, and what is that field's value.
:class:`FieldLookup` is that contract; :class:`MappingRecord` is the
in-process implementation used by the CLI and the tests.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class FieldLookup(Protocol):
    """Read-only access to the triggering record."""

    def index_of(self, name: str) -> int:
        """Schema index of ``name``, or -1 when the schema has no such field."""
        ...

    def get_value(self, name: str) -> Any | None:
        """Value of ``name`` in this record, ``None`` when absent."""
        ...


@dataclass(frozen=True)
class MappingRecord:
    """
    A record backed by an ordered tuple of field names and a value mapping.

    Field definitions and values are separate so a record can declare a
    field it has no value for; templates then substitute an empty string.
    """

    field_names: tuple[str, ...]
    values: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], field_names: Iterable[str] | None = None) -> MappingRecord:
        """Build a record whose schema is ``field_names`` (default: the keys of ``data``)."""
        names = tuple(field_names) if field_names is not None else tuple(data.keys())
        return cls(field_names=names, values=dict(data))

    def index_of(self, name: str) -> int:
        try:
            return self.field_names.index(name)
        except ValueError:
            return -1

    def get_value(self, name: str) -> Any | None:
        return self.values.get(name)
