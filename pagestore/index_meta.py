"""Description of an index: its name and the fields it covers."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

INDEX_NAME = "index_name"
INDEX_FIELD_NAMES = "index_field_names"
FIELD_NAME = "field_name"


class IndexMetaError(ValueError):
    """Raised for an invalid index description."""


class _FieldLookup(Protocol):
    def field(self, name: str) -> Any: ...


def _field_name(field: Any) -> str:
    return field if isinstance(field, str) else field.name


class IndexMeta:
    """Name of an index and the names of its fields, in order."""

    def __init__(self, name: str, fields: Iterable[Any]) -> None:
        if name is None or not isinstance(name, str) or not name.strip():
            raise IndexMetaError("index name cannot be blank")
        self.name = name
        self.fields: list[str] = [_field_name(field) for field in fields]

    def field(self) -> str:
        """Name of the first indexed field."""
        return self.fields[0]

    def to_json(self) -> dict[str, Any]:
        return {
            INDEX_NAME: self.name,
            INDEX_FIELD_NAMES: [{FIELD_NAME: field} for field in self.fields],
        }

    @classmethod
    def from_json(cls, table: _FieldLookup, data: Mapping[str, Any]) -> "IndexMeta":
        """Build an index description, resolving field names through ``table``."""
        if not isinstance(data, Mapping):
            raise IndexMetaError(f"index meta is not an object: {data!r}")
        name = data.get(INDEX_NAME)
        field_values = data.get(INDEX_FIELD_NAMES)
        if not isinstance(name, str):
            raise IndexMetaError(f"index name is not a string: {name!r}")
        if not isinstance(field_values, list):
            raise IndexMetaError(f"invalid index field names: {field_values!r}")

        fields = []
        for item in field_values:
            field_name = item.get(FIELD_NAME) if isinstance(item, Mapping) else None
            if not isinstance(field_name, str):
                raise IndexMetaError(f"field name is not a string: {item!r}")
            field = table.field(field_name)
            if field is None:
                raise IndexMetaError(
                    f"index {name!r} refers to unknown field {field_name!r}"
                )
            fields.append(field)
        return cls(name, fields)

    def desc(self) -> str:
        return f"index name={self.name}, field={self.field()}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IndexMeta):
            return NotImplemented
        return self.name == other.name and self.fields == other.fields

    def __repr__(self) -> str:
        return f"IndexMeta(name={self.name!r}, fields={self.fields!r})"