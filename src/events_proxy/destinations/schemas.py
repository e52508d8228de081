"""Schema registry: record kind -> ordered, typed warehouse columns."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum

from events_proxy.errors import ConfigurationError
from events_proxy.models import RecordKind, parse_record_kind


class ColumnType(StrEnum):
    """Warehouse type vocabulary. VARIANT marks semi-structured columns."""

    VARCHAR = "VARCHAR"
    NUMBER = "NUMBER"
    FLOAT = "FLOAT"
    BOOLEAN = "BOOLEAN"
    TIMESTAMP = "TIMESTAMP"
    DATE = "DATE"
    VARIANT = "VARIANT"


@dataclass(frozen=True)
class Column:
    name: str
    type: ColumnType = ColumnType.VARCHAR

    @property
    def is_variant(self) -> bool:
        return self.type == ColumnType.VARIANT


@dataclass(frozen=True)
class Schema:
    """Ordered columns; order defines positional binding for row writes."""

    columns: tuple[Column, ...]

    @classmethod
    def of(cls, *columns: tuple[str, ColumnType] | Column) -> Schema:
        cols = tuple(c if isinstance(c, Column) else Column(*c) for c in columns)
        return cls(cols)

    def __post_init__(self) -> None:
        if not self.columns:
            msg = "schema must have at least one column"
            raise ConfigurationError(msg)
        names = [c.name.lower() for c in self.columns]
        if len(set(names)) != len(names):
            msg = f"schema has duplicate column names: {names}"
            raise ConfigurationError(msg)

    def __iter__(self) -> Iterator[Column]:
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.columns)

    @property
    def names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def variant_columns(self) -> list[Column]:
        return [c for c in self.columns if c.is_variant]

    @property
    def has_variant(self) -> bool:
        return any(c.is_variant for c in self.columns)


EVENTS_SCHEMA = Schema.of(
    ("event", ColumnType.VARCHAR),
    ("time", ColumnType.TIMESTAMP),
    ("insert_id", ColumnType.VARCHAR),
    ("distinct_id", ColumnType.VARCHAR),
    ("device_id", ColumnType.VARCHAR),
    ("user_id", ColumnType.VARCHAR),
    ("token", ColumnType.VARCHAR),
    ("properties", ColumnType.VARIANT),
)

USERS_SCHEMA = Schema.of(
    ("distinct_id", ColumnType.VARCHAR),
    ("operation", ColumnType.VARCHAR),
    ("time", ColumnType.TIMESTAMP),
    ("ip", ColumnType.VARCHAR),
    ("token", ColumnType.VARCHAR),
    ("properties", ColumnType.VARIANT),
)

GROUPS_SCHEMA = Schema.of(
    ("group_key", ColumnType.VARCHAR),
    ("group_id", ColumnType.VARCHAR),
    ("operation", ColumnType.VARCHAR),
    ("time", ColumnType.TIMESTAMP),
    ("token", ColumnType.VARCHAR),
    ("properties", ColumnType.VARIANT),
)

# Singular table-type names used in some call sites
_ALIASES = {
    "event": RecordKind.TRACK,
    "user": RecordKind.ENGAGE,
    "group": RecordKind.GROUPS,
}


class SchemaRegistry:
    """Pure lookup from record kind to schema."""

    def __init__(
        self,
        schemas: Mapping[RecordKind, Schema] | None = None,
        *,
        max_variant_columns: int = 3,
    ) -> None:
        self._schemas: dict[RecordKind, Schema] = {
            RecordKind.TRACK: EVENTS_SCHEMA,
            RecordKind.ENGAGE: USERS_SCHEMA,
            RecordKind.GROUPS: GROUPS_SCHEMA,
        }
        if schemas:
            self._schemas.update(schemas)
        for kind, schema in self._schemas.items():
            if len(schema.variant_columns) > max_variant_columns:
                msg = (
                    f"schema for '{kind}' has {len(schema.variant_columns)} VARIANT "
                    f"columns; at most {max_variant_columns} are allowed"
                )
                raise ConfigurationError(msg)

    def schema_for(self, kind: RecordKind | str) -> Schema:
        if isinstance(kind, str) and kind in _ALIASES:
            kind = _ALIASES[kind]
        return self._schemas[parse_record_kind(kind)]
