"""Shape flat records into Snowflake insert statements and binds.

Schemas without a VARIANT column bind one positional row per record.
Schemas with a VARIANT column send the whole batch as a single JSON
array bind that Snowflake parses and flattens server-side; the driver
cannot bind nested structures per row.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from events_proxy.destinations.schemas import ColumnType, Schema
from events_proxy.destinations.snowflake import sql
from events_proxy.models import Record

logger = structlog.get_logger()


@dataclass(frozen=True)
class WirePayload:
    sql: str
    binds: list[Any]
    has_variant: bool
    row_count: int


def is_null_like(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and value.strip() in ("", "null")


def parse_json_container(value: str) -> Any:
    """Parse *value* if it is a JSON object or array, else return it unchanged."""
    text = value.strip()
    if not text or text[0] not in "[{":
        return value
    try:
        parsed = json.loads(text)
    except ValueError:
        return value
    return parsed if isinstance(parsed, (dict, list)) else value


def normalize_value(value: Any, column_type: ColumnType) -> Any:
    """Null-like -> None; JSON strings -> structures, except in VARIANT columns."""
    if is_null_like(value):
        return None
    if column_type == ColumnType.VARIANT:
        return value
    if isinstance(value, str):
        return parse_json_container(value)
    return value


def repair_variant_row(record: Record, schema: Schema) -> Record:
    """Parse stringified VARIANT values and null out null-like fields."""
    row = dict(record)
    for column in schema.variant_columns:
        value = row.get(column.name)
        if isinstance(value, str) and value:
            try:
                row[column.name] = json.loads(value)
            except ValueError as exc:
                logger.warning(
                    "snowflake.variant_parse_failed",
                    column=column.name,
                    error=str(exc),
                )
    for key, value in row.items():
        if value is None or value == "" or value == "null":
            row[key] = None
    return row


def to_bind(value: Any) -> Any:
    """qmark binding has no mapping for containers; send them as JSON text."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


def positional_rows(batch: Sequence[Record], schema: Schema) -> list[list[Any]]:
    return [
        [to_bind(normalize_value(record.get(c.name), c.type)) for c in schema]
        for record in batch
    ]


def shape(batch: Sequence[Record], schema: Schema, table: str) -> WirePayload:
    if schema.has_variant:
        rows = [repair_variant_row(record, schema) for record in batch]
        blob = json.dumps(rows, default=str)
        return WirePayload(
            sql=sql.insert_flattened_json(table, schema),
            binds=[blob],
            has_variant=True,
            row_count=len(rows),
        )
    return WirePayload(
        sql=sql.insert_rows(table, schema),
        binds=positional_rows(batch, schema),
        has_variant=False,
        row_count=len(batch),
    )
