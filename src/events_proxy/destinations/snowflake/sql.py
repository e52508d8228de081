"""Snowflake statement builders and resource naming conventions."""

from __future__ import annotations

from events_proxy.destinations.schemas import Schema


def pipe_name(pipe_base: str, table: str) -> str:
    return f"{pipe_base}_{table}"


def task_name(task_base: str, table: str) -> str:
    return f"{task_base}_{table}_task"


def column_mappings(schema: Schema, source: str = "$1") -> str:
    """Project JSON keys (lower-cased) onto columns (original casing)."""
    return ", ".join(f"{source}:{c.name.lower()} AS {c.name}" for c in schema)


# -- Discovery ----------------------------------------------------------------


def show_databases() -> str:
    return "SHOW DATABASES"


def show_schemas(database: str) -> str:
    return f"SHOW SCHEMAS IN DATABASE {database}"


def show_like(kind: str, name: str) -> str:
    """``SHOW TABLES|STAGES|PIPES LIKE '<name>'`` (case-insensitive match)."""
    return f"SHOW {kind} LIKE '{name}'"


# -- DDL ----------------------------------------------------------------------


def create_database(database: str) -> str:
    return f"CREATE DATABASE IF NOT EXISTS {database}"


def create_schema(database: str, schema: str) -> str:
    return f"CREATE SCHEMA IF NOT EXISTS {database}.{schema}"


def use_schema(database: str, schema: str) -> str:
    return f"USE SCHEMA {database}.{schema}"


def create_table(table: str, schema: Schema) -> str:
    columns = ", ".join(f"{c.name} {c.type.value}" for c in schema)
    return f"CREATE TABLE IF NOT EXISTS {table} ({columns})"


def create_stage(stage: str) -> str:
    return (
        f"CREATE STAGE IF NOT EXISTS {stage} "
        "FILE_FORMAT = (TYPE = 'JSON') DIRECTORY = (ENABLE = TRUE)"
    )


def grant_on_stage(privilege: str, stage: str, role: str) -> str:
    return f"GRANT {privilege} ON STAGE {stage} TO ROLE {role}"


def create_pipe(pipe: str, table: str, stage: str, schema: Schema) -> str:
    return (
        f"CREATE PIPE IF NOT EXISTS {pipe} AUTO_INGEST = FALSE AS "
        f"COPY INTO {table} "
        f"FROM (SELECT {column_mappings(schema)} FROM @{stage}) "
        "FILE_FORMAT = (TYPE = 'JSON') "
        "ON_ERROR = 'CONTINUE'"
    )


def drop(kind: str, name: str) -> str:
    return f"DROP {kind} IF EXISTS {name}"


# -- DML ----------------------------------------------------------------------


def insert_rows(table: str, schema: Schema) -> str:
    columns = ", ".join(schema.names)
    placeholders = ", ".join("?" for _ in schema)
    return f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"


def insert_flattened_json(table: str, schema: Schema) -> str:
    """Insert from one JSON-array bind, flattened server-side."""
    return (
        f"INSERT INTO {table} "
        f"SELECT {column_mappings(schema, source='value')} "
        "FROM TABLE(FLATTEN(PARSE_JSON(?)))"
    )


def probe_insert(table: str) -> str:
    return f"INSERT INTO {table} (dummy_column) VALUES ('dummy_value')"


def put_file(local_path: str, stage: str) -> str:
    return f"PUT file://{local_path} @{stage}"


def copy_into(table: str, schema: Schema, location: str) -> str:
    return (
        f"COPY INTO {table} "
        f"FROM (SELECT {column_mappings(schema)} FROM {location}) "
        "FILE_FORMAT = (TYPE = 'JSON')"
    )


def remove(location: str) -> str:
    return f"REMOVE {location}"


def list_stage(stage: str, pattern: str = ".*[.]json[.]gz") -> str:
    return f"LIST @{stage} PATTERN = '{pattern}'"
