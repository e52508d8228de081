"""Shared fixtures for destination unit tests."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from typing import Any

import pytest
from snowflake.connector.errors import ProgrammingError

from events_proxy.config.models import (
    DestinationConfig,
    DestinationType,
    RetryConfig,
    SnowflakeConfig,
)
from events_proxy.destinations.snowflake.client import QueryResult

_CREATE = re.compile(r"^CREATE (DATABASE|SCHEMA|TABLE|STAGE|PIPE) IF NOT EXISTS (\S+)")
_SHOW_LIKE = re.compile(r"^SHOW (\w+) LIKE '([^']+)'")


def unknown_column_error() -> ProgrammingError:
    return ProgrammingError(
        msg="invalid identifier 'DUMMY_COLUMN'", errno=904, sqlstate="42000"
    )


class ScriptedClient:
    """In-memory stand-in for SnowflakeClient.

    CREATE ... IF NOT EXISTS registers the object name so later SHOW
    statements see it. ``on(prefix, *outcomes)`` overrides any statement
    starting with *prefix*; outcomes are consumed in order and the last
    one repeats. An outcome may be a QueryResult, an exception (raised)
    or a callable taking the SQL text.
    """

    def __init__(self) -> None:
        self.statements: list[str] = []
        self.binds: list[Any] = []
        self.existing: set[str] = set()
        self.connect_calls = 0
        self.connect_error: Exception | None = None
        self.ping_ok = True
        self.closed = False
        self.probe_outcomes: list[Any] = [unknown_column_error()]
        self._rules: list[tuple[str, list[Any]]] = []
        self.on("SELECT CURRENT_USER", QueryResult(rows=[{"NAME": "LOADER"}]))
        self.on(
            "SHOW USERS",
            QueryResult(rows=[{"name": "LOADER", "email": "loader@example.com"}]),
        )

    def on(self, prefix: str, *outcomes: Any) -> None:
        self._rules.insert(0, (prefix, list(outcomes)))

    def statements_like(self, prefix: str) -> list[str]:
        return [s for s in self.statements if s.startswith(prefix)]

    @staticmethod
    def _next(outcomes: list[Any], sql: str) -> Any:
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if callable(outcome) and not isinstance(outcome, BaseException):
            outcome = outcome(sql)
        return outcome

    def _match(self, sql: str) -> Any:
        if "(dummy_column)" in sql:
            return self._next(self.probe_outcomes, sql)
        for prefix, outcomes in self._rules:
            if sql.startswith(prefix):
                return self._next(outcomes, sql)
        return None

    def _outcome(self, sql: str) -> Any:
        outcome = self._match(sql)
        return self._simulate(sql) if outcome is None else outcome

    def _simulate(self, sql: str) -> QueryResult:
        created = _CREATE.match(sql)
        if created:
            self.existing.add(created.group(2).split(".")[-1].upper())
            return QueryResult(rowcount=1)
        shown = _SHOW_LIKE.match(sql)
        if shown:
            name = shown.group(2).upper()
            rows = [{"name": name}] if name in self.existing else []
            return QueryResult(rows=rows)
        if sql.startswith("SHOW "):
            return QueryResult(rows=[{"name": n} for n in sorted(self.existing)])
        return QueryResult()

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error

    async def ping(self) -> bool:
        return self.ping_ok

    async def close(self) -> None:
        self.closed = True

    async def execute(self, sql: str, params: Sequence[Any] | None = None) -> QueryResult:
        self.statements.append(sql)
        self.binds.append(params)
        outcome = self._outcome(sql)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome  # type: ignore[no-any-return]

    async def execute_many(self, sql: str, rows: Sequence[Sequence[Any]]) -> QueryResult:
        self.statements.append(sql)
        self.binds.append(rows)
        outcome = self._match(sql)
        if outcome is None:
            return QueryResult(rowcount=len(rows))
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome  # type: ignore[no-any-return]

    async def execute_quietly(
        self, sql: str, params: Sequence[Any] | None = None
    ) -> QueryResult | Exception:
        try:
            return await self.execute(sql, params)
        except Exception as exc:
            return exc


@pytest.fixture
def sf_client() -> ScriptedClient:
    return ScriptedClient()


@pytest.fixture
def make_sf_destination() -> Callable[..., DestinationConfig]:
    def _make(**overrides: Any) -> DestinationConfig:
        fields: dict[str, Any] = {
            "account": "acme-xy12345",
            "user": "loader",
            "password": "s3cret",
            "database": "ANALYTICS",
            "schema_name": "PROXY",
            "warehouse": "COMPUTE_WH",
            "role": "LOADER_ROLE",
            "readiness_attempts": 3,
            "readiness_min_delay_seconds": 0,
            "readiness_max_delay_seconds": 0,
        }
        retry = overrides.pop("retry", None) or RetryConfig(
            max_attempts=3, initial_wait_seconds=0.01, max_wait_seconds=0.1
        )
        fields.update(overrides)
        return DestinationConfig(
            destination_id="snowflake",
            destination_type=DestinationType.SNOWFLAKE,
            retry=retry,
            snowflake=SnowflakeConfig(**fields),
        )

    return _make
