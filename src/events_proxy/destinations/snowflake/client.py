"""Async wrapper around the blocking Snowflake connector."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import snowflake.connector
import structlog
from snowflake.connector import DictCursor
from snowflake.connector.errors import Error as SnowflakeError

from events_proxy.config.models import SnowflakeConfig
from events_proxy.errors import TableLockedError

logger = structlog.get_logger()

TABLE_LOCKED_ERRNO = 625
UNKNOWN_COLUMN_ERRNO = 904
COMPILATION_SQLSTATE = "42000"


@dataclass
class QueryResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0


def classify_error(exc: SnowflakeError) -> Exception:
    """Map a driver error onto the proxy taxonomy where it has a meaning."""
    message = exc.msg or str(exc)
    if exc.errno == TABLE_LOCKED_ERRNO and "has locked table" in message:
        return TableLockedError(message)
    return exc


class SnowflakeClient:
    """One shared connection; statements run in the default thread executor.

    The driver serializes statements on the connection, so callers issue
    concurrent statements without extra locking.
    """

    def __init__(self, config: SnowflakeConfig) -> None:
        self._config = config
        self._conn: Any = None

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def _connect_kwargs(self) -> dict[str, Any]:
        cfg = self._config
        kwargs: dict[str, Any] = {
            "account": cfg.account,
            "user": cfg.user,
            "password": cfg.password.get_secret_value() if cfg.password else None,
            "database": cfg.database,
            "schema": cfg.schema_name,
            "warehouse": cfg.warehouse,
            "role": cfg.role,
            "paramstyle": "qmark",
            "client_session_keep_alive": True,
        }
        if cfg.access_url:
            kwargs["host"] = urlparse(cfg.access_url).hostname or cfg.access_url
        return kwargs

    async def connect(self) -> None:
        loop = asyncio.get_running_loop()
        kwargs = self._connect_kwargs()
        self._conn = await loop.run_in_executor(
            None, lambda: snowflake.connector.connect(**kwargs)
        )
        logger.info(
            "snowflake.connected",
            account=self._config.account,
            database=self._config.database,
        )

    def _run_sync(self, sql: str, params: Any, many: bool) -> QueryResult:
        if self._conn is None:
            msg = "SnowflakeClient not connected; call connect() first"
            raise RuntimeError(msg)
        cur = self._conn.cursor(DictCursor)
        try:
            if many:
                cur.executemany(sql, params)
                rows: list[dict[str, Any]] = []
            else:
                cur.execute(sql, params)
                rows = list(cur.fetchall()) if cur.description else []
            return QueryResult(rows=rows, rowcount=cur.rowcount or 0)
        except SnowflakeError as exc:
            classified = classify_error(exc)
            if classified is exc:
                raise
            raise classified from exc
        finally:
            cur.close()

    async def execute(
        self, sql: str, params: Sequence[Any] | None = None
    ) -> QueryResult:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._run_sync, sql, params, False)
        except SnowflakeError as exc:
            logger.error("snowflake.statement_failed", error=str(exc), sql=sql.strip())
            raise

    async def execute_many(
        self, sql: str, rows: Sequence[Sequence[Any]]
    ) -> QueryResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._run_sync, sql, rows, True)

    async def execute_quietly(
        self, sql: str, params: Sequence[Any] | None = None
    ) -> QueryResult | Exception:
        """Run a statement, returning the error instead of raising it."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._run_sync, sql, params, False)
        except (SnowflakeError, TableLockedError) as exc:
            return exc

    async def ping(self) -> bool:
        try:
            result = await self.execute("SELECT 1 AS ok")
        except SnowflakeError:
            return False
        return bool(result.rows)

    async def close(self) -> None:
        if self._conn is None:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._conn.close)
        self._conn = None
        logger.info("snowflake.disconnected")
