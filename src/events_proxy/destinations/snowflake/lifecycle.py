"""Snowflake resource lifecycle.

Bootstrap order is connection, database and schema, tables, stage, pipes.

Every step is guarded by a readiness flag on the AdapterSession, so
``ensure_ready`` is safe to call on every batch and only re-runs steps
that have not succeeded yet. Creation statements use IF NOT EXISTS;
two concurrent first calls may both bootstrap, which is wasteful but
harmless.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from functools import partial
from typing import Any, Protocol, runtime_checkable

import structlog
from snowflake.connector.errors import Error as SnowflakeError
from tenacity import (
    AsyncRetrying,
    retry_if_result,
    stop_after_attempt,
    wait_random,
)

from events_proxy.config.models import SnowflakeConfig, TableNames
from events_proxy.destinations.schemas import SchemaRegistry
from events_proxy.destinations.session import AdapterSession
from events_proxy.destinations.snowflake import sql
from events_proxy.destinations.snowflake.client import (
    COMPILATION_SQLSTATE,
    UNKNOWN_COLUMN_ERRNO,
    SnowflakeClient,
)
from events_proxy.destinations.snowflake.ingest import SnowpipeClient
from events_proxy.errors import BootstrapError, ConfigurationError, InvalidStateError
from events_proxy.models import DropSummary, Transport

logger = structlog.get_logger()

SnowpipeFactory = Callable[[SnowflakeConfig, Iterable[str]], Awaitable[Any]]


@runtime_checkable
class WritabilityProbe(Protocol):
    """Decides whether a table that exists is actually queryable."""

    async def probe_writable(self, table: str) -> bool: ...


class UnknownColumnProbe:
    """Probe by inserting into a column that does not exist.

    Snowflake can list a new table before it accepts statements against
    it. A compile-time "invalid identifier" error proves the statement
    reached the table without writing any data; success or any other
    error means not ready yet.
    """

    def __init__(self, client: SnowflakeClient) -> None:
        self._client = client

    async def probe_writable(self, table: str) -> bool:
        outcome = await self._client.execute_quietly(sql.probe_insert(table))
        if not isinstance(outcome, SnowflakeError):
            return False
        return (
            outcome.errno == UNKNOWN_COLUMN_ERRNO
            and outcome.sqlstate == COMPILATION_SQLSTATE
        )


def select_transport(config: SnowflakeConfig) -> Transport:
    """Pipe beats stage; with neither, plain INSERT.

    The task name is reserved and never selects a transport; ``put`` is only
    reachable through ``SnowflakeWriter.strategy_for``.
    """
    if config.pipe:
        return Transport.PIPE
    if config.stage:
        return Transport.COPY
    return Transport.INSERT


def _has_name(rows: list[dict[str, Any]], name: str) -> bool:
    wanted = name.upper()
    return any(str(row.get("name", "")).upper() == wanted for row in rows)


async def poll_until(
    check: Callable[[], Awaitable[bool]],
    *,
    attempts: int,
    min_delay: float,
    max_delay: float,
) -> bool:
    """Call *check* until it returns True, sleeping a random delay in between.

    Returns False once *attempts* calls have all returned False.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_random(min=min_delay, max=max_delay),
        retry=retry_if_result(lambda ok: not ok),
        retry_error_callback=lambda state: False,
    )
    return await retrying(check)  # type: ignore[no-any-return]


class SnowflakeResources:
    """Verifies or creates every durable Snowflake resource the adapter needs."""

    def __init__(
        self,
        config: SnowflakeConfig,
        session: AdapterSession,
        client: SnowflakeClient,
        *,
        registry: SchemaRegistry,
        probe: WritabilityProbe | None = None,
        snowpipe_factory: SnowpipeFactory | None = None,
    ) -> None:
        self._config = config
        self._session = session
        self._client = client
        self._registry = registry
        self._probe = probe or UnknownColumnProbe(client)
        self._snowpipe_factory = snowpipe_factory or SnowpipeClient.create
        self.current_user: dict[str, Any] | None = None

    async def ensure_ready(self, table_names: TableNames) -> list[bool]:
        cfg = self._config
        s = self._session

        if not s.connection_ready:
            await self.ensure_connection()

        if not s.dataset_ready:
            s.dataset_ready = await self._ensure_dataset()
            if not s.dataset_ready:
                msg = "Dataset verification or creation failed"
                raise BootstrapError(msg)
            logger.info("snowflake.dataset_ready", database=cfg.database)

        if not s.tables_ready:
            results = await self._ensure_tables(table_names)
            s.tables_ready = all(results)
            if not s.tables_ready:
                msg = "Table verification or creation failed"
                raise BootstrapError(msg)
            logger.info("snowflake.tables_ready", tables=table_names.all())

        readiness = [s.connection_ready, s.dataset_ready, s.tables_ready]

        if cfg.stage:
            if not s.stage_ready:
                s.stage_ready = await self._ensure_stage()
            readiness.append(s.stage_ready)

        if cfg.pipe:
            if not s.pipe_ready:
                s.pipe_ready = await self._ensure_pipes(table_names)
            readiness.append(s.pipe_ready)
            if not s.streaming_client_ready:
                s.streaming_client_ready = await self._ensure_streaming_client(
                    table_names
                )
            readiness.append(s.streaming_client_ready)

        if s.transport is None:
            transport = s.bind_transport(select_transport(cfg))
            logger.info("snowflake.transport_selected", transport=transport.value)
        return readiness

    # -- Connection ------------------------------------------------------------

    async def ensure_connection(self) -> None:
        if self._session.connection_ready:
            return
        missing = self._config.missing_credentials()
        if missing:
            names = ", ".join(f"snowflake_{name}" for name in missing)
            msg = f"Missing required Snowflake settings: {names}"
            raise ConfigurationError(msg)

        logger.info("snowflake.connecting", account=self._config.account)
        try:
            await self._client.connect()
        except SnowflakeError as exc:
            msg = "Snowflake credentials verification failed"
            raise BootstrapError(msg) from exc

        if not await self._client.ping():
            await self._client.close()
            msg = "Snowflake connection is in an invalid state"
            raise InvalidStateError(msg)

        self.current_user = await self._fetch_current_user()
        self._session.connection_ready = True
        user = self.current_user or {}
        logger.info(
            "snowflake.connection_ready",
            user=user.get("name"),
            email=user.get("email"),
        )

    async def _fetch_current_user(self) -> dict[str, Any] | None:
        """Diagnostics only; failures are logged and tolerated."""
        try:
            result = await self._client.execute("SELECT CURRENT_USER() AS name")
            name = str(next(iter(result.rows[0].values())))
            details = await self._client.execute(sql.show_like("USERS", name))
        except (SnowflakeError, LookupError, StopIteration) as exc:
            logger.warning("snowflake.current_user_unavailable", error=str(exc))
            return None
        return details.rows[-1] if details.rows else {"name": name}

    # -- Database + schema -----------------------------------------------------

    async def _ensure_dataset(self) -> bool:
        cfg = self._config
        assert cfg.database is not None
        assert cfg.schema_name is not None

        databases = await self._client.execute(sql.show_databases())
        if _has_name(databases.rows, cfg.database):
            logger.info("snowflake.database_exists", database=cfg.database)
        else:
            logger.info("snowflake.database_creating", database=cfg.database)
            await self._client.execute(sql.create_database(cfg.database))

        schemas = await self._client.execute(sql.show_schemas(cfg.database))
        if _has_name(schemas.rows, cfg.schema_name):
            logger.info("snowflake.schema_exists", schema=cfg.schema_name)
        else:
            logger.info("snowflake.schema_creating", schema=cfg.schema_name)
            await self._client.execute(
                sql.create_schema(cfg.database, cfg.schema_name)
            )

        await self._client.execute(sql.use_schema(cfg.database, cfg.schema_name))
        logger.info(
            "snowflake.schema_in_use", database=cfg.database, schema=cfg.schema_name
        )
        return True

    # -- Tables ----------------------------------------------------------------

    async def table_exists(self, table: str) -> bool:
        result = await self._client.execute(sql.show_like("TABLES", table))
        return _has_name(result.rows, table)

    async def _ensure_tables(self, table_names: TableNames) -> list[bool]:
        results: list[bool] = []
        for kind, table in table_names.items():
            if await self.table_exists(table):
                logger.info("snowflake.table_exists", table=table)
            else:
                logger.info("snowflake.table_creating", table=table)
                schema = self._registry.schema_for(kind)
                await self._client.execute(sql.create_table(table, schema))
            ready = await self.wait_for_table(table)
            if ready:
                logger.info("snowflake.table_ready", table=table)
            else:
                logger.error("snowflake.table_not_ready", table=table)
            results.append(ready)
        return results

    async def wait_for_table(self, table: str) -> bool:
        """Poll until the table is listed, then until it accepts statements."""
        cfg = self._config
        poll = partial(
            poll_until,
            attempts=cfg.readiness_attempts,
            min_delay=cfg.readiness_min_delay_seconds,
            max_delay=cfg.readiness_max_delay_seconds,
        )
        if not await poll(partial(self.table_exists, table)):
            logger.warning(
                "snowflake.table_missing",
                table=table,
                attempts=cfg.readiness_attempts,
            )
            return False
        return await poll(partial(self._probe.probe_writable, table))

    # -- Stage -----------------------------------------------------------------

    async def _ensure_stage(self) -> bool:
        cfg = self._config
        assert cfg.stage is not None
        result = await self._client.execute(sql.show_like("STAGES", cfg.stage))
        if _has_name(result.rows, cfg.stage):
            logger.info("snowflake.stage_exists", stage=cfg.stage)
            return True

        logger.info("snowflake.stage_creating", stage=cfg.stage)
        await self._client.execute(sql.create_stage(cfg.stage))
        for privilege in ("READ", "WRITE"):
            await self._client.execute(
                sql.grant_on_stage(privilege, cfg.stage, str(cfg.role))
            )
        logger.info("snowflake.stage_created", stage=cfg.stage, role=cfg.role)
        return True

    # -- Pipes -----------------------------------------------------------------

    async def _ensure_pipes(self, table_names: TableNames) -> bool:
        cfg = self._config
        assert cfg.pipe is not None
        assert cfg.stage is not None
        for kind, table in table_names.items():
            name = sql.pipe_name(cfg.pipe, table)
            result = await self._client.execute(sql.show_like("PIPES", name))
            if _has_name(result.rows, name):
                logger.info("snowflake.pipe_exists", pipe=name)
                continue
            logger.info("snowflake.pipe_creating", pipe=name)
            schema = self._registry.schema_for(kind)
            await self._client.execute(sql.create_pipe(name, table, cfg.stage, schema))
        return True

    async def _ensure_streaming_client(self, table_names: TableNames) -> bool:
        try:
            self._session.streaming_client = await self._snowpipe_factory(
                self._config, table_names.all()
            )
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.error("snowpipe.client_failed", error=str(exc))
            return False
        return True

    # -- Teardown --------------------------------------------------------------

    async def teardown(self, table_names: TableNames) -> DropSummary:
        """Drop tables, per-table pipes and tasks, and the stage; best-effort.

        Readiness flags are left untouched: the session is stale after this
        until the process restarts.
        """
        await self.ensure_connection()
        cfg = self._config
        targets: list[tuple[str, str]] = []
        for table in table_names.all():
            targets.append(("TABLE", table))
            if cfg.pipe:
                targets.append(("PIPE", sql.pipe_name(cfg.pipe, table)))
            if cfg.task:
                targets.append(("TASK", sql.task_name(cfg.task, table)))
        if cfg.stage:
            targets.append(("STAGE", cfg.stage))

        summary = DropSummary()

        async def _drop(kind: str, name: str) -> None:
            label = f"{kind.lower()}:{name}"
            try:
                await self._client.execute(sql.drop(kind, name))
            except Exception as exc:
                logger.warning("snowflake.drop_failed", resource=label, error=str(exc))
                summary.failures[label] = str(exc)
                return
            summary.resources_dropped.append(label)

        await asyncio.gather(*[_drop(kind, name) for kind, name in targets])
        logger.warning(
            "snowflake.resources_dropped",
            dropped=summary.num_resources_dropped,
            failed=len(summary.failures),
        )
        return summary
