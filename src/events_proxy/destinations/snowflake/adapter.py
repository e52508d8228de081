"""Snowflake destination adapter."""

from __future__ import annotations

import time
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Any

import structlog

from events_proxy.config.models import DestinationConfig, SnowflakeConfig, TableNames
from events_proxy.destinations.retry import with_retry
from events_proxy.destinations.schemas import SchemaRegistry
from events_proxy.destinations.session import AdapterSession
from events_proxy.destinations.snowflake import sql
from events_proxy.destinations.snowflake.client import SnowflakeClient
from events_proxy.destinations.snowflake.lifecycle import (
    SnowflakeResources,
    WritabilityProbe,
)
from events_proxy.destinations.snowflake.strategies import SnowflakeWriter
from events_proxy.errors import BootstrapError, ConfigurationError
from events_proxy.models import (
    DropSummary,
    InsertResult,
    Record,
    RecordKind,
    parse_record_kind,
)

logger = structlog.get_logger()


class SnowflakeAdapter:
    """Delivers record batches to Snowflake tables.

    Resources are bootstrapped lazily on the first ``main`` (or an
    explicit ``init``) and remembered in the session for the rest of
    the process.
    """

    def __init__(
        self,
        config: DestinationConfig,
        session: AdapterSession | None = None,
        *,
        registry: SchemaRegistry | None = None,
        client: SnowflakeClient | None = None,
        probe: WritabilityProbe | None = None,
    ) -> None:
        if config.snowflake is None:
            msg = "SnowflakeAdapter requires a snowflake sub-config"
            raise ValueError(msg)
        self._config = config
        self._sf: SnowflakeConfig = config.snowflake
        self._session = session or AdapterSession(config.destination_id)
        if self._session.connection is None:
            self._session.connection = client or SnowflakeClient(self._sf)
        self._client: SnowflakeClient = self._session.connection
        self._registry = registry or SchemaRegistry()
        self._resources = SnowflakeResources(
            self._sf,
            self._session,
            self._client,
            registry=self._registry,
            probe=probe,
        )
        self._writer = SnowflakeWriter(
            self._sf, self._session, self._client, dest=self.destination_id
        )

    @property
    def destination_id(self) -> str:
        return self._config.destination_id

    @property
    def session(self) -> AdapterSession:
        return self._session

    async def init(self, table_names: TableNames) -> list[bool]:
        return await self._resources.ensure_ready(table_names)

    async def main(
        self,
        batch: Sequence[Record],
        record_kind: RecordKind | str,
        table_names: TableNames,
    ) -> InsertResult:
        kind = parse_record_kind(record_kind)
        if not batch:
            return InsertResult.success(self.destination_id, 0)

        t0 = time.monotonic()
        readiness = await self.init(table_names)
        if not all(readiness):
            msg = f"Snowflake destination not ready: {self._session.readiness()}"
            raise BootstrapError(msg)

        transport = self._session.transport
        assert transport is not None
        table = table_names.for_kind(kind)
        result = await with_retry(
            self._writer.strategy_for(transport),
            batch,
            table,
            self._registry.schema_for(kind),
            config=self._config.retry,
            dest=self.destination_id,
            method=transport.value,
        )
        result.duration_ms = (time.monotonic() - t0) * 1000
        logger.info(
            "snowflake.batch_delivered",
            destination_id=self.destination_id,
            table=table,
            transport=transport.value,
            status=result.status.value,
            inserted=result.inserted_rows,
            failed=result.failed_rows,
            duration_ms=round(result.duration_ms, 2),
        )
        return result

    async def drop(self, table_names: TableNames) -> DropSummary:
        return await self._resources.teardown(table_names)

    async def health(self) -> dict[str, Any]:
        s = self._session
        ready = s.connection_ready and s.tables_ready
        return {
            "destination_id": self.destination_id,
            "destination_type": self._config.destination_type.value,
            "status": "ready" if ready else "not_ready",
            "transport": s.transport.value if s.transport else None,
            **s.readiness(),
        }

    async def close(self) -> None:
        await self._client.close()

    # -- Stage maintenance -----------------------------------------------------

    def _require_stage(self) -> str:
        if not self._sf.stage:
            msg = "snowflake_stage is required for stage maintenance"
            raise ConfigurationError(msg)
        return self._sf.stage

    async def flush_stage(
        self, record_kind: RecordKind | str, table_names: TableNames
    ) -> int:
        """Bulk-load every staged file into the kind's table; returns rows loaded."""
        stage = self._require_stage()
        kind = parse_record_kind(record_kind)
        await self._resources.ensure_connection()
        table = table_names.for_kind(kind)
        result = await self._client.execute(
            sql.copy_into(table, self._registry.schema_for(kind), f"@{stage}")
        )
        loaded = sum(int(row.get("rows_loaded") or 0) for row in result.rows)
        logger.info("snowflake.stage_flushed", stage=stage, table=table, rows=loaded)
        return loaded

    async def cleanup_stage(self, threshold_days: int = 1) -> list[str]:
        """Remove staged batch files last modified more than *threshold_days* ago."""
        stage = self._require_stage()
        await self._resources.ensure_connection()
        cutoff = datetime.now(UTC) - timedelta(days=threshold_days)
        listing = await self._client.execute(sql.list_stage(stage))

        removed: list[str] = []
        for row in listing.rows:
            modified = parsedate_to_datetime(str(row["last_modified"]))
            if modified >= cutoff:
                continue
            file_name = str(row["name"]).split("/", 1)[-1]
            await self._client.execute(sql.remove(f"@{stage}/{file_name}"))
            removed.append(file_name)
        logger.info(
            "snowflake.stage_cleaned",
            stage=stage,
            threshold_days=threshold_days,
            removed=len(removed),
        )
        return removed

    async def purge_stage(self) -> int:
        """Remove every file from the stage; returns the number removed."""
        stage = self._require_stage()
        await self._resources.ensure_connection()
        result = await self._client.execute(sql.remove(f"@{stage}"))
        logger.warning("snowflake.stage_purged", stage=stage, removed=len(result.rows))
        return len(result.rows)
