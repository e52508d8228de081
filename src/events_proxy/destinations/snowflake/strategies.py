"""The four Snowflake write strategies: insert, copy, pipe and put.

All of them share ``write(batch, table, schema) -> InsertResult`` so the
retry engine can wrap whichever one the session is bound to. The file
based strategies are all-or-nothing: they report full success or raise.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import structlog

from events_proxy.config.models import SnowflakeConfig
from events_proxy.destinations.retry import WriteStrategy
from events_proxy.destinations.schemas import Schema
from events_proxy.destinations.session import AdapterSession
from events_proxy.destinations.snowflake import sql
from events_proxy.destinations.snowflake.client import SnowflakeClient
from events_proxy.destinations.snowflake.payload import shape
from events_proxy.destinations.staging import local_batch_file
from events_proxy.errors import ConfigurationError, RecoverableContentionError
from events_proxy.models import InsertResult, Record, Transport

logger = structlog.get_logger()


class SnowflakeWriter:
    def __init__(
        self,
        config: SnowflakeConfig,
        session: AdapterSession,
        client: SnowflakeClient,
        *,
        dest: str,
    ) -> None:
        self._config = config
        self._session = session
        self._client = client
        self._dest = dest

    def strategy_for(self, transport: Transport) -> WriteStrategy:
        strategies: dict[Transport, WriteStrategy] = {
            Transport.INSERT: self.insert,
            Transport.COPY: self.copy,
            Transport.PIPE: self.pipe,
            Transport.PUT: self.put,
        }
        return strategies[transport]

    @property
    def _stage(self) -> str:
        if not self._config.stage:
            msg = "A Snowflake stage is required for file-based loading"
            raise ConfigurationError(msg)
        return self._config.stage

    async def _put(self, path: Path) -> str:
        """Upload a local file into the stage; returns the staged (gzipped) name."""
        await self._client.execute(sql.put_file(path.as_posix(), self._stage))
        staged = f"{path.name}.gz"
        logger.info("snowflake.file_staged", stage=self._stage, file=staged)
        return staged

    async def insert(
        self, batch: Sequence[Record], table: str, schema: Schema
    ) -> InsertResult:
        payload = shape(batch, schema, table)
        try:
            if payload.has_variant:
                result = await self._client.execute(payload.sql, payload.binds)
            else:
                result = await self._client.execute_many(payload.sql, payload.binds)
        except (RecoverableContentionError, ConfigurationError):
            raise
        except Exception as exc:
            logger.error(
                "snowflake.insert_failed", table=table, rows=len(batch), error=str(exc)
            )
            return InsertResult.failure(
                self._dest, len(batch), exc, method=Transport.INSERT.value
            )

        inserted = min(result.rowcount, len(batch))
        logger.info("snowflake.rows_inserted", table=table, rows=inserted)
        return InsertResult.success(
            self._dest,
            inserted,
            len(batch) - inserted,
            method=Transport.INSERT.value,
        )

    async def copy(
        self, batch: Sequence[Record], table: str, schema: Schema
    ) -> InsertResult:
        with local_batch_file(batch, table, self._config.temp_dir) as path:
            staged = await self._put(path)
            location = f"@{self._stage}/{staged}"
            await self._client.execute(sql.copy_into(table, schema, location))
            # Rows are already loaded; REMOVE is housekeeping only.
            try:
                await self._client.execute(sql.remove(location))
            except Exception as exc:
                logger.warning(
                    "snowflake.staged_file_remove_failed",
                    location=location,
                    error=str(exc),
                )
        logger.info("snowflake.rows_copied", table=table, rows=len(batch))
        return InsertResult.success(
            self._dest, len(batch), method=Transport.COPY.value
        )

    async def pipe(
        self, batch: Sequence[Record], table: str, schema: Schema
    ) -> InsertResult:
        streaming_client = self._session.streaming_client
        if streaming_client is None:
            msg = "Snowpipe client is not initialized"
            raise ConfigurationError(msg)
        with local_batch_file(batch, table, self._config.temp_dir) as path:
            staged = await self._put(path)
            # The staged file must outlive this call; Snowpipe loads it later.
            await streaming_client.notify(table, [staged])
        return InsertResult.success(
            self._dest, len(batch), method=Transport.PIPE.value
        )

    async def put(
        self, batch: Sequence[Record], table: str, schema: Schema
    ) -> InsertResult:
        with local_batch_file(batch, table, self._config.temp_dir) as path:
            await self._put(path)
        return InsertResult.success(
            self._dest, len(batch), method=Transport.PUT.value
        )
