"""Snowpipe REST client (key-pair auth, separate from the SQL connection)."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any
from urllib.parse import urlparse

import structlog

from events_proxy.config.models import SnowflakeConfig
from events_proxy.destinations.snowflake.sql import pipe_name
from events_proxy.errors import ConfigurationError

logger = structlog.get_logger()


def ingest_host(config: SnowflakeConfig) -> str:
    if config.access_url:
        return urlparse(config.access_url).hostname or config.access_url
    parts = [config.account or ""]
    if config.region:
        parts.append(config.region)
    if config.provider:
        parts.append(config.provider)
    return ".".join(parts) + ".snowflakecomputing.com"


def qualified_pipe_name(config: SnowflakeConfig, table: str) -> str:
    assert config.pipe is not None
    return f"{config.database}.{config.schema_name}.{pipe_name(config.pipe, table)}"


class SnowpipeClient:
    """Notifies per-table pipes that staged files are ready to load."""

    def __init__(self, managers: dict[str, Any]) -> None:
        self._managers = managers

    @classmethod
    async def create(
        cls, config: SnowflakeConfig, tables: Iterable[str]
    ) -> SnowpipeClient:
        from snowflake.ingest import SimpleIngestManager

        if config.private_key is None:
            msg = "snowflake_private_key is required for Snowpipe"
            raise ConfigurationError(msg)
        key = config.private_key.get_secret_value()
        host = ingest_host(config)

        def _build() -> dict[str, Any]:
            return {
                table: SimpleIngestManager(
                    account=config.account,
                    host=host,
                    user=config.user,
                    pipe=qualified_pipe_name(config, table),
                    private_key=key,
                )
                for table in tables
            }

        loop = asyncio.get_running_loop()
        managers = await loop.run_in_executor(None, _build)
        logger.info("snowpipe.client_created", host=host, pipes=len(managers))
        return cls(managers)

    async def notify(self, table: str, file_names: list[str]) -> dict[str, Any]:
        """Submit staged files for asynchronous loading; no load confirmation."""
        from snowflake.ingest import StagedFile

        manager = self._managers.get(table)
        if manager is None:
            msg = f"No Snowpipe registered for table '{table}'"
            raise KeyError(msg)
        staged = [StagedFile(name, None) for name in file_names]
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(None, manager.ingest_files, staged)
        logger.info("snowpipe.files_submitted", table=table, files=file_names)
        return response  # type: ignore[no-any-return]
