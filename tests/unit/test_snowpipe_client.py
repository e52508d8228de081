"""Unit tests for the Snowpipe REST client wrapper."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from events_proxy.config.models import SnowflakeConfig
from events_proxy.destinations.snowflake.ingest import (
    SnowpipeClient,
    ingest_host,
    qualified_pipe_name,
)
from events_proxy.errors import ConfigurationError


def _config(**overrides) -> SnowflakeConfig:
    fields = {
        "account": "acme",
        "user": "loader",
        "database": "ANALYTICS",
        "schema_name": "PROXY",
        "stage": "proxy_stage",
        "pipe": "proxy_pipe",
        "private_key": "-----KEY-----",
    }
    fields.update(overrides)
    return SnowflakeConfig(**fields)


class TestNaming:
    def test_host_from_region_and_provider(self):
        cfg = _config(region="us-east-2", provider="aws")
        assert ingest_host(cfg) == "acme.us-east-2.aws.snowflakecomputing.com"

    def test_host_from_access_url(self):
        cfg = _config(access_url="https://acme.snowflakecomputing.com")
        assert ingest_host(cfg) == "acme.snowflakecomputing.com"

    def test_qualified_pipe_name(self):
        assert qualified_pipe_name(_config(), "events") == (
            "ANALYTICS.PROXY.proxy_pipe_events"
        )


@pytest.mark.asyncio
class TestSnowpipeClient:
    async def test_create_one_manager_per_table(self):
        ingest = MagicMock()
        with patch.dict("sys.modules", {"snowflake.ingest": ingest}):
            client = await SnowpipeClient.create(_config(), ["events", "users"])

        assert ingest.SimpleIngestManager.call_count == 2
        pipes = [c.kwargs["pipe"] for c in ingest.SimpleIngestManager.call_args_list]
        assert pipes == [
            "ANALYTICS.PROXY.proxy_pipe_events",
            "ANALYTICS.PROXY.proxy_pipe_users",
        ]
        assert ingest.SimpleIngestManager.call_args.kwargs["private_key"] == (
            "-----KEY-----"
        )
        assert isinstance(client, SnowpipeClient)

    async def test_create_requires_private_key(self):
        with patch.dict("sys.modules", {"snowflake.ingest": MagicMock()}):
            with pytest.raises(ConfigurationError, match="private_key"):
                await SnowpipeClient.create(_config(private_key=None), ["events"])

    async def test_notify(self):
        ingest = MagicMock()
        manager = MagicMock()
        manager.ingest_files.return_value = {"responseCode": "SUCCESS"}
        client = SnowpipeClient({"events": manager})

        with patch.dict("sys.modules", {"snowflake.ingest": ingest}):
            response = await client.notify("events", ["events_x.json.gz"])

        assert response == {"responseCode": "SUCCESS"}
        ingest.StagedFile.assert_called_once_with("events_x.json.gz", None)
        manager.ingest_files.assert_called_once_with(
            [ingest.StagedFile.return_value]
        )

    async def test_notify_unknown_table(self):
        client = SnowpipeClient({})
        with patch.dict("sys.modules", {"snowflake.ingest": MagicMock()}):
            with pytest.raises(KeyError):
                await client.notify("events", ["f.json.gz"])
