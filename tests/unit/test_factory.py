"""Unit tests for the destination factory."""

import pytest

from events_proxy.config.models import (
    DestinationConfig,
    DestinationType,
    S3Config,
    SnowflakeConfig,
)
from events_proxy.destinations.factory import create_destination
from events_proxy.destinations.s3 import S3Adapter
from events_proxy.destinations.session import AdapterSession
from events_proxy.destinations.snowflake.adapter import SnowflakeAdapter


class TestCreateDestination:
    def test_creates_snowflake_adapter(self):
        cfg = DestinationConfig(
            destination_id="wh",
            destination_type=DestinationType.SNOWFLAKE,
            snowflake=SnowflakeConfig(account="acme"),
        )
        adapter = create_destination(cfg)
        assert isinstance(adapter, SnowflakeAdapter)
        assert adapter.destination_id == "wh"

    def test_creates_s3_adapter_with_session(self):
        cfg = DestinationConfig(
            destination_id="lake",
            destination_type=DestinationType.S3,
            s3=S3Config(bucket="raw-events"),
        )
        session = AdapterSession("lake")
        adapter = create_destination(cfg, session)
        assert isinstance(adapter, S3Adapter)
        assert adapter.session is session

    def test_unknown_type_raises(self):
        cfg = DestinationConfig(
            destination_id="x",
            destination_type=DestinationType.S3,
            s3=S3Config(bucket="b"),
        )
        cfg.destination_type = "bigquery"  # type: ignore[assignment]
        with pytest.raises(ValueError, match="Unknown destination type"):
            create_destination(cfg)
