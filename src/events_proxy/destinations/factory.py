"""Destination factory: maps DestinationType to concrete adapter classes."""

from __future__ import annotations

from events_proxy.config.models import DestinationConfig, DestinationType
from events_proxy.destinations.base import DestinationAdapter
from events_proxy.destinations.s3 import S3Adapter
from events_proxy.destinations.session import AdapterSession
from events_proxy.destinations.snowflake.adapter import SnowflakeAdapter

_DESTINATION_REGISTRY: dict[DestinationType, type] = {
    DestinationType.SNOWFLAKE: SnowflakeAdapter,
    DestinationType.S3: S3Adapter,
}


def create_destination(
    config: DestinationConfig, session: AdapterSession | None = None
) -> DestinationAdapter:
    """Create a destination adapter from configuration.

    Adding a destination = one class + one dict entry in ``_DESTINATION_REGISTRY``.
    """
    cls = _DESTINATION_REGISTRY.get(config.destination_type)
    if cls is None:
        msg = f"Unknown destination type: {config.destination_type}"
        raise ValueError(msg)
    return cls(config, session)  # type: ignore[no-any-return]
