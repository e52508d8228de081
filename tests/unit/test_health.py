"""Unit tests for destination health probes."""

from __future__ import annotations

from typing import Any

import pytest

from events_proxy.observability.health import (
    Status,
    check_destination,
    check_destinations,
)


class StubAdapter:
    def __init__(self, destination_id: str, info: dict[str, Any] | Exception):
        self._id = destination_id
        self._info = info

    @property
    def destination_id(self) -> str:
        return self._id

    async def health(self) -> dict[str, Any]:
        if isinstance(self._info, Exception):
            raise self._info
        return self._info


@pytest.mark.asyncio
class TestCheckDestination:
    async def test_ready_is_healthy(self):
        adapter = StubAdapter(
            "wh", {"destination_id": "wh", "status": "ready", "transport": "copy"}
        )
        component = await check_destination(adapter)  # type: ignore[arg-type]
        assert component.status == Status.HEALTHY
        assert component.detail == "transport=copy"

    async def test_not_ready_is_unhealthy(self):
        adapter = StubAdapter("wh", {"status": "not_ready"})
        component = await check_destination(adapter)  # type: ignore[arg-type]
        assert component.status == Status.UNHEALTHY

    async def test_exception_is_unhealthy(self):
        adapter = StubAdapter("wh", RuntimeError("offline"))
        component = await check_destination(adapter)  # type: ignore[arg-type]
        assert component.status == Status.UNHEALTHY
        assert component.detail == "offline"


@pytest.mark.asyncio
class TestCheckDestinations:
    async def test_aggregate(self):
        adapters = [
            StubAdapter("wh", {"status": "ready"}),
            StubAdapter("lake", {"status": "not_ready"}),
        ]
        result = await check_destinations(adapters)  # type: ignore[arg-type]
        assert not result.healthy
        assert result.summary == {"wh": "healthy", "lake": "unhealthy"}

    async def test_empty_is_healthy(self):
        result = await check_destinations([])
        assert result.healthy
