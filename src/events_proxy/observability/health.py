"""Health probes for configured destinations."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum

import structlog

from events_proxy.destinations.base import DestinationAdapter

logger = structlog.get_logger()


class Status(StrEnum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ComponentHealth:
    name: str
    status: Status = Status.UNKNOWN
    detail: str = ""


@dataclass
class ProxyHealth:
    components: list[ComponentHealth] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return all(c.status == Status.HEALTHY for c in self.components)

    @property
    def summary(self) -> dict[str, str]:
        return {c.name: c.status.value for c in self.components}


async def check_destination(adapter: DestinationAdapter) -> ComponentHealth:
    """Summarize an adapter's health dict as a component status."""
    try:
        info = await adapter.health()
    except Exception as exc:
        return ComponentHealth(
            name=adapter.destination_id, status=Status.UNHEALTHY, detail=str(exc)
        )
    healthy = info.get("status") == "ready"
    detail = ", ".join(
        f"{k}={v}" for k, v in info.items() if k not in ("destination_id", "status")
    )
    return ComponentHealth(
        name=adapter.destination_id,
        status=Status.HEALTHY if healthy else Status.UNHEALTHY,
        detail=detail,
    )


async def check_destinations(adapters: Iterable[DestinationAdapter]) -> ProxyHealth:
    result = ProxyHealth()
    for adapter in adapters:
        component = await check_destination(adapter)
        result.components.append(component)
    logger.debug("health.checked", summary=result.summary)
    return result
