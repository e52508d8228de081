"""Per-destination, process-lifetime adapter state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from events_proxy.models import Transport

READINESS_FLAGS = (
    "connection_ready",
    "dataset_ready",
    "tables_ready",
    "stage_ready",
    "pipe_ready",
    "streaming_client_ready",
)


@dataclass
class AdapterSession:
    """Readiness flags, connection handles and the bound transport.

    Owned by the dispatcher, one per destination per process. Flags only
    ever go from False to True; a flag that is True is never re-checked.
    ``drop`` does not reset them, so after a drop the session is stale
    until the process restarts.
    """

    destination_id: str
    connection_ready: bool = False
    dataset_ready: bool = False
    tables_ready: bool = False
    stage_ready: bool = False
    pipe_ready: bool = False
    streaming_client_ready: bool = False
    connection: Any = None
    streaming_client: Any = None
    _transport: Transport | None = field(default=None, repr=False)

    @property
    def transport(self) -> Transport | None:
        return self._transport

    def bind_transport(self, transport: Transport) -> Transport:
        """Bind the write transport once; later calls keep the first binding."""
        if self._transport is None:
            self._transport = transport
        return self._transport

    def readiness(self) -> dict[str, bool]:
        return {name: getattr(self, name) for name in READINESS_FLAGS}
