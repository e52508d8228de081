"""Destination adapter protocol.

Every destination exposes the same three operations to the dispatcher.
New destination types implement this protocol and register in the
factory without touching the dispatcher.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from events_proxy.config.models import TableNames
from events_proxy.models import DropSummary, InsertResult, Record, RecordKind


@runtime_checkable
class DestinationAdapter(Protocol):
    """Protocol that every destination adapter must satisfy."""

    @property
    def destination_id(self) -> str:
        """Unique identifier for this destination instance."""
        ...

    async def init(self, table_names: TableNames) -> list[bool]:
        """Verify or create durable resources; cheap once everything is ready."""
        ...

    async def main(
        self,
        batch: Sequence[Record],
        record_kind: RecordKind | str,
        table_names: TableNames,
    ) -> InsertResult:
        """Deliver one batch of flat records of a single kind."""
        ...

    async def drop(self, table_names: TableNames) -> DropSummary:
        """Delete every durable resource tied to the given table names."""
        ...

    async def health(self) -> dict[str, Any]:
        """Return a health-check status dict."""
        ...

    async def close(self) -> None:
        """Release any backend connection held by the adapter."""
        ...
