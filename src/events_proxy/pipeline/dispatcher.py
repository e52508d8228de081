"""Dispatcher: fans one batch out to every enabled destination."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from events_proxy.config.models import DestinationConfig, ProxyConfig
from events_proxy.destinations.base import DestinationAdapter
from events_proxy.destinations.factory import create_destination
from events_proxy.destinations.session import AdapterSession
from events_proxy.models import (
    DropSummary,
    InsertResult,
    Record,
    RecordKind,
    parse_record_kind,
)

logger = structlog.get_logger()


class Dispatcher:
    """Owns one AdapterSession per destination for the life of the process.

    Destinations run concurrently and independently: a failure in one is
    reported for that destination only and never affects the others.
    """

    def __init__(
        self,
        config: ProxyConfig,
        adapters: Sequence[DestinationAdapter] | None = None,
    ) -> None:
        self._config = config
        self._sessions: dict[str, AdapterSession] = {}
        if adapters is None:
            adapters = [self._build(dest) for dest in config.enabled_destinations]
        self._adapters: list[DestinationAdapter] = list(adapters)

    def _build(self, dest_cfg: DestinationConfig) -> DestinationAdapter:
        session = AdapterSession(dest_cfg.destination_id)
        self._sessions[dest_cfg.destination_id] = session
        adapter = create_destination(dest_cfg, session)
        logger.info(
            "dispatcher.destination_registered",
            destination_id=dest_cfg.destination_id,
            destination_type=dest_cfg.destination_type.value,
        )
        return adapter

    @property
    def adapters(self) -> list[DestinationAdapter]:
        return list(self._adapters)

    @property
    def sessions(self) -> dict[str, AdapterSession]:
        return dict(self._sessions)

    async def init_all(self) -> dict[str, list[bool] | Exception]:
        tables = self._config.tables

        async def _init(adapter: DestinationAdapter) -> list[bool] | Exception:
            try:
                return await adapter.init(tables)
            except Exception as exc:
                logger.error(
                    "dispatcher.init_error",
                    destination_id=adapter.destination_id,
                    error=str(exc),
                )
                return exc

        outcomes = await asyncio.gather(*[_init(a) for a in self._adapters])
        return {a.destination_id: o for a, o in zip(self._adapters, outcomes)}

    async def dispatch(
        self, batch: Sequence[Record], record_kind: RecordKind | str
    ) -> dict[str, InsertResult | Exception]:
        """Deliver *batch* to every destination; one outcome per destination id."""
        kind = parse_record_kind(record_kind)
        tables = self._config.tables

        async def _deliver(adapter: DestinationAdapter) -> InsertResult | Exception:
            try:
                return await adapter.main(batch, kind, tables)
            except Exception as exc:
                logger.error(
                    "dispatcher.delivery_error",
                    destination_id=adapter.destination_id,
                    kind=kind.value,
                    rows=len(batch),
                    error=str(exc),
                )
                return exc

        outcomes = await asyncio.gather(*[_deliver(a) for a in self._adapters])
        results = {a.destination_id: o for a, o in zip(self._adapters, outcomes)}
        logger.info(
            "dispatcher.batch_dispatched",
            kind=kind.value,
            rows=len(batch),
            destinations=len(results),
        )
        return results

    async def drop_all(self) -> dict[str, DropSummary | Exception]:
        tables = self._config.tables

        async def _drop(adapter: DestinationAdapter) -> DropSummary | Exception:
            try:
                return await adapter.drop(tables)
            except Exception as exc:
                logger.error(
                    "dispatcher.drop_error",
                    destination_id=adapter.destination_id,
                    error=str(exc),
                )
                return exc

        outcomes = await asyncio.gather(*[_drop(a) for a in self._adapters])
        return {a.destination_id: o for a, o in zip(self._adapters, outcomes)}

    async def close_all(self) -> None:
        """Close every adapter; a failure is logged and the rest still close."""
        for adapter in self._adapters:
            try:
                await adapter.close()
            except Exception as exc:
                logger.error(
                    "dispatcher.close_error",
                    destination_id=adapter.destination_id,
                    error=str(exc),
                )
