"""Unit tests for the contention retry engine."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from events_proxy.config.models import RetryConfig
from events_proxy.destinations.retry import with_retry
from events_proxy.destinations.schemas import EVENTS_SCHEMA
from events_proxy.errors import ConfigurationError, TableLockedError
from events_proxy.models import InsertResult, InsertStatus

FAST = RetryConfig(max_attempts=4, initial_wait_seconds=0.01, max_wait_seconds=0.1)
BATCH = [{"event": "a"}, {"event": "b"}]


@pytest.mark.asyncio
class TestWithRetry:
    async def test_success_first_call(self):
        ok = InsertResult.success("sf", 2, method="insert")
        strategy = AsyncMock(return_value=ok)

        result = await with_retry(
            strategy, BATCH, "events", EVENTS_SCHEMA, config=FAST, dest="sf"
        )

        assert result is ok
        strategy.assert_awaited_once_with(BATCH, "events", EVENTS_SCHEMA)

    async def test_contention_then_success(self):
        ok = InsertResult.success("sf", 2)
        strategy = AsyncMock(
            side_effect=[TableLockedError("locked"), TableLockedError("locked"), ok]
        )

        result = await with_retry(
            strategy, BATCH, "events", EVENTS_SCHEMA, config=FAST, dest="sf"
        )

        assert result is ok
        assert strategy.await_count == 3

    async def test_contention_exhausted(self):
        strategy = AsyncMock(side_effect=TableLockedError("has locked table"))

        result = await with_retry(
            strategy,
            BATCH,
            "events",
            EVENTS_SCHEMA,
            config=FAST,
            dest="sf",
            method="copy",
        )

        assert strategy.await_count == FAST.max_attempts
        assert result.status == InsertStatus.ERROR
        assert result.failed_rows == 2
        assert result.inserted_rows == 0
        assert result.error_message == "has locked table"
        assert result.meta == {"method": "copy"}

    async def test_other_error_not_retried(self):
        strategy = AsyncMock(side_effect=RuntimeError("COPY failed"))

        result = await with_retry(
            strategy, BATCH, "events", EVENTS_SCHEMA, config=FAST, dest="sf"
        )

        strategy.assert_awaited_once()
        assert result.status == InsertStatus.ERROR
        assert result.error_message == "COPY failed"

    async def test_configuration_error_propagates(self):
        strategy = AsyncMock(side_effect=ConfigurationError("no stage"))

        with pytest.raises(ConfigurationError, match="no stage"):
            await with_retry(
                strategy, BATCH, "events", EVENTS_SCHEMA, config=FAST, dest="sf"
            )
        strategy.assert_awaited_once()

    async def test_single_attempt_config(self):
        strategy = AsyncMock(side_effect=TableLockedError("locked"))
        config = RetryConfig(max_attempts=1, initial_wait_seconds=0.01)

        result = await with_retry(
            strategy, BATCH, "events", EVENTS_SCHEMA, config=config, dest="sf"
        )

        strategy.assert_awaited_once()
        assert result.status == InsertStatus.ERROR
