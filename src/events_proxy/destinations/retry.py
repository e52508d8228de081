"""Retry engine around a single write-strategy invocation."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from events_proxy.config.models import RetryConfig
from events_proxy.destinations.schemas import Schema
from events_proxy.errors import ConfigurationError, RecoverableContentionError
from events_proxy.models import InsertResult, Record

logger = structlog.get_logger()

WriteStrategy = Callable[[Sequence[Record], str, Schema], Awaitable[InsertResult]]


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "retry.contention",
        attempt=state.attempt_number,
        sleep_seconds=round(state.next_action.sleep, 3) if state.next_action else 0,
        error=str(exc),
    )


async def with_retry(
    strategy: WriteStrategy,
    batch: Sequence[Record],
    table: str,
    schema: Schema,
    *,
    config: RetryConfig,
    dest: str,
    **meta: Any,
) -> InsertResult:
    """Run *strategy*, retrying only recoverable contention errors.

    Contention is retried with jittered exponential backoff up to
    ``config.max_attempts`` calls. Exhausted contention and any other
    exception become an ``error`` result after the last call.
    ConfigurationError is re-raised unchanged.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential_jitter(
            initial=config.initial_wait_seconds,
            max=config.max_wait_seconds,
            exp_base=config.multiplier,
            jitter=config.initial_wait_seconds if config.jitter else 0,
        ),
        retry=retry_if_exception_type(RecoverableContentionError),
        before_sleep=_log_retry,
        reraise=True,
    )
    try:
        async for attempt in retrying:
            with attempt:
                result = await strategy(batch, table, schema)
    except ConfigurationError:
        raise
    except RecoverableContentionError as exc:
        logger.error(
            "retry.exhausted",
            dest=dest,
            table=table,
            attempts=config.max_attempts,
            error=str(exc),
        )
        return InsertResult.failure(dest, len(batch), exc, **meta)
    except Exception as exc:
        logger.error("retry.write_failed", dest=dest, table=table, error=str(exc))
        return InsertResult.failure(dest, len(batch), exc, **meta)
    return result
