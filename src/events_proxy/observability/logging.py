"""structlog setup for structured (JSON) or console output."""

from __future__ import annotations

import logging
from typing import Any

import structlog


def configure_logging(*, json: bool = True, verbose: bool = False) -> None:
    """Install the process-wide structlog pipeline.

    ``json`` selects machine-readable output for deployed services; the
    console renderer is for interactive CLI use. ``verbose`` lowers the
    threshold to DEBUG.
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    if json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    level = logging.DEBUG if verbose else logging.INFO
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
