"""Local batch files for file-based transports."""

from __future__ import annotations

import contextlib
import gzip
import json
import tempfile
import uuid
from collections.abc import Iterator, Sequence
from datetime import date
from pathlib import Path

import structlog

from events_proxy.models import Record

logger = structlog.get_logger()


def random_suffix(length: int = 18) -> str:
    return uuid.uuid4().hex[:length]


def staged_file_name(table: str, *, today: date | None = None) -> str:
    """``<table>_<YYYY-MM-DD>_<random>.json``; unique across concurrent batches."""
    day = (today or date.today()).isoformat()
    return f"{table}_{day}_{random_suffix()}.json"


def to_ndjson(batch: Sequence[Record]) -> str:
    return "\n".join(json.dumps(record, default=str) for record in batch)


def gzip_ndjson(batch: Sequence[Record]) -> bytes:
    return gzip.compress(to_ndjson(batch).encode("utf-8"))


def resolve_temp_dir(temp_dir: str | None) -> Path:
    path = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
    path.mkdir(parents=True, exist_ok=True)
    return path.resolve()


@contextlib.contextmanager
def local_batch_file(
    batch: Sequence[Record], table: str, temp_dir: str | None = None
) -> Iterator[Path]:
    """Write *batch* as NDJSON to a unique temp file, removed on every exit path."""
    path = resolve_temp_dir(temp_dir) / staged_file_name(table)
    path.write_text(to_ndjson(batch), encoding="utf-8")
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)
        logger.debug("staging.local_file_removed", path=str(path))
