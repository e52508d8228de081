"""Core data model shared by all destination adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from events_proxy.errors import ConfigurationError

Record = dict[str, Any]


class RecordKind(StrEnum):
    """Inbound record kinds; each maps to one table and one schema."""

    TRACK = "track"
    ENGAGE = "engage"
    GROUPS = "groups"


class Transport(StrEnum):
    """Write strategies a warehouse destination can use."""

    INSERT = "insert"
    COPY = "copy"
    PIPE = "pipe"
    PUT = "put"


class InsertStatus(StrEnum):
    BORN = "born"
    SUCCESS = "success"
    ERROR = "error"


def parse_record_kind(value: str | RecordKind) -> RecordKind:
    """Resolve a record kind, raising ConfigurationError for unknown values."""
    try:
        return RecordKind(value)
    except ValueError:
        msg = f"Invalid record type: {value!r}"
        raise ConfigurationError(msg) from None


@dataclass
class InsertResult:
    """Outcome of delivering one batch to one destination."""

    dest: str
    status: InsertStatus = InsertStatus.BORN
    inserted_rows: int = 0
    failed_rows: int = 0
    duration_ms: float = 0.0
    error_message: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(
        cls, dest: str, inserted: int, failed: int = 0, **meta: Any
    ) -> InsertResult:
        return cls(
            dest=dest,
            status=InsertStatus.SUCCESS,
            inserted_rows=inserted,
            failed_rows=failed,
            meta=dict(meta),
        )

    @classmethod
    def failure(
        cls, dest: str, batch_size: int, error: BaseException | str, **meta: Any
    ) -> InsertResult:
        return cls(
            dest=dest,
            status=InsertStatus.ERROR,
            inserted_rows=0,
            failed_rows=batch_size,
            error_message=str(error),
            meta=dict(meta),
        )

    def as_dict(self) -> dict[str, Any]:
        """Dispatcher-facing representation."""
        out: dict[str, Any] = {
            "status": self.status.value,
            "insertedRows": self.inserted_rows,
            "failedRows": self.failed_rows,
            "dest": self.dest,
            "duration": round(self.duration_ms, 2),
        }
        if self.error_message is not None:
            out["errorMessage"] = self.error_message
        if self.meta:
            out["meta"] = dict(self.meta)
        return out


@dataclass
class DropSummary:
    """Result of a destructive drop across a destination's resources."""

    resources_dropped: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def num_resources_dropped(self) -> int:
        return len(self.resources_dropped)

    def as_dict(self) -> dict[str, Any]:
        return {
            "numResourcesDropped": self.num_resources_dropped,
            "resourcesDropped": list(self.resources_dropped),
            "failures": dict(self.failures),
        }
