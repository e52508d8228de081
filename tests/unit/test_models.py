"""Unit tests for the core result and session types."""

import pytest

from events_proxy.destinations.session import READINESS_FLAGS, AdapterSession
from events_proxy.errors import (
    ConfigurationError,
    RecoverableContentionError,
    TableLockedError,
    is_recoverable,
)
from events_proxy.models import (
    DropSummary,
    InsertResult,
    InsertStatus,
    RecordKind,
    Transport,
    parse_record_kind,
)


class TestParseRecordKind:
    def test_valid(self):
        assert parse_record_kind("engage") is RecordKind.ENGAGE
        assert parse_record_kind(RecordKind.GROUPS) is RecordKind.GROUPS

    def test_invalid(self):
        with pytest.raises(ConfigurationError, match="Invalid record type"):
            parse_record_kind("pageview")


class TestInsertResult:
    def test_default_is_born(self):
        assert InsertResult(dest="x").status == InsertStatus.BORN

    def test_success_counts(self):
        result = InsertResult.success("snowflake", 3, method="insert")
        assert result.inserted_rows + result.failed_rows == 3
        assert result.meta == {"method": "insert"}

    def test_failure_counts_whole_batch(self):
        result = InsertResult.failure("snowflake", 4, ValueError("boom"))
        assert result.status == InsertStatus.ERROR
        assert result.inserted_rows == 0
        assert result.failed_rows == 4
        assert result.error_message == "boom"

    def test_as_dict(self):
        result = InsertResult.success("s3", 2, method="put")
        result.duration_ms = 12.3456
        assert result.as_dict() == {
            "status": "success",
            "insertedRows": 2,
            "failedRows": 0,
            "dest": "s3",
            "duration": 12.35,
            "meta": {"method": "put"},
        }

    def test_as_dict_error_message(self):
        out = InsertResult.failure("s3", 1, "nope").as_dict()
        assert out["errorMessage"] == "nope"
        assert "meta" not in out


class TestDropSummary:
    def test_as_dict(self):
        summary = DropSummary(resources_dropped=["table:events"], failures={"stage:s": "x"})
        assert summary.as_dict() == {
            "numResourcesDropped": 1,
            "resourcesDropped": ["table:events"],
            "failures": {"stage:s": "x"},
        }


class TestAdapterSession:
    def test_flags_start_false(self):
        session = AdapterSession("snowflake")
        assert session.readiness() == {flag: False for flag in READINESS_FLAGS}
        assert session.transport is None

    def test_transport_bound_once(self):
        session = AdapterSession("snowflake")
        assert session.bind_transport(Transport.COPY) is Transport.COPY
        assert session.bind_transport(Transport.INSERT) is Transport.COPY
        assert session.transport is Transport.COPY


class TestErrors:
    def test_table_locked_is_recoverable(self):
        assert is_recoverable(TableLockedError("locked"))
        assert issubclass(TableLockedError, RecoverableContentionError)

    def test_other_errors_not_recoverable(self):
        assert not is_recoverable(ConfigurationError("x"))
        assert not is_recoverable(RuntimeError("x"))
