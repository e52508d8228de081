"""Pydantic configuration models for the events proxy."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

from events_proxy.models import RecordKind

Identifier = Annotated[str, Field(pattern=r"^[a-zA-Z_][\w$]*$")]


class TableNames(BaseModel):
    """Destination table (or prefix) per record kind."""

    model_config = ConfigDict(frozen=True)

    event_table: str = "events"
    user_table: str = "users"
    group_table: str = "groups"

    def for_kind(self, kind: RecordKind) -> str:
        return {
            RecordKind.TRACK: self.event_table,
            RecordKind.ENGAGE: self.user_table,
            RecordKind.GROUPS: self.group_table,
        }[kind]

    def items(self) -> list[tuple[RecordKind, str]]:
        return [(kind, self.for_kind(kind)) for kind in RecordKind]

    def all(self) -> list[str]:
        return [self.event_table, self.user_table, self.group_table]


class RetryConfig(BaseModel):
    """Retry / backoff configuration for contention errors."""

    max_attempts: int = Field(default=5, ge=1)
    initial_wait_seconds: float = Field(default=1.0, gt=0)
    max_wait_seconds: float = Field(default=30.0, gt=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    jitter: bool = True


class DestinationType(StrEnum):
    """Supported destination types."""

    SNOWFLAKE = "snowflake"
    S3 = "s3"


class SnowflakeConfig(BaseModel):
    """Snowflake warehouse destination.

    Which optional names are present decides the write transport:

    - pipe (+ private_key):  Snowpipe notification after staging
    - stage:                 PUT + COPY INTO per batch
    - neither:               parameterized INSERT

    ``task`` is reserved; it never changes the transport and only adds
    per-table DROP TASK statements to teardown.
    """

    account: str | None = None
    user: str | None = None
    password: SecretStr | None = None
    database: str | None = None
    schema_name: str | None = None
    warehouse: str | None = None
    role: str | None = None
    access_url: str | None = None

    stage: Identifier | None = None
    pipe: Identifier | None = None
    private_key: SecretStr | None = None
    region: str | None = None
    provider: str | None = None
    task: Identifier | None = None
    task_schedule_hours: int = Field(default=3, ge=1)

    temp_dir: str | None = None
    # Table readiness polling
    readiness_attempts: int = Field(default=20, ge=1)
    readiness_min_delay_seconds: float = Field(default=1.0, ge=0)
    readiness_max_delay_seconds: float = Field(default=5.0, ge=0)

    @model_validator(mode="after")
    def check_staging_requirements(self) -> Self:
        if self.pipe and not self.stage:
            msg = "stage is required when pipe is set"
            raise ValueError(msg)
        if self.task and not self.stage:
            msg = "stage is required when task is set"
            raise ValueError(msg)
        if self.readiness_max_delay_seconds < self.readiness_min_delay_seconds:
            msg = "readiness_max_delay_seconds must be >= readiness_min_delay_seconds"
            raise ValueError(msg)
        return self

    def missing_credentials(self) -> list[str]:
        """Names of required connection fields that are not set."""
        required = (
            "account",
            "user",
            "password",
            "database",
            "schema_name",
            "warehouse",
            "role",
        )
        return [name for name in required if not getattr(self, name)]


class S3Config(BaseModel):
    """Amazon S3 object-store destination."""

    bucket: str
    region: str = "us-east-1"
    access_key_id: str | None = None
    secret_access_key: SecretStr | None = None
    temp_dir: str | None = None


class DestinationConfig(BaseModel):
    """Configuration for a single destination."""

    destination_id: str
    destination_type: DestinationType
    enabled: bool = True
    retry: RetryConfig = RetryConfig()
    snowflake: SnowflakeConfig | None = None
    s3: S3Config | None = None

    @model_validator(mode="after")
    def check_matching_sub_config(self) -> Self:
        """Ensure the sub-config matching destination_type is provided."""
        is_snowflake = self.destination_type == DestinationType.SNOWFLAKE
        if is_snowflake and self.snowflake is None:
            msg = "snowflake config is required when destination_type is 'snowflake'"
            raise ValueError(msg)
        if self.destination_type == DestinationType.S3 and self.s3 is None:
            msg = "s3 config is required when destination_type is 's3'"
            raise ValueError(msg)
        return self


class ProxyConfig(BaseModel, extra="forbid"):
    """Process-wide configuration: table names and destinations."""

    tables: TableNames = TableNames()
    destinations: list[DestinationConfig] = Field(default_factory=list)
    log_json: bool = True
    verbose: bool = False

    @model_validator(mode="after")
    def check_unique_destination_ids(self) -> Self:
        ids = [d.destination_id for d in self.destinations]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            msg = f"Duplicate destination_id(s): {', '.join(dupes)}"
            raise ValueError(msg)
        return self

    @property
    def enabled_destinations(self) -> list[DestinationConfig]:
        return [d for d in self.destinations if d.enabled]
