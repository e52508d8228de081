"""Amazon S3 destination adapter: batches land as gzipped NDJSON objects."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from datetime import date
from typing import Any

import structlog

from events_proxy.config.models import DestinationConfig, S3Config, TableNames
from events_proxy.destinations.session import AdapterSession
from events_proxy.destinations.staging import gzip_ndjson, random_suffix
from events_proxy.errors import BootstrapError, ConfigurationError
from events_proxy.models import (
    DropSummary,
    InsertResult,
    Record,
    RecordKind,
    parse_record_kind,
)

logger = structlog.get_logger()

PROBE_KEY = "dummy.txt"
PROBE_BODY = b"hello!"
_DELETE_CHUNK = 1000


def object_key(prefix: str, *, today: date | None = None) -> str:
    """``<prefix>/<YYYY-MM-DD>_<random>.json.gz``."""
    if not prefix:
        msg = "S3 key prefix not provided"
        raise ConfigurationError(msg)
    prefix = prefix.removesuffix("/")
    day = (today or date.today()).isoformat()
    return f"{prefix}/{day}_{random_suffix(32)}.json.gz"


class S3Adapter:
    """Object-store destination.

    ``connection_ready`` records that the credentials can list the bucket;
    ``dataset_ready`` records that a probe object could be written, read
    back and deleted.
    """

    def __init__(
        self, config: DestinationConfig, session: AdapterSession | None = None
    ) -> None:
        if config.s3 is None:
            msg = "S3Adapter requires an s3 sub-config"
            raise ValueError(msg)
        self._config = config
        self._s3: S3Config = config.s3
        self._session = session or AdapterSession(config.destination_id)

    @property
    def destination_id(self) -> str:
        return self._config.destination_id

    @property
    def session(self) -> AdapterSession:
        return self._session

    def _build_client(self) -> Any:
        try:
            import boto3
        except ImportError:
            msg = (
                "boto3 is required for the S3 destination. "
                "Install it with: pip install events-proxy[s3]"
            )
            raise ImportError(msg) from None

        secret = self._s3.secret_access_key
        return boto3.client(
            "s3",
            region_name=self._s3.region,
            aws_access_key_id=self._s3.access_key_id,
            aws_secret_access_key=secret.get_secret_value() if secret else None,
        )

    async def _call(self, method: str, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        fn = getattr(self._session.connection, method)
        return await loop.run_in_executor(None, lambda: fn(**kwargs))

    async def init(self, table_names: TableNames) -> list[bool]:
        s = self._session
        if not s.connection_ready:
            if s.connection is None:
                s.connection = self._build_client()
            s.connection_ready = await self._verify_credentials()
            if not s.connection_ready:
                msg = "S3 credentials verification failed"
                raise BootstrapError(msg)

        if not s.dataset_ready:
            s.dataset_ready = await self._verify_read_write()
            if not s.dataset_ready:
                msg = "Could not verify read/write bucket permissions"
                raise BootstrapError(msg)

        return [s.connection_ready, s.dataset_ready]

    async def _verify_credentials(self) -> bool:
        try:
            await self._call("list_objects_v2", Bucket=self._s3.bucket, MaxKeys=1)
        except Exception as exc:
            logger.error(
                "s3.credentials_failed", bucket=self._s3.bucket, error=str(exc)
            )
            return False
        logger.info("s3.credentials_verified", bucket=self._s3.bucket)
        return True

    async def _verify_read_write(self) -> bool:
        bucket = self._s3.bucket
        try:
            await self._call(
                "put_object", Bucket=bucket, Key=PROBE_KEY, Body=PROBE_BODY
            )
            response = await self._call("get_object", Bucket=bucket, Key=PROBE_KEY)
            body = await asyncio.get_running_loop().run_in_executor(
                None, response["Body"].read
            )
            await self._call(
                "delete_objects",
                Bucket=bucket,
                Delete={"Objects": [{"Key": PROBE_KEY}]},
            )
        except Exception as exc:
            logger.error("s3.read_write_failed", bucket=bucket, error=str(exc))
            return False
        if body != PROBE_BODY:
            logger.error("s3.read_write_mismatch", bucket=bucket)
            return False
        logger.info("s3.read_write_verified", bucket=bucket)
        return True

    async def main(
        self,
        batch: Sequence[Record],
        record_kind: RecordKind | str,
        table_names: TableNames,
    ) -> InsertResult:
        kind = parse_record_kind(record_kind)
        if not batch:
            return InsertResult.success(self.destination_id, 0)

        t0 = time.monotonic()
        await self.init(table_names)
        key = object_key(table_names.for_kind(kind))
        await self._call(
            "put_object",
            Bucket=self._s3.bucket,
            Key=key,
            Body=gzip_ndjson(batch),
            ContentEncoding="gzip",
            ContentType="application/x-ndjson",
        )
        result = InsertResult.success(self.destination_id, len(batch), method="put")
        result.duration_ms = (time.monotonic() - t0) * 1000
        logger.info(
            "s3.batch_uploaded",
            destination_id=self.destination_id,
            key=key,
            rows=len(batch),
            duration_ms=round(result.duration_ms, 2),
        )
        return result

    async def drop(self, table_names: TableNames) -> DropSummary:
        """Delete every object whose key contains one of the table names."""
        await self.init(table_names)
        tables = table_names.all()
        paginator = self._session.connection.get_paginator("list_objects_v2")

        def _list() -> list[str]:
            keys: list[str] = []
            for page in paginator.paginate(Bucket=self._s3.bucket):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
            return keys

        loop = asyncio.get_running_loop()
        keys = [
            key
            for key in await loop.run_in_executor(None, _list)
            if any(table in key for table in tables)
        ]

        summary = DropSummary()
        for start in range(0, len(keys), _DELETE_CHUNK):
            chunk = keys[start : start + _DELETE_CHUNK]
            response = await self._call(
                "delete_objects",
                Bucket=self._s3.bucket,
                Delete={"Objects": [{"Key": k} for k in chunk]},
            )
            for err in response.get("Errors", []):
                summary.failures[err["Key"]] = err.get("Message", "")
            summary.resources_dropped.extend(
                k for k in chunk if k not in summary.failures
            )
        logger.warning(
            "s3.objects_deleted",
            bucket=self._s3.bucket,
            deleted=summary.num_resources_dropped,
            failed=len(summary.failures),
        )
        return summary

    async def health(self) -> dict[str, Any]:
        s = self._session
        ready = s.connection_ready and s.dataset_ready
        return {
            "destination_id": self.destination_id,
            "destination_type": self._config.destination_type.value,
            "status": "ready" if ready else "not_ready",
            "bucket": self._s3.bucket,
            "connection_ready": s.connection_ready,
            "dataset_ready": s.dataset_ready,
        }

    async def close(self) -> None:
        """No-op: boto3 clients hold no session that needs closing."""
