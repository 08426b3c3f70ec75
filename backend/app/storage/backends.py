"""Object store backends behind the per-user file namespace."""

from __future__ import annotations

import asyncio
import hashlib
import itertools
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, BinaryIO, Protocol, TypeVar
from urllib.parse import quote, urlparse

from minio import Minio
from minio.error import MinioException, S3Error
from urllib3.exceptions import HTTPError as TransportError

from ..errors import NotFound, StoreError, UpstreamUnavailable
from .models import ObjectInfo

LOGGER = logging.getLogger(__name__)

UPSTREAM = "object-store"
MISSING_OBJECT_CODES = frozenset({"NoSuchKey", "NoSuchObject", "NotFound", "ResourceNotFound"})
CHUNK_SIZE = 64 * 1024

T = TypeVar("T")


class ObjectStore(Protocol):
    """Raw key/value access to a single bucket."""

    async def ensure_bucket(self) -> None:
        ...

    async def put(
        self,
        key: str,
        stream: BinaryIO,
        length: int,
        content_type: str | None,
        metadata: dict[str, str],
    ) -> ObjectInfo:
        ...

    async def stat(self, key: str) -> ObjectInfo:
        ...

    async def open(self, key: str) -> Iterator[bytes]:
        ...

    async def list_objects(self, prefix: str, *, start_after: str | None, limit: int) -> list[ObjectInfo]:
        ...

    async def remove(self, key: str) -> None:
        ...

    async def presign(self, key: str, ttl: timedelta) -> str:
        ...


class MinioObjectStore:
    """Object store backed by MinIO or any S3 compatible service."""

    def __init__(
        self,
        *,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        secure: bool,
        region: str | None = None,
        client: Minio | None = None,
    ) -> None:
        self._bucket = bucket
        if client is None:
            parsed = urlparse(endpoint)
            netloc = parsed.netloc or parsed.path
            client = Minio(
                netloc,
                access_key=access_key,
                secret_key=secret_key,
                secure=secure,
                region=region,
            )
        self._client = client

    async def ensure_bucket(self) -> None:
        exists = await self._call("bucket_exists", self._client.bucket_exists, self._bucket)
        if not exists:
            await self._call("make_bucket", self._client.make_bucket, self._bucket)
            LOGGER.info("Created bucket", extra={"bucket": self._bucket})

    async def put(
        self,
        key: str,
        stream: BinaryIO,
        length: int,
        content_type: str | None,
        metadata: dict[str, str],
    ) -> ObjectInfo:
        def upload() -> Any:
            return self._client.put_object(
                self._bucket,
                key,
                stream,
                length,
                content_type=content_type or "application/octet-stream",
                metadata=metadata,
            )

        result = await self._call("put", upload)
        return ObjectInfo(
            key=key,
            size=length,
            etag=result.etag,
            content_type=content_type,
            metadata=metadata,
        )

    async def stat(self, key: str) -> ObjectInfo:
        stat = await self._call("stat", self._client.stat_object, self._bucket, key)
        return ObjectInfo(
            key=key,
            size=stat.size or 0,
            etag=stat.etag,
            content_type=stat.content_type,
            last_modified=stat.last_modified,
            metadata=dict(stat.metadata or {}),
        )

    async def open(self, key: str) -> Iterator[bytes]:
        response = await self._call("get", self._client.get_object, self._bucket, key)
        return _drain(response)

    async def list_objects(self, prefix: str, *, start_after: str | None, limit: int) -> list[ObjectInfo]:
        def collect() -> list[Any]:
            objects = self._client.list_objects(
                self._bucket,
                prefix=prefix,
                recursive=True,
                start_after=start_after,
                include_user_meta=True,
            )
            return list(itertools.islice(objects, limit))

        found = await self._call("list", collect)
        return [
            ObjectInfo(
                key=item.object_name,
                size=item.size or 0,
                etag=item.etag,
                content_type=item.content_type,
                last_modified=item.last_modified,
            )
            for item in found
        ]

    async def remove(self, key: str) -> None:
        await self._call("remove", self._client.remove_object, self._bucket, key)

    async def presign(self, key: str, ttl: timedelta) -> str:
        return await self._call(
            "presign", self._client.presigned_get_object, self._bucket, key, expires=ttl
        )

    async def _call(self, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except S3Error as exc:
            if exc.code in MISSING_OBJECT_CODES:
                raise NotFound() from exc
            LOGGER.error(
                "Object store request failed",
                extra={"operation": operation, "code": exc.code, "bucket": self._bucket},
            )
            raise StoreError(details={"operation": operation}) from exc
        except (MinioException, TransportError) as exc:
            LOGGER.error(
                "Object store unreachable",
                extra={"operation": operation, "error": str(exc)},
            )
            raise UpstreamUnavailable(UPSTREAM, operation) from exc


def _drain(response: Any) -> Iterator[bytes]:
    try:
        yield from response.stream(CHUNK_SIZE)
    finally:
        response.close()
        response.release_conn()


@dataclass(slots=True)
class _StoredBlob:
    data: bytes
    content_type: str | None
    last_modified: datetime
    metadata: dict[str, str]

    @property
    def etag(self) -> str:
        return hashlib.md5(self.data).hexdigest()  # noqa: S324 - S3 style etag, not security


class InMemoryObjectStore:
    """Dict-backed store used in tests and for running the API without MinIO."""

    def __init__(self, bucket: str = "memory") -> None:
        self._bucket = bucket
        self._objects: dict[str, _StoredBlob] = {}

    async def ensure_bucket(self) -> None:
        return None

    async def put(
        self,
        key: str,
        stream: BinaryIO,
        length: int,
        content_type: str | None,
        metadata: dict[str, str],
    ) -> ObjectInfo:
        data = stream.read(length) if length >= 0 else stream.read()
        blob = _StoredBlob(
            data=data,
            content_type=content_type,
            last_modified=datetime.now(UTC),
            metadata=dict(metadata),
        )
        self._objects[key] = blob
        return self._info(key, blob)

    async def stat(self, key: str) -> ObjectInfo:
        blob = self._objects.get(key)
        if blob is None:
            raise NotFound()
        return self._info(key, blob)

    async def open(self, key: str) -> Iterator[bytes]:
        blob = self._objects.get(key)
        if blob is None:
            raise NotFound()
        data = blob.data
        return iter([data[i : i + CHUNK_SIZE] for i in range(0, len(data), CHUNK_SIZE)])

    async def list_objects(self, prefix: str, *, start_after: str | None, limit: int) -> list[ObjectInfo]:
        keys = sorted(
            key
            for key in self._objects
            if key.startswith(prefix) and (start_after is None or key > start_after)
        )
        return [self._info(key, self._objects[key]) for key in keys[:limit]]

    async def remove(self, key: str) -> None:
        self._objects.pop(key, None)

    async def presign(self, key: str, ttl: timedelta) -> str:
        seconds = int(ttl.total_seconds())
        return f"memory://{self._bucket}/{quote(key)}?expires={seconds}"

    @staticmethod
    def _info(key: str, blob: _StoredBlob) -> ObjectInfo:
        return ObjectInfo(
            key=key,
            size=len(blob.data),
            etag=blob.etag,
            content_type=blob.content_type,
            last_modified=blob.last_modified,
            metadata=dict(blob.metadata),
        )
