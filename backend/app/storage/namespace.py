"""Per-subject file namespace inside one shared bucket.

Every key handled here is built as ``<subject_id>/<name>``. Callers only ever
supply the name part, so one subject cannot address another subject's
objects.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import BinaryIO

from ..errors import InvalidFileName, ServiceError, TokenInvalid
from .backends import ObjectStore
from .metrics import STORAGE_OPERATIONS_TOTAL, STORAGE_UPLOAD_BYTES_TOTAL
from .models import FileObject, FilePage, ObjectInfo

LOGGER = logging.getLogger(__name__)


def namespace_prefix(subject_id: str) -> str:
    if not subject_id or "/" in subject_id:
        raise TokenInvalid("Token subject cannot own files", details={"subject": subject_id})
    return f"{subject_id}/"


def validate_file_name(name: str) -> str:
    if not name or name.startswith("/") or "\x00" in name:
        raise InvalidFileName()
    if any(part in ("", ".", "..") for part in name.split("/")):
        raise InvalidFileName()
    return name


def object_key(subject_id: str, name: str) -> str:
    return namespace_prefix(subject_id) + validate_file_name(name)


class FileNamespace:
    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    async def upload(
        self,
        subject_id: str,
        file_name: str,
        stream: BinaryIO,
        size: int,
        content_type: str | None,
    ) -> FileObject:
        key = object_key(subject_id, file_name)
        metadata = {
            "uploaded-by": subject_id,
            "upload-time": datetime.now(UTC).isoformat(timespec="seconds"),
        }
        with _track("upload"):
            info = await self._store.put(key, stream, size, content_type, metadata)
        STORAGE_UPLOAD_BYTES_TOTAL.inc(info.size)
        LOGGER.info("Stored file", extra={"key": key, "size": info.size})
        return _to_file(subject_id, info)

    async def list(self, subject_id: str, limit: int, cursor: str | None = None) -> FilePage:
        """Return up to ``limit`` files ordered by key, after ``cursor``.

        One extra entry is requested so ``next_cursor`` is only set when
        another page actually exists.
        """
        if limit < 1:
            raise ValueError("limit must be positive")
        prefix = namespace_prefix(subject_id)
        with _track("list"):
            found = await self._store.list_objects(
                prefix, start_after=cursor or None, limit=limit + 1
            )
        page = [_to_file(subject_id, info) for info in found[:limit]]
        next_cursor = page[-1].key if len(found) > limit else None
        return FilePage(files=page, next_cursor=next_cursor)

    async def stat(self, subject_id: str, file_key: str) -> FileObject:
        key = object_key(subject_id, file_key)
        with _track("stat"):
            info = await self._store.stat(key)
        return _to_file(subject_id, info)

    async def download(self, subject_id: str, file_key: str) -> tuple[Iterator[bytes], FileObject]:
        key = object_key(subject_id, file_key)
        with _track("download"):
            info = await self._store.stat(key)
            chunks = await self._store.open(key)
        return chunks, _to_file(subject_id, info)

    async def presign(self, subject_id: str, file_key: str, ttl: timedelta) -> str:
        key = object_key(subject_id, file_key)
        with _track("presign"):
            await self._store.stat(key)
            return await self._store.presign(key, ttl)

    async def delete(self, subject_id: str, file_key: str) -> None:
        key = object_key(subject_id, file_key)
        with _track("delete"):
            await self._store.remove(key)
        LOGGER.info("Deleted file", extra={"key": key})


@contextmanager
def _track(operation: str) -> Iterator[None]:
    try:
        yield
    except ServiceError as exc:
        STORAGE_OPERATIONS_TOTAL.labels(operation, exc.reason).inc()
        raise
    STORAGE_OPERATIONS_TOTAL.labels(operation, "ok").inc()


def _to_file(subject_id: str, info: ObjectInfo) -> FileObject:
    prefix = namespace_prefix(subject_id)
    name = info.key[len(prefix) :] if info.key.startswith(prefix) else info.key
    return FileObject(
        key=info.key,
        name=name,
        size=info.size,
        content_type=info.content_type,
        last_modified=info.last_modified,
        etag=info.etag,
    )
