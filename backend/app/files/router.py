"""File routes. Every operation is scoped to the caller's own namespace."""

from __future__ import annotations

import io
from datetime import timedelta
from typing import Annotated, Any, cast
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import StreamingResponse

from ..auth.dependencies import CurrentAuth
from ..config import Settings, get_settings
from ..storage import FileNamespace, FileObject

router = APIRouter(prefix="/files", tags=["files"])


def get_file_namespace(request: Request) -> FileNamespace:
    return cast(FileNamespace, request.app.state.file_namespace)


NamespaceDep = Annotated[FileNamespace, Depends(get_file_namespace)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


def _clamp_limit(limit: int | None, settings: Settings) -> int:
    if limit is None or limit < 1 or limit > settings.files_max_limit:
        return settings.files_default_limit
    return limit


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_file(
    auth: CurrentAuth,
    namespace: NamespaceDep,
    file: Annotated[UploadFile | None, File()] = None,
) -> FileObject:
    if file is None or not file.filename:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="No file uploaded")
    size = file.size
    if size is None:
        file.file.seek(0, io.SEEK_END)
        size = file.file.tell()
        file.file.seek(0)
    return await namespace.upload(
        auth.subject.sub,
        file.filename,
        file.file,
        size,
        file.content_type,
    )


@router.get("")
async def list_files(
    auth: CurrentAuth,
    namespace: NamespaceDep,
    settings: SettingsDep,
    limit: Annotated[int | None, Query()] = None,
    cursor: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    page = await namespace.list(auth.subject.sub, _clamp_limit(limit, settings), cursor)
    response: dict[str, Any] = {
        "files": [item.model_dump(by_alias=True, mode="json") for item in page.files],
        "hasMore": page.has_more,
    }
    if page.next_cursor is not None:
        response["nextCursor"] = page.next_cursor
    return response


@router.get("/{file_id:path}/download")
async def download_file(
    file_id: str,
    auth: CurrentAuth,
    namespace: NamespaceDep,
) -> StreamingResponse:
    chunks, metadata = await namespace.download(auth.subject.sub, file_id)
    filename = metadata.name.rsplit("/", 1)[-1]
    headers = {
        "Content-Description": "File Transfer",
        "Content-Transfer-Encoding": "binary",
        "Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}",
        "Content-Length": str(metadata.size),
    }
    return StreamingResponse(
        chunks,
        media_type=metadata.content_type or "application/octet-stream",
        headers=headers,
    )


@router.get("/{file_id:path}")
async def get_file(
    file_id: str,
    auth: CurrentAuth,
    namespace: NamespaceDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    ttl = timedelta(seconds=settings.presigned_url_ttl_seconds)
    url = await namespace.presign(auth.subject.sub, file_id, ttl)
    return {"url": url, "expiresIn": settings.presigned_url_ttl_seconds, "fileId": file_id}


@router.delete("/{file_id:path}")
async def delete_file(
    file_id: str,
    auth: CurrentAuth,
    namespace: NamespaceDep,
) -> dict[str, str]:
    await namespace.delete(auth.subject.sub, file_id)
    return {"message": "File deleted successfully"}
