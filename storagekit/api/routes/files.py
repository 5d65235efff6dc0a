"""
File API endpoints.

Exposes the configured storage device over HTTP:
1. Client uploads a file whole, or chunk by chunk (PUT /{path})
2. Client downloads all or part of it (GET /{path})
3. Client moves, deletes or lists files

Chunked uploads are plain PUTs with ``chunk`` and ``chunks`` query
parameters. The upload finishes when every chunk has arrived, in any
order. An unfinished upload is cancelled with DELETE /{path}/upload.

Every path is normalized before it reaches the device, so ``..`` segments
cannot climb out of the device root.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from ...core.device import Device
from ...core.mime import guess_mime_type
from ...core.models import UploadProgress
from ...core.paths import absolute_path
from ..dependencies import AuthenticatedUser, DeviceDep, UploadSessionsDep
from ..uploads import UploadSessionStore

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class UploadResponse(BaseModel):
    """Progress after receiving a file or one chunk of it."""
    path: str = Field(description="Device path the file is stored under")
    chunks_received: int = Field(description="Distinct chunks received so far")
    chunks_total: int = Field(description="Chunks the upload consists of")
    complete: bool = Field(description="True once the file has been assembled")
    upload_id: Optional[str] = Field(
        default=None,
        description="Multipart upload id (object stores only, while in progress)"
    )


class AbortResponse(BaseModel):
    """Result of cancelling a chunked upload."""
    path: str = Field(description="Device path of the cancelled upload")
    aborted: bool = Field(description="False when no upload was in progress")


class DeleteResponse(BaseModel):
    """Result of a delete."""
    path: str = Field(description="Device path that was deleted")
    deleted: bool = Field(description="Whether the device reported success")


class MoveRequest(BaseModel):
    """Request to move a file on the same device."""
    target: str = Field(description="Destination path, relative to the device root")


class MoveResponse(BaseModel):
    """Result of a move."""
    source: str = Field(description="Device path moved from")
    target: str = Field(description="Device path moved to")
    moved: bool = Field(description="False when source and target are the same or the move failed")


class ListResponse(BaseModel):
    """One page of a listing."""
    prefix: str = Field(description="Device path that was listed")
    keys: list[str] = Field(description="Paths (local) or object keys")
    is_truncated: bool = Field(description="True if more keys remain")
    continuation_token: str = Field(description="Pass back to fetch the next page")
    key_count: int = Field(description="Number of keys in this page")


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def device_path(device: Device, path: str) -> str:
    """Map a request path onto the device, confined to its root."""
    return device.get_path(absolute_path(path).lstrip("/"))


def _receive_chunk(
    device: Device,
    sessions: UploadSessionStore,
    data: bytes,
    path: str,
    content_type: str,
    chunk: int,
    chunks: int,
) -> UploadProgress:
    with sessions.locked(path):
        progress = device.upload_data(
            data,
            path,
            content_type,
            chunk,
            chunks,
            sessions.get(path),
        )
        sessions.record(path, progress)
    return progress


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=ListResponse,
    summary="List files",
    description="List one page of files below a prefix.",
)
def list_files(
    user: AuthenticatedUser,
    device: DeviceDep,
    prefix: str = Query("", description="Directory (local) or key prefix"),
    max_keys: Optional[int] = Query(None, ge=1, description="Page size, capped by the device"),
    continuation_token: str = Query("", description="Token from the previous page"),
) -> ListResponse:
    listed = device_path(device, prefix)
    page = device.get_files(listed, max_keys, continuation_token)

    return ListResponse(
        prefix=listed,
        keys=page.keys,
        is_truncated=page.is_truncated,
        continuation_token=page.continuation_token,
        key_count=page.key_count,
    )


@router.put(
    "/{path:path}",
    response_model=UploadResponse,
    summary="Upload a file or one chunk of it",
    description=(
        "The request body is the raw content. For chunked uploads pass "
        "chunk (1-based) and chunks (total); chunks may arrive in any order."
    ),
)
async def upload_file(
    path: str,
    request: Request,
    user: AuthenticatedUser,
    device: DeviceDep,
    sessions: UploadSessionsDep,
    chunk: int = Query(1, ge=1, description="1-based index of this chunk"),
    chunks: int = Query(1, ge=1, description="Total number of chunks"),
) -> UploadResponse:
    target = device_path(device, path)
    data = await request.body()
    content_type = request.headers.get("content-type") or guess_mime_type(target)

    progress = await run_in_threadpool(
        _receive_chunk, device, sessions, data, target, content_type, chunk, chunks
    )

    logger.info(
        "Received upload",
        extra={
            "path": target,
            "chunk": chunk,
            "chunks": chunks,
            "size_bytes": len(data),
            "complete": progress.complete,
        },
    )

    return UploadResponse(
        path=target,
        chunks_received=progress.chunks_received,
        chunks_total=progress.chunks_total,
        complete=progress.complete,
        upload_id=progress.upload_id,
    )


@router.delete(
    "/{path:path}/upload",
    response_model=AbortResponse,
    summary="Cancel a chunked upload",
    description="Discard received chunks. Returns aborted=false when nothing was in progress.",
)
def abort_upload(
    path: str,
    user: AuthenticatedUser,
    device: DeviceDep,
    sessions: UploadSessionsDep,
) -> AbortResponse:
    target = device_path(device, path)

    with sessions.locked(target):
        aborted = device.abort(target, sessions.pop(target))

    logger.info("Upload abort requested", extra={"path": target, "aborted": aborted})
    return AbortResponse(path=target, aborted=aborted)


@router.post(
    "/{path:path}/move",
    response_model=MoveResponse,
    summary="Move a file",
)
def move_file(
    path: str,
    body: MoveRequest,
    user: AuthenticatedUser,
    device: DeviceDep,
) -> MoveResponse:
    source = device_path(device, path)
    target = device_path(device, body.target)

    moved = device.move(source, target)

    logger.info("Move requested", extra={"source": source, "target": target, "moved": moved})
    return MoveResponse(source=source, target=target, moved=moved)


@router.get(
    "/{path:path}",
    summary="Download a file",
    description="Returns the raw content, or the byte range given by offset and length.",
    responses={200: {"content": {"application/octet-stream": {}}}},
)
def download_file(
    path: str,
    user: AuthenticatedUser,
    device: DeviceDep,
    offset: int = Query(0, ge=0, description="First byte to return"),
    length: Optional[int] = Query(None, ge=0, description="Number of bytes to return"),
) -> Response:
    target = device_path(device, path)
    data = device.read(target, offset, length)

    return Response(content=data, media_type=guess_mime_type(target))


@router.delete(
    "/{path:path}",
    response_model=DeleteResponse,
    summary="Delete a file",
)
def delete_file(
    path: str,
    user: AuthenticatedUser,
    device: DeviceDep,
    recursive: bool = Query(False, description="Also delete everything below the path"),
) -> DeleteResponse:
    target = device_path(device, path)
    deleted = device.delete(target, recursive)

    logger.info("Delete requested", extra={"path": target, "deleted": deleted})
    return DeleteResponse(path=target, deleted=deleted)
