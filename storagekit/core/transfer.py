"""
Cross-device transfer.

Small files are copied with one read and one write. Anything larger than
the source device's transfer chunk size is streamed through the
destination's ``upload_data`` in fixed-size chunks, so the same loop
drives an S3 multipart upload or a local chunk log without knowing which
one it is talking to.

Chunks are sent strictly in order, one at a time. The upload state the
destination returns is handed back on the next call; nothing is mutated
in place.
"""

import logging
import math
from typing import Optional

from .device import Device
from .errors import PathNotFoundError, StorageError, TransferError
from .models import LocalUploadState, UploadState

logger = logging.getLogger(__name__)


def chunk_count(size: int, chunk_size: int) -> int:
    """Number of chunks needed to move ``size`` bytes."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return max(1, math.ceil(size / chunk_size))


def transfer(
    source: Device,
    path: str,
    destination: Device,
    destination_path: str,
) -> bool:
    """
    Copy ``path`` on ``source`` to ``destination_path`` on ``destination``.

    Raises PathNotFoundError before touching the destination if the source
    does not exist. A failure mid-stream raises TransferError naming the
    chunk. Local destinations are rolled back first; multipart uploads are
    left in place and the error carries their state so the caller can
    resume or abort them.
    """
    if not source.exists(path):
        raise PathNotFoundError(path)

    size = source.get_file_size(path)
    content_type = source.get_file_mime_type(path)
    chunk_size = source.transfer_chunk_size

    if size <= chunk_size:
        logger.debug(
            "Transferring in a single write",
            extra={"path": path, "destination": destination_path, "size_bytes": size},
        )
        data = source.read(path)
        return destination.write(destination_path, data, content_type)

    total_chunks = chunk_count(size, chunk_size)
    state: Optional[UploadState] = None

    logger.info(
        "Starting chunked transfer",
        extra={
            "path": path,
            "destination": destination_path,
            "size_bytes": size,
            "chunks": total_chunks,
        },
    )

    for counter in range(total_chunks):
        chunk = counter + 1
        try:
            data = source.read(path, counter * chunk_size, chunk_size)
            progress = destination.upload_data(
                data,
                destination_path,
                content_type,
                chunk,
                total_chunks,
                state,
            )
        except StorageError as e:
            logger.error(
                "Chunked transfer failed",
                extra={
                    "path": path,
                    "destination": destination_path,
                    "chunk": chunk,
                    "chunks": total_chunks,
                    "error": str(e),
                },
            )
            _rollback(destination, destination_path, state)
            raise TransferError(
                f"Transfer of {path} failed: {e}", chunk, total_chunks, state
            ) from e

        state = progress.state

    return True


def _rollback(destination: Device, path: str, state: Optional[UploadState]) -> None:
    # multipart uploads stay resumable, the caller owns their abort
    if state is not None and not isinstance(state, LocalUploadState):
        return

    try:
        destination.abort(path, state)
    except StorageError as e:
        logger.warning(
            "Rollback after failed transfer did not complete",
            extra={"path": path, "error": str(e)},
        )


def move(device: Device, source: str, target: str) -> bool:
    """
    Relocate ``source`` to ``target`` on the same device.

    Implemented as transfer-then-delete. This is not transactional: a crash
    between the two steps leaves both copies in place.
    """
    if source == target:
        return False

    try:
        if not transfer(device, source, device, target):
            return False
    except StorageError as e:
        logger.warning(
            "Move failed during transfer",
            extra={"source": source, "target": target, "error": str(e)},
        )
        return False

    return device.delete(source)
