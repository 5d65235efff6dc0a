"""
Local filesystem storage device.

Paths handed to the device are used as given when absolute and resolved
against ``root`` otherwise. Multi-chunk uploads go through a
LocalChunkStore that keeps its progress on disk beside the target file.
"""

import hashlib
import logging
import os
import shutil
from pathlib import Path
from typing import Optional, Union

from ...core import transfer as transfer_engine
from ...core.device import DEFAULT_TRANSFER_CHUNK_SIZE, Device, validate_chunk
from ...core.errors import PathNotFoundError, StorageError
from ...core.mime import guess_mime_type
from ...core.models import DeviceType, ListingPage, UploadProgress, UploadState
from ...core.paths import absolute_path
from .chunks import LocalChunkStore

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000

_HASH_BLOCK_SIZE = 1024 * 1024


class LocalDevice:
    """Storage device for a directory on this machine or a mounted volume."""

    max_page_size = MAX_PAGE_SIZE

    def __init__(
        self,
        root: str = "",
        transfer_chunk_size: int = DEFAULT_TRANSFER_CHUNK_SIZE,
    ) -> None:
        self._root = root
        self.transfer_chunk_size = transfer_chunk_size

    @property
    def type(self) -> DeviceType:
        return DeviceType.LOCAL

    @property
    def name(self) -> str:
        return "Local Storage"

    @property
    def description(self) -> str:
        return "Adapter for Local storage that is in the physical or virtual machine or mounted to it."

    @property
    def root(self) -> str:
        return self._root

    def get_path(self, filename: str) -> str:
        return absolute_path(os.path.join(self._root, filename))

    def _resolve(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        if path.is_absolute() or not self._root:
            return path
        return Path(self._root) / path

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def upload(
        self,
        source: str,
        path: str,
        chunk: int = 1,
        chunks: int = 1,
        state: Optional[UploadState] = None,
    ) -> UploadProgress:
        """
        Move the file at ``source`` into place, whole or as one chunk.

        The source file is consumed: it is moved, not copied.
        """
        validate_chunk(chunk, chunks)
        source_path = Path(source)
        if not source_path.is_file():
            raise PathNotFoundError(source)

        target = self._resolve(path)

        if chunks == 1:
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(source_path), str(target))
            except OSError as e:
                raise StorageError(f"Can't upload file {target}: {e}") from e
            return UploadProgress(chunks_received=1, chunks_total=1)

        upload_state = LocalChunkStore(target).adopt_chunk(source_path, chunk, chunks)
        return UploadProgress(
            chunks_received=upload_state.chunks_received,
            chunks_total=chunks,
            state=upload_state,
        )

    def upload_data(
        self,
        data: Union[bytes, str],
        path: str,
        content_type: str,
        chunk: int = 1,
        chunks: int = 1,
        state: Optional[UploadState] = None,
    ) -> UploadProgress:
        # the chunk log on disk is authoritative, ``state`` is not consulted
        validate_chunk(chunk, chunks)
        if isinstance(data, str):
            data = data.encode("utf-8")

        if chunks == 1:
            self.write(path, data, content_type)
            return UploadProgress(chunks_received=1, chunks_total=1)

        upload_state = LocalChunkStore(self._resolve(path)).upload_chunk(data, chunk, chunks)
        return UploadProgress(
            chunks_received=upload_state.chunks_received,
            chunks_total=chunks,
            state=upload_state,
        )

    def abort(self, path: str, state: Union[UploadState, str, None] = None) -> bool:
        return LocalChunkStore(self._resolve(path)).abort()

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def read(self, path: str, offset: int = 0, length: Optional[int] = None) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise PathNotFoundError(path)

        with target.open("rb") as f:
            f.seek(offset)
            if length is None:
                return f.read()
            if length <= 0:
                return b""
            return f.read(length)

    def write(self, path: str, data: Union[bytes, str], content_type: str = "") -> bool:
        target = self._resolve(path)
        if isinstance(data, str):
            data = data.encode("utf-8")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Can't write to path {target}: {e}") from e
        return True

    def transfer(self, path: str, destination_path: str, destination: Device) -> bool:
        return transfer_engine.transfer(self, path, destination, destination_path)

    def move(self, source: str, target: str) -> bool:
        """Rename ``source`` to ``target``. False when they are the same or the rename fails."""
        if source == target:
            return False

        source_path = self._resolve(source)
        target_path = self._resolve(target)
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(source_path), str(target_path))
        except OSError as e:
            logger.warning(
                "Move failed",
                extra={"source": source, "target": target, "error": str(e)},
            )
            return False
        return True

    def delete(self, path: str, recursive: bool = False) -> bool:
        target = self._resolve(path)
        try:
            if target.is_dir() and not target.is_symlink():
                if not recursive:
                    return False
                shutil.rmtree(target)
            else:
                target.unlink()
        except OSError as e:
            logger.warning("Delete failed", extra={"path": path, "error": str(e)})
            return False
        return True

    def delete_path(self, path: str) -> bool:
        """Remove the directory ``path`` below the root and everything in it."""
        target = Path(self._root or ".") / absolute_path(path).lstrip("/")
        if not target.is_dir():
            return False

        try:
            shutil.rmtree(target)
        except OSError as e:
            logger.warning("Delete path failed", extra={"path": path, "error": str(e)})
            return False
        return True

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def get_file_size(self, path: str) -> int:
        try:
            return self._resolve(path).stat().st_size
        except FileNotFoundError as e:
            raise PathNotFoundError(path) from e

    def get_file_mime_type(self, path: str) -> str:
        return guess_mime_type(path)

    def get_file_hash(self, path: str) -> str:
        md5 = hashlib.md5()
        try:
            with self._resolve(path).open("rb") as f:
                for block in iter(lambda: f.read(_HASH_BLOCK_SIZE), b""):
                    md5.update(block)
        except FileNotFoundError as e:
            raise PathNotFoundError(path) from e
        return md5.hexdigest()

    # ------------------------------------------------------------------
    # Directories and partition
    # ------------------------------------------------------------------

    def create_directory(self, path: str) -> bool:
        try:
            self._resolve(path).mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Create directory failed", extra={"path": path, "error": str(e)})
            return False
        return True

    def get_directory_size(self, path: str) -> int:
        """Total size of non-hidden files below ``path``, or -1 on error."""
        try:
            return self._directory_size(self._resolve(path))
        except OSError:
            return -1

    def _directory_size(self, directory: Path) -> int:
        size = 0
        with os.scandir(directory) as entries:
            for entry in entries:
                if entry.name.startswith("."):
                    continue
                if entry.is_dir(follow_symlinks=False):
                    size += self._directory_size(Path(entry.path))
                else:
                    size += entry.stat().st_size
        return size

    def get_partition_free_space(self) -> int:
        return shutil.disk_usage(self._root or ".").free

    def get_partition_total_space(self) -> int:
        return shutil.disk_usage(self._root or ".").total

    def get_files(
        self,
        dir: str,
        max_keys: Optional[int] = None,
        continuation_token: str = "",
    ) -> ListingPage:
        """
        List the entries of ``dir`` as full paths, sorted by name.

        A missing directory lists as empty. When the page is truncated the
        continuation token is the last name returned; pass it back to
        continue after it.
        """
        limit = self.max_page_size if max_keys is None else max_keys
        directory = self._resolve(dir)

        try:
            names = sorted(os.listdir(directory))
        except OSError:
            names = []

        if continuation_token:
            names = [name for name in names if name > continuation_token]

        page = names[:limit]
        is_truncated = len(names) > len(page)

        return ListingPage(
            keys=[os.path.join(str(directory), name) for name in page],
            is_truncated=is_truncated,
            continuation_token=page[-1] if is_truncated and page else "",
            key_count=len(page),
            max_keys=limit,
        )
