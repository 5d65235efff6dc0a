"""
Resumable chunked uploads on a plain filesystem.

The filesystem has no multipart API, so the upload is tracked on disk next
to the target file:

    dir/name.ext                           final file, created by join
    dir/tmp_name.ext/                      working directory
    dir/tmp_name.ext/name.ext_chunks.log   one line per received chunk index
    dir/tmp_name.ext/name.part.<n>         the bytes of chunk n

Everything needed to resume lives in those files, so an upload survives a
process restart. The store assumes a single writer per target path: two
processes appending to the same log can double count a chunk.
"""

import logging
import shutil
from pathlib import Path
from typing import Union

from ...core.errors import ChunkMissingError, StorageError
from ...core.models import LocalUploadState

logger = logging.getLogger(__name__)


class LocalChunkStore:
    """Chunk log, part files and join step for one target file."""

    def __init__(self, target: Union[str, Path]) -> None:
        self.target = Path(target)
        self.tmp_dir = self.target.parent / f"tmp_{self.target.name}"
        self.log_path = self.tmp_dir / f"{self.target.name}_chunks.log"

    def part_path(self, index: int) -> Path:
        return self.tmp_dir / f"{self.target.stem}.part.{index}"

    def chunks_received(self) -> int:
        """Count of non-empty lines in the chunk log."""
        try:
            lines = self.log_path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return 0
        return sum(1 for line in lines if line.strip())

    def state(self) -> LocalUploadState:
        return LocalUploadState(
            tmp_dir=self.tmp_dir,
            log_path=self.log_path,
            chunks_received=self.chunks_received(),
        )

    def upload_chunk(self, data: bytes, index: int, total: int) -> LocalUploadState:
        """Store chunk ``index`` from memory, joining once all ``total`` are in."""
        return self._record(index, total, lambda part: part.write_bytes(data))

    def adopt_chunk(self, source: Union[str, Path], index: int, total: int) -> LocalUploadState:
        """Move an existing file into place as chunk ``index``."""
        return self._record(index, total, lambda part: shutil.move(str(source), str(part)))

    def _record(self, index, total, place) -> LocalUploadState:
        part = self.part_path(index)

        try:
            self.tmp_dir.mkdir(parents=True, exist_ok=True)

            # a re-sent chunk overwrites its part but is only logged once
            if not part.exists():
                with self.log_path.open("a", encoding="utf-8") as log:
                    log.write(f"{index}\n")

            place(part)
        except OSError as e:
            raise StorageError(f"Failed to write chunk {index} for {self.target}: {e}") from e

        received = self.chunks_received()
        logger.debug(
            "Stored chunk",
            extra={"path": str(self.target), "chunk": index, "chunks": total, "received": received},
        )

        if received == total:
            self.join(total)

        return LocalUploadState(tmp_dir=self.tmp_dir, log_path=self.log_path, chunks_received=received)

    def join(self, total: int) -> None:
        """
        Concatenate parts 1..total into the target, in index order.

        A missing part raises ChunkMissingError and leaves the target
        partially written.
        """
        with self.target.open("wb") as output:
            for index in range(1, total + 1):
                part = self.part_path(index)
                try:
                    output.write(part.read_bytes())
                except FileNotFoundError as e:
                    logger.error(
                        "Chunk missing during join",
                        extra={"path": str(self.target), "chunk": index, "chunks": total},
                    )
                    raise ChunkMissingError(str(self.target), index) from e
                part.unlink()

        self.log_path.unlink(missing_ok=True)
        self.tmp_dir.rmdir()

        logger.info("Joined chunked upload", extra={"path": str(self.target), "chunks": total})

    def abort(self) -> bool:
        """
        Remove the target and all chunk state.

        Returns False when there is no working directory, meaning no upload
        was in progress for this path.
        """
        if self.target.is_file():
            self.target.unlink()

        if not self.tmp_dir.is_dir():
            logger.warning(
                "No chunked upload in progress to abort",
                extra={"path": str(self.target)},
            )
            return False

        shutil.rmtree(self.tmp_dir, ignore_errors=True)
        logger.info("Aborted chunked upload", extra={"path": str(self.target)})
        return not self.tmp_dir.exists()
