"""
The storage device contract.

Using a Protocol means the transfer engine and the API layer never know
whether they are talking to a local disk or a bucket. Concrete devices
satisfy it independently; shared behaviour (transfer, move, path
normalization, MIME guessing) lives in free functions that take a Device.
"""

from typing import Optional, Protocol, Union

from .errors import ValidationError
from .models import DeviceType, ListingPage, UploadProgress, UploadState

DEFAULT_TRANSFER_CHUNK_SIZE = 20_000_000  # 20 MB


def validate_chunk(chunk: int, chunks: int) -> None:
    """Reject chunk coordinates outside ``1 <= chunk <= chunks``."""
    if chunks < 1:
        raise ValidationError(f"Total chunks must be at least 1, got {chunks}")
    if not 1 <= chunk <= chunks:
        raise ValidationError(f"Chunk index {chunk} is outside 1..{chunks}")


class Device(Protocol):
    """Interface every storage backend implements."""

    transfer_chunk_size: int
    max_page_size: int

    @property
    def name(self) -> str:
        """Human readable device name."""
        ...

    @property
    def type(self) -> DeviceType:
        ...

    @property
    def description(self) -> str:
        ...

    @property
    def root(self) -> str:
        """Root path (local) or key prefix (object stores)."""
        ...

    def get_path(self, filename: str) -> str:
        """Build the device path for ``filename`` under the root."""
        ...

    def upload(
        self,
        source: str,
        path: str,
        chunk: int = 1,
        chunks: int = 1,
        state: Optional[UploadState] = None,
    ) -> UploadProgress:
        """Upload the file at ``source`` (or one chunk of it) to ``path``."""
        ...

    def upload_data(
        self,
        data: Union[bytes, str],
        path: str,
        content_type: str,
        chunk: int = 1,
        chunks: int = 1,
        state: Optional[UploadState] = None,
    ) -> UploadProgress:
        """
        Upload in-memory content to ``path``.

        For multi-chunk uploads pass the ``state`` returned by the previous
        call; the upload finishes when every chunk index has been received.
        """
        ...

    def abort(self, path: str, state: Union[UploadState, str, None] = None) -> bool:
        """Abandon a chunked upload. Returns False when there was nothing to abort."""
        ...

    def read(self, path: str, offset: int = 0, length: Optional[int] = None) -> bytes:
        ...

    def write(self, path: str, data: Union[bytes, str], content_type: str = "") -> bool:
        ...

    def transfer(self, path: str, destination_path: str, destination: "Device") -> bool:
        """Copy ``path`` from this device to ``destination_path`` on ``destination``."""
        ...

    def move(self, source: str, target: str) -> bool:
        ...

    def delete(self, path: str, recursive: bool = False) -> bool:
        ...

    def delete_path(self, path: str) -> bool:
        """Delete everything below ``path`` (relative to the root)."""
        ...

    def exists(self, path: str) -> bool:
        ...

    def get_file_size(self, path: str) -> int:
        ...

    def get_file_mime_type(self, path: str) -> str:
        ...

    def get_file_hash(self, path: str) -> str:
        """
        MD5 of the content as a hex string.

        Object stores return the ETag instead, which is only the content
        MD5 for objects written in a single PUT.
        """
        ...

    def create_directory(self, path: str) -> bool:
        ...

    def get_directory_size(self, path: str) -> int:
        """Size in bytes, or -1 when it cannot be determined."""
        ...

    def get_partition_free_space(self) -> int:
        ...

    def get_partition_total_space(self) -> int:
        ...

    def get_files(
        self,
        dir: str,
        max_keys: Optional[int] = None,
        continuation_token: str = "",
    ) -> ListingPage:
        ...
