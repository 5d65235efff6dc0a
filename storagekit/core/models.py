"""
Value objects passed between devices and the transfer engine.

These replace a free-form metadata dictionary that used to be mutated in
place across upload calls. Each upload call now receives the previous
state and returns a new one, so nothing is shared by reference.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional, Union


class DeviceType(Enum):
    """Supported storage backends."""
    LOCAL = "local"
    S3 = "s3"
    WASABI = "wasabi"
    MINIO = "minio"


@dataclass(frozen=True)
class MultipartUploadState:
    """
    Progress of an S3 multipart upload.

    ``parts`` maps 1-based part numbers to the ETag the store returned.
    Re-uploading a part replaces its ETag without adding to the count.
    """
    upload_id: str
    parts: dict[int, str] = field(default_factory=dict)

    @property
    def chunks_received(self) -> int:
        return len(self.parts)

    def with_part(self, part_number: int, etag: str) -> "MultipartUploadState":
        """Return a new state with ``part_number`` recorded."""
        return replace(self, parts={**self.parts, part_number: etag})


@dataclass(frozen=True)
class LocalUploadState:
    """
    Snapshot of a chunked upload on the local filesystem.

    The files on disk are authoritative; this is what they looked like
    after the last chunk was written.
    """
    tmp_dir: Path
    log_path: Path
    chunks_received: int


UploadState = Union[LocalUploadState, MultipartUploadState]


@dataclass(frozen=True)
class UploadProgress:
    """Result of a single ``upload`` / ``upload_data`` call."""
    chunks_received: int
    chunks_total: int
    state: Optional[UploadState] = None

    @property
    def complete(self) -> bool:
        return self.chunks_received == self.chunks_total

    @property
    def upload_id(self) -> Optional[str]:
        if isinstance(self.state, MultipartUploadState):
            return self.state.upload_id
        return None


@dataclass(frozen=True)
class ListingPage:
    """
    One page of keys from a listing call.

    Pagination is driven by the caller: keep passing ``continuation_token``
    back until ``is_truncated`` is False.
    """
    keys: list[str]
    is_truncated: bool = False
    continuation_token: str = ""
    key_count: int = 0
    max_keys: int = 0
