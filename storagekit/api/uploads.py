"""
In-process tracking of chunked uploads received over HTTP.

An HTTP client sends chunks as independent requests, so the UploadState a
device returns has to be parked somewhere between them. This store keeps
it in memory, keyed by device path. It is lost on restart: local uploads
can carry on because their progress is on disk, multipart uploads have to
be restarted (or aborted by upload id).

Chunks for the same path are handled one at a time. Two concurrent first
chunks would otherwise both start a multipart upload.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from ..core.models import UploadProgress, UploadState

logger = logging.getLogger(__name__)


class UploadSessionStore:
    """Upload states for in-progress chunked uploads, one per path."""

    def __init__(self) -> None:
        self._states: dict[str, UploadState] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, path: str) -> Optional[UploadState]:
        with self._guard:
            return self._states.get(path)

    def pop(self, path: str) -> Optional[UploadState]:
        with self._guard:
            return self._states.pop(path, None)

    def record(self, path: str, progress: UploadProgress) -> None:
        """Keep the state of an unfinished upload, forget a finished one."""
        with self._guard:
            if progress.complete or progress.state is None:
                self._states.pop(path, None)
            else:
                self._states[path] = progress.state

    def __contains__(self, path: str) -> bool:
        with self._guard:
            return path in self._states

    def __len__(self) -> int:
        with self._guard:
            return len(self._states)

    @contextmanager
    def locked(self, path: str) -> Iterator[None]:
        """Serialize work on ``path``."""
        with self._guard:
            lock = self._locks.setdefault(path, threading.Lock())
        with lock:
            yield
