"""
Exception hierarchy for storage devices.

Everything raised on purpose by a device derives from StorageError, so
callers can catch one type at the boundary (the API layer maps the
subclasses onto HTTP status codes).
"""

from typing import Any, Optional


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


class PathNotFoundError(StorageError):
    """Raised when a file or object does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File Not Found: {path}")
        self.path = path


class ProtocolError(StorageError):
    """
    Raised for non-2xx responses from an object store.

    Carries the status code and raw response body so callers can inspect
    the backend's error document (NoSuchUpload, SignatureDoesNotMatch, ...).
    """

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"HTTP {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class SignatureInputError(StorageError):
    """Raised when a request is missing a header required for signing."""
    pass


class ChunkMissingError(StorageError):
    """Raised when a part file is absent while joining a chunked upload."""

    def __init__(self, path: str, chunk: int) -> None:
        super().__init__(f"Chunk {chunk} missing while joining {path}")
        self.path = path
        self.chunk = chunk


class UnsupportedOperationError(StorageError):
    """Raised when a device cannot perform an operation at all."""
    pass


class ValidationError(StorageError, ValueError):
    """Raised when arguments to a device operation are invalid."""
    pass


class TransferError(StorageError):
    """
    Raised when a chunked transfer fails part-way.

    ``state`` is the last upload state the destination returned. For
    multipart destinations it holds the upload id, which the caller needs
    to either resume or abort the upload.
    """

    def __init__(
        self,
        message: str,
        chunk: int,
        total_chunks: int,
        state: Optional[Any] = None,
    ) -> None:
        super().__init__(f"{message} (chunk {chunk} of {total_chunks})")
        self.chunk = chunk
        self.total_chunks = total_chunks
        self.state = state
