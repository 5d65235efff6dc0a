"""
Backend-agnostic storage logic.

This module doesn't import FastAPI, httpx, or any backend concern. Devices
are described by the Device protocol; transfer and move work against that
protocol only, so they run the same over any pair of backends.
"""

from .device import DEFAULT_TRANSFER_CHUNK_SIZE, Device, validate_chunk
from .errors import (
    ChunkMissingError,
    PathNotFoundError,
    ProtocolError,
    SignatureInputError,
    StorageError,
    TransferError,
    UnsupportedOperationError,
    ValidationError,
)
from .models import (
    DeviceType,
    ListingPage,
    LocalUploadState,
    MultipartUploadState,
    UploadProgress,
    UploadState,
)
from .paths import absolute_path

__all__ = [
    "DEFAULT_TRANSFER_CHUNK_SIZE",
    "ChunkMissingError",
    "Device",
    "DeviceType",
    "ListingPage",
    "LocalUploadState",
    "MultipartUploadState",
    "PathNotFoundError",
    "ProtocolError",
    "SignatureInputError",
    "StorageError",
    "TransferError",
    "UnsupportedOperationError",
    "UploadProgress",
    "UploadState",
    "ValidationError",
    "absolute_path",
    "validate_chunk",
]
