"""Local filesystem device."""

from .chunks import LocalChunkStore
from .device import LocalDevice

__all__ = ["LocalChunkStore", "LocalDevice"]
