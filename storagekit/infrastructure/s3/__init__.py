"""
S3-compatible object storage.

SignerV4 signs requests, HostingStrategy decides where they go, and
ObjectProtocolClient sends them. S3Device puts those together behind the
Device protocol.
"""

from .client import ObjectProtocolClient, ObjectResponse
from .device import S3Device
from .hosting import HostingStrategy, aws_hosting, minio_hosting, wasabi_hosting
from .signer import SignerV4

__all__ = [
    "HostingStrategy",
    "ObjectProtocolClient",
    "ObjectResponse",
    "S3Device",
    "SignerV4",
    "aws_hosting",
    "minio_hosting",
    "wasabi_hosting",
]
