"""
Where an S3-compatible bucket lives and how its URLs are addressed.

AWS and Wasabi use virtual-hosted URLs (``bucket.host/key``). MinIO is
addressed path-style (``host/bucket/key``) because a local MinIO rarely
has wildcard DNS for bucket subdomains.
"""

import re
from dataclasses import dataclass

from ...core.models import DeviceType

CHINA_REGIONS = frozenset({"cn-north-1", "cn-north-4", "cn-northwest-1"})

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


@dataclass(frozen=True)
class HostingStrategy:
    """
    Host and URL construction for one bucket.

    ``request_target`` is the only thing the protocol client asks of it:
    given an object URI it returns the host header and the path to sign
    and request.
    """
    bucket: str
    host: str
    path_style: bool = False
    scheme: str = "https"
    device_type: DeviceType = DeviceType.S3

    def request_target(self, uri: str) -> tuple[str, str]:
        if self.path_style:
            return self.host, f"/{self.bucket}{uri}"
        return self.host, uri

    def url(self, path: str) -> str:
        return f"{self.scheme}://{self.host}{path}"


def _strip_scheme(endpoint: str) -> str:
    return _SCHEME.sub("", endpoint.strip()).rstrip("/")


def aws_hosting(bucket: str, region: str = "us-east-1", endpoint: str = "") -> HostingStrategy:
    """AWS S3, the China partition, or any virtual-hosted custom endpoint."""
    if endpoint:
        host = f"{bucket}.{_strip_scheme(endpoint)}"
    elif region in CHINA_REGIONS:
        host = f"{bucket}.s3.{region}.amazonaws.com.cn"
    else:
        host = f"{bucket}.s3.{region}.amazonaws.com"
    return HostingStrategy(bucket=bucket, host=host)


def wasabi_hosting(bucket: str, region: str = "eu-central-1") -> HostingStrategy:
    return HostingStrategy(
        bucket=bucket,
        host=f"{bucket}.s3.{region}.wasabisys.com",
        device_type=DeviceType.WASABI,
    )


def minio_hosting(bucket: str, endpoint: str = "localhost:9000", use_ssl: bool = False) -> HostingStrategy:
    return HostingStrategy(
        bucket=bucket,
        host=_strip_scheme(endpoint),
        path_style=True,
        scheme="https" if use_ssl else "http",
        device_type=DeviceType.MINIO,
    )
