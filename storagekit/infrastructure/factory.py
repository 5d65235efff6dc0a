"""Build the configured storage device."""

import logging
from pathlib import Path
from typing import Optional

import httpx

from ..config.settings import Settings
from ..core.device import Device
from ..core.errors import ValidationError
from .local.device import LocalDevice
from .s3.device import S3Device

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_ROOT = "data"


def create_device(
    settings: Settings,
    http_client: Optional[httpx.Client] = None,
) -> Device:
    """
    Create a storage device based on configuration.

    Args:
        settings: Application settings; ``settings.device`` picks the backend
        http_client: Optional httpx client for object stores (tests pass one
            wired to a mock transport)

    Returns:
        LocalDevice or S3Device

    Raises:
        ValidationError: if an object store is selected without credentials
    """
    if settings.device == "local":
        root = str(Path(settings.root or DEFAULT_LOCAL_ROOT).resolve())
        device: Device = LocalDevice(root, settings.transfer_chunk_size)
        logger.info("Created local device", extra={"root": root})
        return device

    missing = settings.validate_required_fields()
    if missing:
        raise ValidationError(f"Missing configuration for {settings.device}: {', '.join(missing)}")

    common = dict(
        root=settings.root,
        access_key=settings.access_key,
        secret_key=settings.secret_key,
        bucket=settings.bucket,
        acl=settings.acl,
        http_client=http_client,
        timeout=settings.http_timeout_seconds,
    )

    if settings.device == "s3":
        s3 = S3Device.aws(region=settings.region, endpoint=settings.endpoint, **common)
    elif settings.device == "wasabi":
        s3 = S3Device.wasabi(region=settings.region, **common)
    else:
        s3 = S3Device.minio(
            endpoint=settings.endpoint or "localhost:9000",
            use_ssl=settings.use_ssl,
            **common,
        )

    s3.transfer_chunk_size = settings.transfer_chunk_size
    logger.info(
        "Created object store device",
        extra={"device": settings.device, "bucket": settings.bucket, "region": settings.region},
    )
    return s3
