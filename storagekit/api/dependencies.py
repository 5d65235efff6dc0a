"""
FastAPI dependency injection.

Dependencies provide the storage device, the upload session store and
configuration to route handlers. Using dependency injection means:
- Routes don't build their own devices (easier to test)
- Tests swap in a device through app.dependency_overrides
- The device and its HTTP connection pool live for the whole process
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.device import Device
from ..infrastructure.factory import create_device
from .uploads import UploadSessionStore

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Process-wide instances, created on first use
_device: Optional[Device] = None
_upload_sessions: Optional[UploadSessionStore] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_device(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Device:
    """
    Provide the configured storage device.

    Built once and shared across requests: S3 devices hold an httpx
    connection pool, and nothing on a device is per-request.
    """
    global _device

    if _device is None:
        _device = create_device(settings)
        logger.info(
            "Created shared storage device",
            extra={"device": _device.type.value, "root": _device.root},
        )

    return _device


def get_upload_sessions() -> UploadSessionStore:
    """Provide the process-wide store of in-progress chunked uploads."""
    global _upload_sessions

    if _upload_sessions is None:
        _upload_sessions = UploadSessionStore()

    return _upload_sessions


def close_device() -> None:
    """Release the shared device's network resources, if it has any."""
    global _device

    client = getattr(_device, "client", None)
    if client is not None:
        client.close()
    _device = None


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
DeviceDep = Annotated[Device, Depends(get_device)]
UploadSessionsDep = Annotated[UploadSessionStore, Depends(get_upload_sessions)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
