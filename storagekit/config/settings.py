"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables prefixed with
``STORAGE_`` (or a ``.env`` file). Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

The ``local`` device needs nothing but a root directory, so the service
runs without any object store credentials.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DeviceName = Literal["local", "s3", "wasabi", "minio"]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via ``STORAGE_<NAME>`` environment
    variables. For lists (like api_keys), use comma-separated values.
    """

    # API Configuration
    api_title: str = "storagekit File API"
    api_version: str = "v1"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys. Using a list enables key rotation without downtime."
    )

    # Device selection
    device: DeviceName = Field(
        default="local",
        description="Storage backend: local, s3, wasabi or minio"
    )
    root: str = Field(
        default="",
        description="Root directory (local, defaults to ./data) or key prefix (object stores)"
    )
    transfer_chunk_size: int = Field(
        default=20_000_000,
        gt=0,
        description="Bytes per chunk when transferring files larger than this"
    )

    # Object store credentials and addressing
    access_key: str = Field(
        default="",
        description="Access key id for s3, wasabi and minio"
    )
    secret_key: str = Field(
        default="",
        description="Secret access key for s3, wasabi and minio"
    )
    bucket: str = Field(
        default="",
        description="Bucket name"
    )
    region: str = Field(
        default="us-east-1",
        description="Bucket region. China regions (cn-*) use the amazonaws.com.cn hosts."
    )
    acl: str = Field(
        default="private",
        description="Canned ACL sent with uploads (private, public-read, ...)"
    )
    endpoint: str = Field(
        default="",
        description="MinIO host:port, or a custom virtual-hosted endpoint for s3"
    )
    use_ssl: bool = Field(
        default=False,
        description="Use https for MinIO"
    )
    http_timeout_seconds: Optional[float] = Field(
        default=None,
        description="HTTP timeout for object store calls. None waits indefinitely."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STORAGE_",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set for the selected device.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on which device is configured.
        """
        missing = []

        if self.device == "local":
            return missing

        if not self.access_key:
            missing.append("STORAGE_ACCESS_KEY")
        if not self.secret_key:
            missing.append("STORAGE_SECRET_KEY")
        if not self.bucket:
            missing.append("STORAGE_BUCKET")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process. For tests, call
    get_settings.cache_clear() to reset.
    """
    return Settings()
