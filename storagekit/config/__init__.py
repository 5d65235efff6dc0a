"""
Application configuration using Pydantic settings.

Configuration comes from STORAGE_* environment variables with sensible
defaults. The default local device needs no credentials.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
