"""
storagekit - one interface for files on local disks and S3-compatible stores.

This package contains the complete library and its HTTP service:
- core: Backend-agnostic device contract, value objects, transfer engine
- infrastructure: Local filesystem and S3/Wasabi/MinIO devices
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
