"""
Infrastructure layer - concrete storage backends.

Each subdirectory implements the Device protocol for one kind of backend:
- local: Files on a mounted filesystem, with an on-disk chunk log
- s3: AWS S3, Wasabi and MinIO over the signed REST protocol

factory.create_device builds whichever one the settings select.
"""
