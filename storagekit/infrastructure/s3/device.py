"""
S3-compatible storage device (AWS S3, Wasabi, MinIO).

One class for all three: vendor differences live in the HostingStrategy
handed to the ObjectProtocolClient. Multi-chunk uploads are mapped onto
the multipart protocol, with part ETags carried between calls in a
MultipartUploadState.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import httpx

from ...core import transfer as transfer_engine
from ...core.device import DEFAULT_TRANSFER_CHUNK_SIZE, Device, validate_chunk
from ...core.errors import (
    PathNotFoundError,
    ProtocolError,
    StorageError,
    UnsupportedOperationError,
    ValidationError,
)
from ...core.mime import guess_mime_type
from ...core.models import (
    DeviceType,
    ListingPage,
    MultipartUploadState,
    UploadProgress,
    UploadState,
)
from ...core.paths import absolute_path
from .client import ACL_PRIVATE, MAX_PAGE_SIZE, ObjectProtocolClient, listing_keys
from .hosting import aws_hosting, minio_hosting, wasabi_hosting
from .signer import SignerV4

logger = logging.getLogger(__name__)

_DESCRIPTIONS = {
    DeviceType.S3: ("S3 Storage", "S3 Bucket Storage drive for AWS or on premise solution"),
    DeviceType.WASABI: ("Wasabi Storage", "Wasabi Storage"),
    DeviceType.MINIO: ("MinIO Storage", "MinIO S3-compatible object storage server"),
}


class S3Device:
    """Storage device backed by an S3-compatible bucket."""

    max_page_size = MAX_PAGE_SIZE

    def __init__(
        self,
        root: str,
        client: ObjectProtocolClient,
        transfer_chunk_size: int = DEFAULT_TRANSFER_CHUNK_SIZE,
    ) -> None:
        self._root = root
        self.client = client
        self.transfer_chunk_size = transfer_chunk_size

    @classmethod
    def aws(
        cls,
        root: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        region: str = "us-east-1",
        acl: str = ACL_PRIVATE,
        endpoint: str = "",
        http_client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ) -> "S3Device":
        client = ObjectProtocolClient(
            SignerV4(access_key, secret_key, region),
            aws_hosting(bucket, region, endpoint),
            acl=acl,
            http_client=http_client,
            timeout=timeout,
        )
        return cls(root, client)

    @classmethod
    def wasabi(
        cls,
        root: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        region: str = "eu-central-1",
        acl: str = ACL_PRIVATE,
        http_client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ) -> "S3Device":
        client = ObjectProtocolClient(
            SignerV4(access_key, secret_key, region),
            wasabi_hosting(bucket, region),
            acl=acl,
            http_client=http_client,
            timeout=timeout,
        )
        return cls(root, client)

    @classmethod
    def minio(
        cls,
        root: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        endpoint: str = "localhost:9000",
        acl: str = ACL_PRIVATE,
        use_ssl: bool = False,
        http_client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ) -> "S3Device":
        # MinIO ignores the region but SigV4 still needs one
        client = ObjectProtocolClient(
            SignerV4(access_key, secret_key, "us-east-1"),
            minio_hosting(bucket, endpoint, use_ssl),
            acl=acl,
            http_client=http_client,
            timeout=timeout,
        )
        return cls(root, client)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def type(self) -> DeviceType:
        return self.client.hosting.device_type

    @property
    def name(self) -> str:
        return _DESCRIPTIONS[self.type][0]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self.type][1]

    @property
    def root(self) -> str:
        return self._root

    def get_path(self, filename: str) -> str:
        return absolute_path(f"{self._root}/{filename}")

    def _resolve(self, path: str) -> str:
        # keys with a leading slash are bucket-absolute, anything else sits under root
        if path.startswith("/") or not self._root:
            return path
        resolved = absolute_path(f"{self._root}/{path}")
        if (not path or path.endswith("/")) and resolved != "/":
            resolved += "/"
        return resolved

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def upload(
        self,
        source: str,
        path: str,
        chunk: int = 1,
        chunks: int = 1,
        state: Optional[UploadState] = None,
    ) -> UploadProgress:
        try:
            data = Path(source).read_bytes()
        except FileNotFoundError as e:
            raise PathNotFoundError(source) from e

        return self.upload_data(data, path, guess_mime_type(source), chunk, chunks, state)

    def upload_data(
        self,
        data: Union[bytes, str],
        path: str,
        content_type: str,
        chunk: int = 1,
        chunks: int = 1,
        state: Optional[UploadState] = None,
    ) -> UploadProgress:
        """
        Store ``data`` whole, or as part ``chunk`` of a multipart upload.

        The first part of an upload initiates it. If that part fails, the
        fresh upload is aborted before the error propagates, since the
        caller never received a state to resume or abort it with.
        """
        validate_chunk(chunk, chunks)
        if isinstance(data, str):
            data = data.encode("utf-8")
        path = self._resolve(path)

        if chunk == 1 and chunks == 1:
            self.write(path, data, content_type)
            return UploadProgress(chunks_received=1, chunks_total=1)

        if state is not None and not isinstance(state, MultipartUploadState):
            raise ValidationError("S3 uploads can only resume from a multipart upload state")

        initiated = state is None
        if state is None:
            upload_id = self.client.create_multipart_upload(path, content_type)
            state = MultipartUploadState(upload_id=upload_id)

        try:
            etag = self.client.upload_part(data, path, content_type, chunk, state.upload_id)
        except StorageError:
            if initiated:
                self._discard_upload(path, state.upload_id)
            raise
        state = state.with_part(chunk, etag.strip('"'))

        logger.debug(
            "Uploaded part",
            extra={
                "path": path,
                "upload_id": state.upload_id,
                "chunk": chunk,
                "chunks": chunks,
                "received": state.chunks_received,
            },
        )

        if state.chunks_received == chunks:
            self.client.complete_multipart_upload(path, state.upload_id, state.parts)

        return UploadProgress(
            chunks_received=state.chunks_received,
            chunks_total=chunks,
            state=state,
        )

    def abort(self, path: str, state: Union[UploadState, str, None] = None) -> bool:
        """
        Abort a multipart upload by state or raw upload id.

        Returns False, without raising, when there is no upload id or the
        store no longer knows the upload.
        """
        if isinstance(state, MultipartUploadState):
            upload_id = state.upload_id
        elif isinstance(state, str):
            upload_id = state
        else:
            upload_id = ""

        if not upload_id:
            logger.warning("Abort requested without an upload id", extra={"path": path})
            return False

        try:
            self.client.abort_multipart_upload(self._resolve(path), upload_id)
        except ProtocolError as e:
            if e.status_code != 404:
                raise
            logger.warning(
                "Multipart upload already gone",
                extra={"path": path, "upload_id": upload_id},
            )
            return False

        return True

    def _discard_upload(self, path: str, upload_id: str) -> None:
        try:
            self.client.abort_multipart_upload(path, upload_id)
        except StorageError as e:
            logger.error(
                "Could not abort multipart upload after its first part failed",
                extra={"path": path, "upload_id": upload_id, "error": str(e)},
            )

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def read(self, path: str, offset: int = 0, length: Optional[int] = None) -> bytes:
        return self.client.get_object(self._resolve(path), offset, length)

    def write(self, path: str, data: Union[bytes, str], content_type: str = "") -> bool:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.client.put_object(self._resolve(path), data, content_type)
        return True

    def transfer(self, path: str, destination_path: str, destination: Device) -> bool:
        return transfer_engine.transfer(self, path, destination, destination_path)

    def move(self, source: str, target: str) -> bool:
        return transfer_engine.move(self, source, target)

    def delete(self, path: str, recursive: bool = False) -> bool:
        path = self._resolve(path)
        self.client.delete_object(path)
        if recursive:
            self.client.delete_all_under_prefix(f"{path.rstrip('/')}/")
        return True

    def delete_path(self, path: str) -> bool:
        """Delete every object below ``path``, which is always taken relative to root."""
        self.client.delete_all_under_prefix(f"{self.get_path(path).rstrip('/')}/")
        return True

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(self._resolve(path))
        except PathNotFoundError:
            return False
        return True

    def get_file_size(self, path: str) -> int:
        return int(self.client.head_object(self._resolve(path)).get("content-length") or 0)

    def get_file_mime_type(self, path: str) -> str:
        return self.client.head_object(self._resolve(path)).get("content-type", "")

    def get_file_hash(self, path: str) -> str:
        # the ETag, which differs from the content MD5 for multipart objects
        return self.client.head_object(self._resolve(path)).get("etag", "").strip('"')

    def create_directory(self, path: str) -> bool:
        # object stores have no directories
        return True

    def get_directory_size(self, path: str) -> int:
        return -1

    def get_partition_free_space(self) -> int:
        return -1

    def get_partition_total_space(self) -> int:
        raise UnsupportedOperationError("Partition total space is not available for object storage")

    def get_files(
        self,
        dir: str,
        max_keys: Optional[int] = None,
        continuation_token: str = "",
    ) -> ListingPage:
        listing = self.client.list_objects(
            self._resolve(dir),
            self.max_page_size if max_keys is None else max_keys,
            continuation_token,
        )
        return ListingPage(
            keys=listing_keys(listing),
            is_truncated=listing.get("IsTruncated") == "true",
            continuation_token=listing.get("NextContinuationToken", ""),
            key_count=int(listing.get("KeyCount") or 0),
            max_keys=int(listing.get("MaxKeys") or 0),
        )
