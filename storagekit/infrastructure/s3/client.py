"""
Signed HTTP client for S3-compatible object stores.

Speaks the REST protocol directly: every request is signed with SigV4,
XML responses are decoded into plain dictionaries, and the multipart
upload calls (initiate, upload part, complete, abort) are exposed one to
one so the device layer can drive them chunk by chunk.

Headers are assembled fresh for every call. The client holds no
per-request state, so independent uploads can run concurrently on the
same instance.
"""

import base64
import hashlib
import logging
import xml.etree.ElementTree as ElementTree
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Callable, Mapping, Optional, Union
from urllib.parse import quote
from xml.sax.saxutils import escape

import httpx

from ...core.errors import PathNotFoundError, ProtocolError, StorageError, ValidationError
from ...core.paths import absolute_path
from .hosting import HostingStrategy
from .signer import SignerV4, amz_date, canonical_query_string, sha256_hex

logger = logging.getLogger(__name__)

METHOD_GET = "GET"
METHOD_POST = "POST"
METHOD_PUT = "PUT"
METHOD_DELETE = "DELETE"
METHOD_HEAD = "HEAD"

ACL_PRIVATE = "private"
ACL_PUBLIC_READ = "public-read"
ACL_PUBLIC_READ_WRITE = "public-read-write"
ACL_AUTHENTICATED_READ = "authenticated-read"

# ListObjectsV2 never returns more than this per page
MAX_PAGE_SIZE = 1000

S3_XMLNS = "http://s3.amazonaws.com/doc/2006-03-01/"


@dataclass
class ObjectResponse:
    """A decoded response: XML bodies become dicts, everything else stays bytes."""
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Union[dict[str, Any], bytes] = b""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _element_to_dict(element: ElementTree.Element) -> dict[str, Any]:
    """
    Convert children of ``element`` into a dict.

    A tag seen once maps to its value; a repeated tag maps to a list. This
    mirrors how S3 documents are usually consumed, and it is why callers
    must handle ``Contents`` being either a dict or a list.
    """
    result: dict[str, Any] = {}
    for child in element:
        tag = _local_name(child.tag)
        value: Any = _element_to_dict(child) if len(child) else (child.text or "")
        if tag not in result:
            result[tag] = value
        elif isinstance(result[tag], list):
            result[tag].append(value)
        else:
            result[tag] = [result[tag], value]
    return result


def parse_xml(content: bytes) -> dict[str, Any]:
    """Parse an S3 XML document, dropping the root element."""
    return _element_to_dict(ElementTree.fromstring(content))


def _is_xml(content_type: str, content: bytes) -> bool:
    if content_type == "application/xml":
        return True
    return content.lstrip().startswith(b"<?xml") and content_type != "image/svg+xml"


def content_md5(data: bytes) -> str:
    """Base64 of the raw MD5 digest, as the Content-MD5 header wants it."""
    return base64.b64encode(hashlib.md5(data).digest()).decode("ascii")


def object_uri(path: str) -> str:
    """Normalize an object key and percent-encode it for the request line."""
    return quote(absolute_path(path), safe="/~")


class ObjectProtocolClient:
    """
    Low-level S3 REST client.

    Parameterized by a HostingStrategy instead of being subclassed per
    vendor: AWS, Wasabi and MinIO differ only in how the host and request
    path are built.
    """

    def __init__(
        self,
        signer: SignerV4,
        hosting: HostingStrategy,
        acl: str = ACL_PRIVATE,
        http_client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.signer = signer
        self.hosting = hosting
        self.acl = acl
        self._http = http_client or httpx.Client(timeout=timeout)
        self._clock = clock

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ObjectProtocolClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Signed call
    # ------------------------------------------------------------------

    def call(
        self,
        method: str,
        uri: str,
        body: Union[bytes, str] = b"",
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        decode: bool = True,
    ) -> ObjectResponse:
        """
        Sign and send one request.

        ``headers`` override the defaults (date, content hashes). Empty
        header values are dropped before signing. Raises ProtocolError for
        any non-2xx response and StorageError when no response arrives.
        """
        if isinstance(body, str):
            body = body.encode("utf-8")
        params = dict(params or {})

        host, path = self.hosting.request_target(object_uri(uri))
        now = self._clock()

        request_headers = {
            "host": host,
            "date": format_datetime(now.astimezone(timezone.utc), usegmt=True),
            "content-md5": content_md5(body),
            "x-amz-date": amz_date(now),
            "x-amz-content-sha256": sha256_hex(body),
        }
        for name, value in (headers or {}).items():
            request_headers[name.lower()] = value
        request_headers = {name: value for name, value in request_headers.items() if value}

        request_headers["authorization"] = self.signer.sign(
            method,
            path,
            params,
            request_headers,
            request_headers["x-amz-content-sha256"],
        )

        url = self.hosting.url(path)
        if params:
            url = f"{url}?{canonical_query_string(params)}"

        logger.debug(
            "Object store request",
            extra={"method": method, "url": url, "size_bytes": len(body)},
        )

        try:
            response = self._http.request(
                method,
                url,
                headers=request_headers,
                content=body if method in (METHOD_PUT, METHOD_POST) else None,
            )
        except httpx.HTTPError as e:
            logger.warning(
                "Object store request did not complete",
                extra={"method": method, "url": url, "error": str(e)},
            )
            raise StorageError(f"{method} {url} failed: {e}") from e

        if not response.is_success:
            logger.warning(
                "Object store request failed",
                extra={"method": method, "url": url, "status_code": response.status_code},
            )
            raise ProtocolError(response.status_code, response.text)

        response_headers = {name.lower(): value for name, value in response.headers.items()}
        content = response.content
        content_type = response_headers.get("content-type", "").split(";", 1)[0].strip()

        decoded: Union[dict[str, Any], bytes] = content
        if decode and content and _is_xml(content_type, content):
            decoded = parse_xml(content)

        return ObjectResponse(
            status_code=response.status_code,
            headers=response_headers,
            body=decoded,
        )

    # ------------------------------------------------------------------
    # Multipart upload
    # ------------------------------------------------------------------

    def create_multipart_upload(self, path: str, content_type: str) -> str:
        """Initiate a multipart upload and return its upload id."""
        response = self.call(
            METHOD_POST,
            path,
            params={"uploads": ""},
            headers={"content-type": content_type, "x-amz-acl": self.acl},
        )

        upload_id = response.body.get("UploadId") if isinstance(response.body, dict) else None
        if not upload_id:
            raise StorageError(f"Object store did not return an upload id for {path}")

        logger.info("Multipart upload started", extra={"path": path, "upload_id": upload_id})
        return upload_id

    def upload_part(
        self,
        data: bytes,
        path: str,
        content_type: str,
        part_number: int,
        upload_id: str,
    ) -> str:
        """Upload one part and return the ETag header as sent (quotes included)."""
        response = self.call(
            METHOD_PUT,
            path,
            data,
            params={"partNumber": str(part_number), "uploadId": upload_id},
            headers={"content-type": content_type},
        )
        return response.headers.get("etag", "")

    def complete_multipart_upload(
        self,
        path: str,
        upload_id: str,
        parts: Mapping[int, str],
    ) -> None:
        """
        Finish an upload from its part ETags.

        Parts are listed in ascending part-number order. Whether every part
        is present is left to the store to decide.
        """
        body = "<CompleteMultipartUpload>"
        for part_number in sorted(parts, key=int):
            body += (
                f"<Part><ETag>{escape(parts[part_number])}</ETag>"
                f"<PartNumber>{int(part_number)}</PartNumber></Part>"
            )
        body += "</CompleteMultipartUpload>"

        self.call(
            METHOD_POST,
            path,
            body,
            params={"uploadId": upload_id},
            headers={"content-type": "application/xml"},
        )
        logger.info(
            "Multipart upload completed",
            extra={"path": path, "upload_id": upload_id, "parts": len(parts)},
        )

    def abort_multipart_upload(self, path: str, upload_id: str) -> None:
        self.call(METHOD_DELETE, path, params={"uploadId": upload_id})
        logger.info("Multipart upload aborted", extra={"path": path, "upload_id": upload_id})

    # ------------------------------------------------------------------
    # Single-shot object operations
    # ------------------------------------------------------------------

    def put_object(self, path: str, data: bytes, content_type: str = "") -> None:
        self.call(
            METHOD_PUT,
            path,
            data,
            headers={"content-type": content_type, "x-amz-acl": self.acl},
        )

    def get_object(self, path: str, offset: int = 0, length: Optional[int] = None) -> bytes:
        """Read an object, or the byte range ``[offset, offset + length)`` of it."""
        if length is not None and length <= 0:
            return b""

        headers = {}
        if length is not None:
            headers["range"] = f"bytes={offset}-{offset + length - 1}"
        elif offset:
            headers["range"] = f"bytes={offset}-"

        try:
            response = self.call(METHOD_GET, path, headers=headers, decode=False)
        except ProtocolError as e:
            if e.status_code == 404:
                raise PathNotFoundError(path) from e
            raise
        return response.body

    def head_object(self, path: str) -> dict[str, str]:
        """Return the object's response headers (content-length, etag, ...)."""
        try:
            response = self.call(METHOD_HEAD, path)
        except ProtocolError as e:
            if e.status_code == 404:
                raise PathNotFoundError(path) from e
            raise
        return response.headers

    def delete_object(self, path: str) -> None:
        self.call(METHOD_DELETE, path)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_objects(
        self,
        prefix: str = "",
        max_keys: int = MAX_PAGE_SIZE,
        continuation_token: str = "",
    ) -> dict[str, Any]:
        """One ListObjectsV2 page as a dict (KeyCount, Contents, IsTruncated, ...)."""
        if max_keys > MAX_PAGE_SIZE:
            raise ValidationError(f"Cannot list more than {MAX_PAGE_SIZE} objects")

        params = {
            "list-type": "2",
            "prefix": prefix.lstrip("/"),
            "max-keys": str(max_keys),
        }
        if continuation_token:
            params["continuation-token"] = continuation_token

        response = self.call(
            METHOD_GET,
            "/",
            params=params,
            headers={"content-type": "text/plain"},
        )
        return response.body if isinstance(response.body, dict) else {}

    def delete_all_under_prefix(self, prefix: str) -> int:
        """
        Batch-delete every object below ``prefix``.

        Lists a page, posts a quiet multi-object Delete for it, and repeats
        while the listing hands back a continuation token. Returns the
        number of keys submitted for deletion.
        """
        deleted = 0
        continuation_token = ""

        while True:
            listing = self.list_objects(prefix, MAX_PAGE_SIZE, continuation_token)
            contents = listing.get("Contents")

            if not contents:
                break

            continuation_token = listing.get("NextContinuationToken", "")

            body = f'<Delete xmlns="{S3_XMLNS}">'
            if isinstance(contents, dict):
                # a single-key page decodes to one mapping, not a list
                body += f"<Object><Key>{escape(contents['Key'])}</Key></Object>"
                count = 1
            else:
                for entry in contents:
                    body += f"<Object><Key>{escape(entry['Key'])}</Key></Object>"
                count = len(contents)
            body += "<Quiet>true</Quiet></Delete>"

            self.call(
                METHOD_POST,
                "/",
                body,
                params={"delete": ""},
                headers={"content-type": "application/xml"},
            )
            deleted += count

            if not continuation_token:
                break

        logger.info("Deleted objects under prefix", extra={"prefix": prefix, "count": deleted})
        return deleted


def listing_keys(listing: Mapping[str, Any]) -> list[str]:
    """Object keys from a decoded listing, whichever shape ``Contents`` took."""
    contents = listing.get("Contents")
    if not contents:
        return []
    if isinstance(contents, dict):
        return [contents["Key"]]
    return [entry["Key"] for entry in contents]
