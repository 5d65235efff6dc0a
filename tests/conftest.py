"""
Shared fixtures.

FakeS3 is a small in-memory object store that answers the REST calls the
ObjectProtocolClient makes. It is mounted through httpx.MockTransport, so
the real client, signer and XML decoding all run; only the network is
replaced.
"""

import hashlib
import xml.etree.ElementTree as ElementTree
from typing import Optional
from urllib.parse import unquote
from xml.sax.saxutils import escape

import httpx
import pytest

from storagekit.infrastructure.local.device import LocalDevice
from storagekit.infrastructure.s3.device import S3Device

BUCKET = "test-bucket"
XMLNS = "http://s3.amazonaws.com/doc/2006-03-01/"


def _etag(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest()}"'


def _xml(body: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        headers={"content-type": "application/xml"},
        content=f'<?xml version="1.0" encoding="UTF-8"?>{body}'.encode("utf-8"),
    )


def _error(status_code: int, code: str) -> httpx.Response:
    return _xml(f"<Error><Code>{code}</Code></Error>", status_code)


def _children(root: ElementTree.Element, tag: str) -> list[ElementTree.Element]:
    return [child for child in root.iter() if child.tag.rsplit("}", 1)[-1] == tag]


class FakeS3:
    """In-memory bucket speaking just enough of the S3 REST protocol."""

    def __init__(self, path_style: bool = False) -> None:
        self.path_style = path_style
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.uploads: dict[str, dict[int, bytes]] = {}
        self.requests: list[httpx.Request] = []
        self.delete_bodies: list[bytes] = []
        self.fail_part: Optional[int] = None
        self.fail_list = False
        self._upload_counter = 0

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        self.objects[key] = data
        self.content_types[key] = content_type

    def _key(self, request: httpx.Request) -> str:
        path = unquote(request.url.path)
        if self.path_style:
            path = path[len(f"/{BUCKET}"):]
        return path.lstrip("/")

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = request.url.params
        key = self._key(request)
        method = request.method

        if not request.headers.get("authorization", "").startswith("AWS4-HMAC-SHA256 "):
            return _error(403, "AccessDenied")

        if key == "":
            if method == "GET" and params.get("list-type") == "2":
                return self._list(params)
            if method == "POST" and "delete" in params:
                return self._delete_many(request.content)
            return _error(400, "InvalidRequest")

        if method == "POST" and "uploads" in params:
            self._upload_counter += 1
            upload_id = f"upload-{self._upload_counter}"
            self.uploads[upload_id] = {}
            self.content_types[key] = request.headers.get("content-type", "")
            return _xml(
                f'<InitiateMultipartUploadResult xmlns="{XMLNS}">'
                f"<Bucket>{BUCKET}</Bucket><Key>{key}</Key><UploadId>{upload_id}</UploadId>"
                "</InitiateMultipartUploadResult>"
            )

        if method == "PUT" and "partNumber" in params:
            upload_id = params["uploadId"]
            part_number = int(params["partNumber"])
            if upload_id not in self.uploads:
                return _error(404, "NoSuchUpload")
            if part_number == self.fail_part:
                return _error(500, "InternalError")
            self.uploads[upload_id][part_number] = request.content
            return httpx.Response(200, headers={"etag": _etag(request.content)})

        if method == "POST" and "uploadId" in params:
            upload_id = params["uploadId"]
            parts = self.uploads.pop(upload_id, None)
            if parts is None:
                return _error(404, "NoSuchUpload")
            root = ElementTree.fromstring(request.content)
            numbers = [int(element.text) for element in _children(root, "PartNumber")]
            self.objects[key] = b"".join(parts[number] for number in numbers)
            return _xml(
                f'<CompleteMultipartUploadResult xmlns="{XMLNS}">'
                f"<Key>{key}</Key><ETag>{_etag(self.objects[key])}</ETag>"
                "</CompleteMultipartUploadResult>"
            )

        if method == "DELETE" and "uploadId" in params:
            if self.uploads.pop(params["uploadId"], None) is None:
                return _error(404, "NoSuchUpload")
            return httpx.Response(204)

        if method == "PUT":
            self.put(key, request.content, request.headers.get("content-type", ""))
            return httpx.Response(200, headers={"etag": _etag(request.content)})

        if method in ("GET", "HEAD"):
            if key not in self.objects:
                return _error(404, "NoSuchKey")
            data = self.objects[key]
            headers = {
                "etag": _etag(data),
                "content-type": self.content_types.get(key) or "application/octet-stream",
            }
            if method == "HEAD":
                headers["content-length"] = str(len(data))
                return httpx.Response(200, headers=headers)
            byte_range = request.headers.get("range")
            if byte_range:
                start, _, end = byte_range[len("bytes="):].partition("-")
                data = data[int(start):int(end) + 1] if end else data[int(start):]
                return httpx.Response(206, headers=headers, content=data)
            return httpx.Response(200, headers=headers, content=data)

        if method == "DELETE":
            self.objects.pop(key, None)
            return httpx.Response(204)

        return _error(400, "InvalidRequest")

    def _list(self, params: httpx.QueryParams) -> httpx.Response:
        if self.fail_list:
            return _error(500, "InternalError")
        prefix = params.get("prefix", "")
        max_keys = int(params.get("max-keys", "1000"))
        start = int(params.get("continuation-token") or 0)

        keys = sorted(key for key in self.objects if key.startswith(prefix))
        page = keys[start:start + max_keys]
        truncated = start + max_keys < len(keys)

        body = f'<ListBucketResult xmlns="{XMLNS}"><Name>{BUCKET}</Name><Prefix>{prefix}</Prefix>'
        body += f"<KeyCount>{len(page)}</KeyCount><MaxKeys>{max_keys}</MaxKeys>"
        body += f"<IsTruncated>{'true' if truncated else 'false'}</IsTruncated>"
        for key in page:
            body += (
                f"<Contents><Key>{escape(key)}</Key><Size>{len(self.objects[key])}</Size>"
                f"<ETag>{_etag(self.objects[key])}</ETag></Contents>"
            )
        if truncated:
            body += f"<NextContinuationToken>{start + max_keys}</NextContinuationToken>"
        body += "</ListBucketResult>"
        return _xml(body)

    def _delete_many(self, content: bytes) -> httpx.Response:
        self.delete_bodies.append(content)
        root = ElementTree.fromstring(content)
        for element in _children(root, "Key"):
            self.objects.pop(element.text, None)
        return _xml(f'<DeleteResult xmlns="{XMLNS}"></DeleteResult>')


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()


@pytest.fixture
def s3_http_client(fake_s3):
    with httpx.Client(transport=httpx.MockTransport(fake_s3.handle)) as client:
        yield client


@pytest.fixture
def s3_device(s3_http_client) -> S3Device:
    return S3Device.aws(
        root="",
        access_key="AKIDEXAMPLE",
        secret_key="wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY",
        bucket=BUCKET,
        http_client=s3_http_client,
    )


@pytest.fixture
def minio_fake() -> FakeS3:
    return FakeS3(path_style=True)


@pytest.fixture
def minio_device(minio_fake):
    with httpx.Client(transport=httpx.MockTransport(minio_fake.handle)) as http_client:
        yield S3Device.minio(
            root="",
            access_key="minio",
            secret_key="minio123",
            bucket=BUCKET,
            endpoint="localhost:9000",
            http_client=http_client,
        )


@pytest.fixture
def local_device(tmp_path) -> LocalDevice:
    return LocalDevice(str(tmp_path))
