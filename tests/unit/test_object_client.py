"""
Unit tests for the S3 protocol client, hosting strategies and S3Device.

Requests go through the real client and signer into the in-memory FakeS3
from conftest.py, so these tests cover what actually goes on the wire.
"""

import httpx
import pytest

from storagekit.core.errors import (
    PathNotFoundError,
    ProtocolError,
    StorageError,
    UnsupportedOperationError,
    ValidationError,
)
from storagekit.core.models import DeviceType, MultipartUploadState
from storagekit.infrastructure.s3.device import S3Device
from storagekit.infrastructure.s3.client import (
    MAX_PAGE_SIZE,
    ObjectProtocolClient,
    content_md5,
    listing_keys,
    object_uri,
    parse_xml,
)
from storagekit.infrastructure.s3.hosting import aws_hosting, minio_hosting, wasabi_hosting
from storagekit.infrastructure.s3.signer import SignerV4

BUCKET = "test-bucket"


# ---------------------------------------------------------------------------
# Hosting strategies
# ---------------------------------------------------------------------------

class TestHosting:
    """Tests for host and URL construction per vendor."""

    def test_aws_is_virtual_hosted(self):
        hosting = aws_hosting("photos", "eu-west-1")

        assert hosting.request_target("/a.jpg") == ("photos.s3.eu-west-1.amazonaws.com", "/a.jpg")
        assert hosting.url("/a.jpg") == "https://photos.s3.eu-west-1.amazonaws.com/a.jpg"
        assert hosting.device_type is DeviceType.S3

    def test_aws_china_regions_use_china_domain(self):
        hosting = aws_hosting("photos", "cn-north-1")
        assert hosting.host == "photos.s3.cn-north-1.amazonaws.com.cn"

    def test_aws_custom_endpoint(self):
        hosting = aws_hosting("photos", endpoint="https://objects.example.com/")
        assert hosting.host == "photos.objects.example.com"

    def test_wasabi_host(self):
        hosting = wasabi_hosting("photos", "us-east-2")

        assert hosting.host == "photos.s3.us-east-2.wasabisys.com"
        assert hosting.device_type is DeviceType.WASABI

    def test_minio_is_path_style(self):
        hosting = minio_hosting("photos", "http://minio.local:9000", use_ssl=False)

        assert hosting.request_target("/a.jpg") == ("minio.local:9000", "/photos/a.jpg")
        assert hosting.url("/photos/a.jpg") == "http://minio.local:9000/photos/a.jpg"
        assert hosting.device_type is DeviceType.MINIO

    def test_minio_with_ssl(self):
        assert minio_hosting("photos", "minio.local", use_ssl=True).scheme == "https"


# ---------------------------------------------------------------------------
# Protocol client
# ---------------------------------------------------------------------------

class TestXmlDecoding:
    """Tests for parse_xml and listing_keys."""

    def test_strips_root_and_namespace(self):
        body = parse_xml(
            b'<?xml version="1.0"?>'
            b'<InitiateMultipartUploadResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">'
            b"<Bucket>b</Bucket><UploadId>xyz</UploadId>"
            b"</InitiateMultipartUploadResult>"
        )
        assert body == {"Bucket": "b", "UploadId": "xyz"}

    def test_single_child_stays_mapping(self):
        body = parse_xml(b"<R><Contents><Key>a</Key></Contents></R>")

        assert body["Contents"] == {"Key": "a"}
        assert listing_keys(body) == ["a"]

    def test_repeated_children_become_list(self):
        body = parse_xml(b"<R><Contents><Key>a</Key></Contents><Contents><Key>b</Key></Contents></R>")

        assert body["Contents"] == [{"Key": "a"}, {"Key": "b"}]
        assert listing_keys(body) == ["a", "b"]

    def test_listing_without_contents_has_no_keys(self):
        assert listing_keys({"KeyCount": "0"}) == []


class TestObjectProtocolClient:
    """Tests for signed calls against the fake store."""

    def test_request_carries_signed_headers(self, s3_device, fake_s3):
        s3_device.write("/docs/a.txt", b"hello", "text/plain")

        request = fake_s3.requests[-1]
        assert request.url.host == f"{BUCKET}.s3.us-east-1.amazonaws.com"
        assert request.headers["content-md5"] == content_md5(b"hello")
        assert request.headers["x-amz-acl"] == "private"
        assert "x-amz-date" in request.headers
        assert request.headers["authorization"].startswith("AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/")
        assert "content-md5" in request.headers["authorization"]

    def test_object_uri_is_normalized_and_encoded(self):
        assert object_uri("docs/../my file.txt") == "/my%20file.txt"

    def test_non_2xx_raises_protocol_error(self, s3_device):
        with pytest.raises(ProtocolError) as exc_info:
            s3_device.client.complete_multipart_upload("/a.bin", "no-such-upload", {1: "etag"})

        assert exc_info.value.status_code == 404
        assert "NoSuchUpload" in exc_info.value.body

    def test_get_missing_object_raises_not_found(self, s3_device):
        with pytest.raises(PathNotFoundError):
            s3_device.client.get_object("/missing.txt")

    def test_ranged_read(self, s3_device, fake_s3):
        fake_s3.put("data.bin", b"0123456789")

        assert s3_device.client.get_object("/data.bin", 2, 3) == b"234"
        assert fake_s3.requests[-1].headers["range"] == "bytes=2-4"
        assert s3_device.client.get_object("/data.bin", 7) == b"789"

    def test_zero_length_read_makes_no_request(self, s3_device, fake_s3):
        assert s3_device.client.get_object("/data.bin", 0, 0) == b""
        assert fake_s3.requests == []

    def test_list_rejects_oversized_page_before_any_request(self, s3_device, fake_s3):
        with pytest.raises(ValidationError):
            s3_device.client.list_objects("", MAX_PAGE_SIZE + 1)
        with pytest.raises(ValueError):
            s3_device.client.list_objects("", MAX_PAGE_SIZE + 1)
        assert fake_s3.requests == []

    def test_list_strips_leading_slash_from_prefix(self, s3_device, fake_s3):
        fake_s3.put("docs/a.txt", b"a")
        fake_s3.put("other/b.txt", b"b")

        listing = s3_device.client.list_objects("/docs/")

        assert listing_keys(listing) == ["docs/a.txt"]
        assert fake_s3.requests[-1].url.params["prefix"] == "docs/"

    def test_bulk_delete_single_key_shape(self, s3_device, fake_s3):
        """A one-key page decodes to a mapping and is deleted as one Object."""
        fake_s3.put("dir/only.txt", b"x")

        deleted = s3_device.client.delete_all_under_prefix("/dir/")

        assert deleted == 1
        assert fake_s3.objects == {}
        body = fake_s3.delete_bodies[0].decode()
        assert body.count("<Object>") == 1
        assert "<Key>dir/only.txt</Key>" in body
        assert body.endswith("<Quiet>true</Quiet></Delete>")

    def test_bulk_delete_multi_key_shape(self, s3_device, fake_s3):
        for name in ("a", "b", "c"):
            fake_s3.put(f"dir/{name}.txt", b"x")
        fake_s3.put("keep/d.txt", b"x")

        deleted = s3_device.client.delete_all_under_prefix("/dir/")

        assert deleted == 3
        assert list(fake_s3.objects) == ["keep/d.txt"]
        assert fake_s3.delete_bodies[0].decode().count("<Object>") == 3

    def test_bulk_delete_escapes_keys(self, s3_device, fake_s3):
        fake_s3.put("dir/a&b.txt", b"x")

        s3_device.client.delete_all_under_prefix("/dir/")

        assert "<Key>dir/a&amp;b.txt</Key>" in fake_s3.delete_bodies[0].decode()
        assert fake_s3.objects == {}

    def test_bulk_delete_of_empty_prefix_posts_nothing(self, s3_device, fake_s3):
        assert s3_device.client.delete_all_under_prefix("/nothing/") == 0
        assert fake_s3.delete_bodies == []

    def test_bulk_delete_without_key_count(self):
        """Some stores omit KeyCount; the page shape alone picks the branch."""
        delete_bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                delete_bodies.append(request.content.decode())
                return httpx.Response(200, headers={"content-type": "application/xml"}, content=b"<DeleteResult/>")
            listing = (
                '<?xml version="1.0" encoding="UTF-8"?><ListBucketResult>'
                "<IsTruncated>false</IsTruncated>"
                "<Contents><Key>dir/a.txt</Key></Contents>"
                "<Contents><Key>dir/b.txt</Key></Contents>"
                "</ListBucketResult>"
            )
            return httpx.Response(200, headers={"content-type": "application/xml"}, content=listing.encode())

        with httpx.Client(transport=httpx.MockTransport(handler)) as http_client:
            client = ObjectProtocolClient(
                SignerV4("a", "b", "us-east-1"), aws_hosting(BUCKET), http_client=http_client
            )

            assert client.delete_all_under_prefix("/dir/") == 2

        assert delete_bodies[0].count("<Object>") == 2
        assert "<Key>dir/b.txt</Key>" in delete_bodies[0]

    def test_transport_failure_raises_storage_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with httpx.Client(transport=httpx.MockTransport(handler)) as http_client:
            client = ObjectProtocolClient(
                SignerV4("a", "b", "us-east-1"), aws_hosting(BUCKET), http_client=http_client
            )

            with pytest.raises(StorageError) as exc_info:
                client.put_object("/a.txt", b"hello")

        assert not isinstance(exc_info.value, ProtocolError)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert "PUT" in str(exc_info.value)

    def test_client_closes_its_http_client(self):
        http_client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        client = ObjectProtocolClient(
            SignerV4("a", "b", "us-east-1"), aws_hosting(BUCKET), http_client=http_client
        )

        with client:
            pass

        assert http_client.is_closed


# ---------------------------------------------------------------------------
# S3Device
# ---------------------------------------------------------------------------

class TestS3DeviceUploads:
    """Tests for single-shot and multipart uploads."""

    def test_single_chunk_is_a_plain_put(self, s3_device, fake_s3):
        progress = s3_device.upload_data(b"hello", "/a.txt", "text/plain")

        assert progress.complete
        assert progress.state is None
        assert fake_s3.objects["a.txt"] == b"hello"
        assert fake_s3.uploads == {}

    def test_multipart_round_trip(self, s3_device, fake_s3):
        content = b"abcdefghij" * 2 + b"klmno"
        chunks = [content[0:10], content[10:20], content[20:25]]

        state = None
        for index, data in enumerate(chunks, start=1):
            progress = s3_device.upload_data(data, "/big.bin", "application/octet-stream", index, 3, state)
            state = progress.state

        assert progress.complete
        assert progress.chunks_received == 3
        assert fake_s3.objects["big.bin"] == content
        assert s3_device.read("/big.bin") == content

    def test_out_of_order_parts_join_by_part_number(self, s3_device, fake_s3):
        state = None
        for index in (3, 1, 2):
            progress = s3_device.upload_data(f"part{index}".encode(), "/x.bin", "", index, 3, state)
            state = progress.state

        assert fake_s3.objects["x.bin"] == b"part1part2part3"

    def test_reupload_of_part_does_not_increase_count(self, s3_device, fake_s3):
        first = s3_device.upload_data(b"old", "/x.bin", "", 1, 2)
        again = s3_device.upload_data(b"new", "/x.bin", "", 1, 2, first.state)

        assert again.chunks_received == 1
        assert not again.complete

        done = s3_device.upload_data(b"-tail", "/x.bin", "", 2, 2, again.state)

        assert done.complete
        assert fake_s3.objects["x.bin"] == b"new-tail"

    def test_state_is_not_mutated_between_calls(self, s3_device):
        first = s3_device.upload_data(b"a", "/x.bin", "", 1, 3)
        s3_device.upload_data(b"b", "/x.bin", "", 2, 3, first.state)

        assert isinstance(first.state, MultipartUploadState)
        assert first.state.chunks_received == 1

    def test_progress_exposes_upload_id(self, s3_device, fake_s3):
        progress = s3_device.upload_data(b"a", "/x.bin", "", 1, 2)
        assert progress.upload_id in fake_s3.uploads

    @pytest.mark.parametrize("chunk, chunks", [(0, 3), (4, 3), (1, 0)])
    def test_invalid_chunk_arguments(self, s3_device, chunk, chunks):
        with pytest.raises(ValidationError):
            s3_device.upload_data(b"a", "/x.bin", "", chunk, chunks)

    def test_upload_from_file(self, s3_device, fake_s3, tmp_path):
        source = tmp_path / "report.pdf"
        source.write_bytes(b"%PDF")

        s3_device.upload(str(source), "/reports/report.pdf")

        assert fake_s3.objects["reports/report.pdf"] == b"%PDF"
        assert fake_s3.content_types["reports/report.pdf"] == "application/pdf"

    def test_upload_missing_file(self, s3_device, tmp_path):
        with pytest.raises(PathNotFoundError):
            s3_device.upload(str(tmp_path / "missing.txt"), "/a.txt")


class TestS3DeviceAbort:
    """Tests for aborting multipart uploads."""

    def test_abort_in_progress_upload(self, s3_device, fake_s3):
        progress = s3_device.upload_data(b"a", "/x.bin", "", 1, 2)

        assert s3_device.abort("/x.bin", progress.state) is True
        assert fake_s3.uploads == {}

    def test_abort_by_raw_upload_id(self, s3_device, fake_s3):
        progress = s3_device.upload_data(b"a", "/x.bin", "", 1, 2)
        assert s3_device.abort("/x.bin", progress.upload_id) is True

    def test_abort_unknown_upload_returns_false(self, s3_device):
        assert s3_device.abort("/x.bin", "no-such-upload") is False

    def test_abort_without_upload_id_returns_false(self, s3_device, fake_s3):
        assert s3_device.abort("/x.bin") is False
        assert fake_s3.requests == []


class TestS3DeviceObjects:
    """Tests for the rest of the device contract on object storage."""

    def test_identity(self, s3_device):
        assert s3_device.type is DeviceType.S3
        assert s3_device.name == "S3 Storage"
        assert s3_device.get_path("a.txt") == "/a.txt"

    def test_metadata_from_head(self, s3_device, fake_s3):
        fake_s3.put("a.txt", b"hello", "text/plain")

        assert s3_device.exists("/a.txt")
        assert s3_device.get_file_size("/a.txt") == 5
        assert s3_device.get_file_mime_type("/a.txt") == "text/plain"
        assert s3_device.get_file_hash("/a.txt") == "5d41402abc4b2a76b9719d911017c592"

    def test_missing_object(self, s3_device):
        assert not s3_device.exists("/missing.txt")
        with pytest.raises(PathNotFoundError):
            s3_device.get_file_size("/missing.txt")

    def test_recursive_delete_removes_prefix(self, s3_device, fake_s3):
        fake_s3.put("dir", b"marker")
        fake_s3.put("dir/a.txt", b"a")
        fake_s3.put("dir/sub/b.txt", b"b")
        fake_s3.put("dirt.txt", b"c")

        assert s3_device.delete("/dir", recursive=True)

        assert list(fake_s3.objects) == ["dirt.txt"]

    def test_get_files_paginates(self, s3_device, fake_s3):
        for index in range(5):
            fake_s3.put(f"docs/{index}.txt", b"x")

        first = s3_device.get_files("/docs/", max_keys=2)
        second = s3_device.get_files("/docs/", max_keys=2, continuation_token=first.continuation_token)
        last = s3_device.get_files("/docs/", max_keys=2, continuation_token=second.continuation_token)

        assert first.keys == ["docs/0.txt", "docs/1.txt"]
        assert first.is_truncated
        assert second.keys == ["docs/2.txt", "docs/3.txt"]
        assert last.keys == ["docs/4.txt"]
        assert not last.is_truncated
        assert last.continuation_token == ""

    def test_directories_are_virtual(self, s3_device, fake_s3):
        assert s3_device.create_directory("/anything") is True
        assert s3_device.get_directory_size("/anything") == -1
        assert s3_device.get_partition_free_space() == -1
        assert fake_s3.requests == []

    def test_partition_total_space_is_unsupported(self, s3_device):
        with pytest.raises(UnsupportedOperationError):
            s3_device.get_partition_total_space()


class TestS3DeviceRoot:
    """Relative keys live under the device root, keys with a leading slash do not."""

    @pytest.fixture
    def rooted_device(self, s3_http_client) -> S3Device:
        return S3Device.aws(
            root="uploads",
            access_key="AKIDEXAMPLE",
            secret_key="secret",
            bucket=BUCKET,
            http_client=s3_http_client,
        )

    def test_relative_write_and_read(self, rooted_device, fake_s3):
        rooted_device.write("a.txt", b"hi")

        assert set(fake_s3.objects) == {"uploads/a.txt"}
        assert rooted_device.read("a.txt") == b"hi"
        assert rooted_device.exists("a.txt")
        assert rooted_device.get_file_size("a.txt") == 2

    def test_absolute_key_is_used_as_given(self, rooted_device, fake_s3):
        rooted_device.write("/top.txt", b"x")

        assert set(fake_s3.objects) == {"top.txt"}

    def test_get_path_is_not_prefixed_twice(self, rooted_device, fake_s3):
        path = rooted_device.get_path("docs/b.txt")

        rooted_device.write(path, b"x")

        assert path == "/uploads/docs/b.txt"
        assert set(fake_s3.objects) == {"uploads/docs/b.txt"}

    def test_multipart_upload_under_root(self, rooted_device, fake_s3):
        first = rooted_device.upload_data(b"one", "big.bin", "", 1, 2)
        rooted_device.upload_data(b"-two", "big.bin", "", 2, 2, first.state)

        assert fake_s3.objects == {"uploads/big.bin": b"one-two"}

    def test_abort_under_root(self, rooted_device, fake_s3):
        progress = rooted_device.upload_data(b"one", "big.bin", "", 1, 2)

        assert rooted_device.abort("big.bin", progress.state) is True
        assert fake_s3.requests[-1].url.path == "/uploads/big.bin"

    def test_listing_and_deletes_stay_under_root(self, rooted_device, fake_s3):
        fake_s3.put("uploads/a.txt", b"a")
        fake_s3.put("uploads/dir/b.txt", b"b")
        fake_s3.put("uploads-old/c.txt", b"c")
        fake_s3.put("other.txt", b"d")

        assert rooted_device.get_files("").keys == ["uploads/a.txt", "uploads/dir/b.txt"]

        assert rooted_device.delete("a.txt")
        assert rooted_device.delete_path("dir")
        assert sorted(fake_s3.objects) == ["other.txt", "uploads-old/c.txt"]


class TestMinioDevice:
    """MinIO addresses the bucket in the path."""

    def test_round_trip_path_style(self, minio_device, minio_fake):
        minio_device.write("/a.txt", b"hi")

        assert minio_fake.requests[-1].url.path == f"/{BUCKET}/a.txt"
        assert minio_fake.requests[-1].url.scheme == "http"
        assert minio_device.read("/a.txt") == b"hi"
        assert minio_device.type is DeviceType.MINIO
        assert minio_device.name == "MinIO Storage"
