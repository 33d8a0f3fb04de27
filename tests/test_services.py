import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

from botocore.awsrequest import HeadersDict
from botocore.exceptions import EndpointConnectionError

from s3lite.config import S3Configuration
from s3lite.errors import (
    AccessDeniedError,
    ConfigurationError,
    DataError,
    InvalidBucketNameError,
    InvalidCredentialsError,
    InvalidKeyError,
    NetworkError,
    NotFoundError,
    RequestFailedError,
)
from s3lite.models import PresignedOperation
from s3lite.services import S3StorageClient

FROZEN = datetime(2024, 5, 1, 8, 30, 0, tzinfo=timezone.utc)

LIST_PAGE_ONE = b"""<ListBucketResult><Name>bucket-one</Name>
<IsTruncated>true</IsTruncated><NextContinuationToken>token-1</NextContinuationToken>
<Contents><Key>a.txt</Key><Size>3</Size><ETag>"aaa"</ETag></Contents>
</ListBucketResult>"""

LIST_PAGE_TWO = b"""<ListBucketResult><Name>bucket-one</Name>
<IsTruncated>false</IsTruncated>
<Contents><Key>b.txt</Key><Size>4</Size></Contents>
</ListBucketResult>"""


class FakeResponse:
    def __init__(self, status_code=200, headers=None, content=b""):
        self.status_code = status_code
        self.headers = HeadersDict(headers or {})
        self.content = content


class FakeSession:
    """Records prepared requests and replays queued responses."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests = []
        self.closed = False

    def send(self, request):
        self.requests.append(request)
        if not self.responses:
            return FakeResponse()
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


def make_client(responses=None, **config_overrides):
    config = {
        "access_key_id": "AKID",
        "secret_access_key": "secret",
        "region": "eu-west-1",
        "default_bucket": "bucket-one",
    }
    config.update(config_overrides)
    session = FakeSession(responses)
    client = S3StorageClient(
        S3Configuration(**config),
        session_factory=lambda: session,
        clock=lambda: FROZEN,
    )
    return client, session


class UploadTests(unittest.TestCase):
    def test_upload_signs_and_sends_metadata(self):
        client, session = make_client([FakeResponse(headers={"ETag": '"abc123"'})])

        result = client.upload(b"hello", "docs/a b.txt", metadata={"Content-Type": "text/plain", "owner": "me"})

        request = session.requests[0]
        self.assertEqual("PUT", request.method)
        self.assertEqual("https://s3.eu-west-1.amazonaws.com/bucket-one/docs/a%20b.txt", request.url)
        self.assertEqual(b"hello", request.body)
        self.assertEqual("text/plain", request.headers["Content-Type"])
        self.assertEqual("me", request.headers["x-amz-meta-owner"])
        self.assertEqual("5", request.headers["Content-Length"])
        self.assertEqual("20240501T083000Z", request.headers["X-Amz-Date"])
        authorization = request.headers["Authorization"]
        self.assertTrue(authorization.startswith("AWS4-HMAC-SHA256 Credential=AKID/20240501/eu-west-1/s3/aws4_request"))
        self.assertIn(
            "SignedHeaders=content-length;content-type;host;x-amz-content-sha256;x-amz-date;x-amz-meta-owner,",
            authorization,
        )

        self.assertEqual("abc123", result.etag)
        self.assertEqual(5, result.size)
        self.assertEqual("bucket-one", result.bucket)
        self.assertEqual(FROZEN, result.last_modified)
        self.assertEqual({"Content-Type": "text/plain", "owner": "me"}, result.metadata)

    def test_upload_metadata_names_differing_in_case_send_one_header(self):
        client, session = make_client()

        client.upload(b"x", "k.txt", metadata={"Foo": "1", "foo": "2"})

        request = session.requests[0]
        self.assertEqual("2", request.headers["x-amz-meta-foo"])
        self.assertIn(
            "SignedHeaders=content-length;content-type;host;x-amz-content-sha256;x-amz-date;x-amz-meta-foo,",
            request.headers["Authorization"],
        )

    def test_upload_defaults_content_type(self):
        client, session = make_client()

        client.upload(b"x", "k.bin")

        self.assertEqual("application/octet-stream", session.requests[0].headers["Content-Type"])

    def test_upload_file_and_string(self):
        client, session = make_client()
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "local.txt"
            path.write_bytes(b"file-body")

            client.upload_file(path, "from-file.txt")
        client.upload_string("héllo", "from-string.txt")

        self.assertEqual(b"file-body", session.requests[0].body)
        self.assertEqual("héllo".encode("utf-8"), session.requests[1].body)

    def test_explicit_bucket_overrides_default(self):
        client, session = make_client()

        client.upload(b"x", "k", bucket="other-bucket")

        self.assertIn("/other-bucket/k", session.requests[0].url)


class DownloadTests(unittest.TestCase):
    def test_download_returns_body(self):
        client, session = make_client([FakeResponse(content=b"payload")])

        self.assertEqual(b"payload", client.download("k.txt"))
        self.assertEqual("GET", session.requests[0].method)

    def test_download_string_rejects_invalid_encoding(self):
        client, _ = make_client([FakeResponse(content=b"\xff")])

        with self.assertRaises(DataError):
            client.download_string("k.txt")

    def test_download_to_file(self):
        client, _ = make_client([FakeResponse(content=b"saved")])
        with tempfile.TemporaryDirectory() as tmp:
            destination = Path(tmp) / "out.bin"

            client.download_to_file("k.bin", destination)

            self.assertEqual(b"saved", destination.read_bytes())

    def test_missing_object_raises_not_found(self):
        client, _ = make_client([FakeResponse(status_code=404, content=b"<Error><Code>NoSuchKey</Code></Error>")])

        with self.assertRaises(NotFoundError) as ctx:
            client.download("missing.txt")

        self.assertEqual("missing.txt", ctx.exception.key)
        self.assertEqual("bucket-one", ctx.exception.bucket)
        self.assertEqual(404, ctx.exception.status_code)


class StatusMappingTests(unittest.TestCase):
    def test_maps_status_codes(self):
        cases = [
            (403, AccessDeniedError),
            (401, InvalidCredentialsError),
            (500, RequestFailedError),
        ]
        for status, error_type in cases:
            with self.subTest(status=status):
                client, _ = make_client([FakeResponse(status_code=status, content=b"boom")])

                with self.assertRaises(error_type) as ctx:
                    client.delete("k.txt")

                self.assertEqual(status, ctx.exception.status_code)
                self.assertEqual("boom", ctx.exception.message)

    def test_transport_errors_become_network_errors(self):
        client, _ = make_client([EndpointConnectionError(endpoint_url="https://s3.eu-west-1.amazonaws.com")])

        with self.assertRaises(NetworkError):
            client.list_buckets()


class MetadataTests(unittest.TestCase):
    def test_exists_true_and_false(self):
        client, session = make_client([FakeResponse(), FakeResponse(status_code=404)])

        self.assertTrue(client.exists("k.txt"))
        self.assertFalse(client.exists("k.txt"))
        self.assertEqual(["HEAD", "HEAD"], [request.method for request in session.requests])

    def test_get_metadata_reads_headers(self):
        headers = {
            "Content-Length": "42",
            "ETag": '"etag-value"',
            "Content-Type": "image/png",
            "Last-Modified": "Wed, 01 May 2024 08:00:00 GMT",
            "x-amz-meta-owner": "me",
            "X-Amz-Meta-Purpose": "test",
            "x-amz-request-id": "ignored",
        }
        client, _ = make_client([FakeResponse(headers=headers)])

        details = client.get_metadata("img.png")

        self.assertEqual(42, details.size)
        self.assertEqual("etag-value", details.etag)
        self.assertEqual("image/png", details.content_type)
        self.assertEqual(datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc), details.last_modified)
        self.assertEqual({"owner": "me", "Purpose": "test"}, details.metadata)

    def test_get_metadata_tolerates_missing_headers(self):
        client, _ = make_client([FakeResponse(headers={"Last-Modified": "garbage"})])

        details = client.get_metadata("k")

        self.assertEqual(0, details.size)
        self.assertIsNone(details.etag)
        self.assertIsNone(details.last_modified)

    def test_get_file_size(self):
        client, _ = make_client([FakeResponse(headers={"Content-Length": "7"})])

        self.assertEqual(7, client.get_file_size("k"))


class ListingTests(unittest.TestCase):
    def test_list_files_builds_list_objects_v2_query(self):
        client, session = make_client([FakeResponse(content=LIST_PAGE_ONE)])

        page = client.list_files(prefix="logs/2024 01", max_results=10, continuation_token="prev+1")

        query = parse_qs(urlsplit(session.requests[0].url).query)
        self.assertEqual(["2"], query["list-type"])
        self.assertEqual(["logs/2024 01"], query["prefix"])
        self.assertEqual(["10"], query["max-keys"])
        self.assertEqual(["prev+1"], query["continuation-token"])
        self.assertIn("prefix=logs%2F2024%2001", session.requests[0].url)

        self.assertEqual(["a.txt"], [item.key for item in page.files])
        self.assertEqual("aaa", page.files[0].etag)
        self.assertTrue(page.is_truncated)
        self.assertEqual("token-1", page.next_continuation_token)
        self.assertEqual("prev+1", page.continuation_token)
        self.assertEqual("logs/2024 01", page.prefix)

    def test_iter_files_follows_continuation_tokens(self):
        client, session = make_client([FakeResponse(content=LIST_PAGE_ONE), FakeResponse(content=LIST_PAGE_TWO)])

        keys = [item.key for item in client.iter_files(page_size=1)]

        self.assertEqual(["a.txt", "b.txt"], keys)
        second_query = parse_qs(urlsplit(session.requests[1].url).query)
        self.assertEqual(["token-1"], second_query["continuation-token"])

    def test_malformed_listing_raises_data_error(self):
        client, _ = make_client([FakeResponse(content=b"<ListBucketResult><Contents>")])

        with self.assertRaises(DataError):
            client.list_files()

    def test_list_buckets(self):
        body = (
            b"<ListAllMyBucketsResult><Buckets>"
            b"<Bucket><Name>one</Name></Bucket><Bucket><Name>two</Name></Bucket>"
            b"</Buckets></ListAllMyBucketsResult>"
        )
        client, session = make_client([FakeResponse(content=body)])

        self.assertEqual(["one", "two"], client.list_buckets())
        self.assertEqual("https://s3.eu-west-1.amazonaws.com/", session.requests[0].url)


class BucketTests(unittest.TestCase):
    def test_create_bucket_sends_location_constraint(self):
        client, session = make_client()

        client.create_bucket("new-bucket")

        request = session.requests[0]
        self.assertEqual("PUT", request.method)
        self.assertIn(b"<LocationConstraint>eu-west-1</LocationConstraint>", request.body)
        self.assertEqual("application/xml", request.headers["Content-Type"])

    def test_create_bucket_in_default_region_has_no_body(self):
        client, session = make_client(region="us-east-1")

        client.create_bucket("new-bucket")

        self.assertIsNone(session.requests[0].body)

    def test_delete_bucket(self):
        client, session = make_client(endpoint="http://localhost:9000/")

        client.delete_bucket("old-bucket")

        self.assertEqual("DELETE", session.requests[0].method)
        self.assertEqual("http://localhost:9000/old-bucket", session.requests[0].url)
        self.assertEqual("localhost:9000", session.requests[0].headers["Host"])


class ValidationTests(unittest.TestCase):
    def test_invalid_names_fail_before_sending(self):
        client, session = make_client()

        with self.assertRaises(InvalidKeyError):
            client.download("/leading-slash")
        with self.assertRaises(InvalidBucketNameError):
            client.download("k", bucket="x")
        with self.assertRaises(InvalidBucketNameError):
            client.list_files(bucket="-bad-")

        self.assertEqual([], session.requests)

    def test_missing_bucket_raises_configuration_error(self):
        client, session = make_client(default_bucket=None)

        with self.assertRaises(ConfigurationError):
            client.download("k")
        self.assertEqual([], session.requests)


class PresignedUrlTests(unittest.TestCase):
    def test_read_url_is_signed_for_get(self):
        client, session = make_client()

        url = client.generate_presigned_url("reports/q 3.pdf", expires_in=600)

        parts = urlsplit(url)
        query = parse_qs(parts.query)
        self.assertEqual("/bucket-one/reports/q%203.pdf", parts.path)
        self.assertEqual(["600"], query["X-Amz-Expires"])
        self.assertEqual(["20240501T083000Z"], query["X-Amz-Date"])
        self.assertIn("X-Amz-Signature", query)
        self.assertEqual([], session.requests)

    def test_operation_changes_signature(self):
        client, _ = make_client()

        read_url = client.generate_presigned_url("k", operation=PresignedOperation.READ)
        write_url = client.generate_presigned_url("k", operation="put")

        self.assertNotEqual(read_url, write_url)

    def test_rejects_invalid_arguments(self):
        client, _ = make_client()

        with self.assertRaises(ValueError):
            client.generate_presigned_url("k", operation="delete")
        with self.assertRaises(ValueError):
            client.generate_presigned_url("k", expires_in=0)
        with self.assertRaises(ValueError):
            client.generate_presigned_url("k", expires_in=604801)


class LifecycleTests(unittest.TestCase):
    def test_context_manager_closes_session(self):
        client, session = make_client()

        with client:
            pass

        self.assertTrue(session.closed)


if __name__ == "__main__":
    unittest.main()
