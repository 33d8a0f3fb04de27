from __future__ import annotations
"""Object storage operations against an S3-compatible REST endpoint."""
from email.utils import parsedate_to_datetime
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Mapping, Optional
from xml.sax.saxutils import escape as xml_escape

from botocore.awsrequest import AWSRequest
from botocore.exceptions import BotoCoreError
from botocore.httpsession import URLLib3Session

from .config import S3Configuration
from .errors import (
    AccessDeniedError,
    ConfigurationError,
    DataError,
    InvalidCredentialsError,
    NetworkError,
    NotFoundError,
    RequestFailedError,
)
from .models import FileListResult, FileMetadata, PresignedOperation, UploadResult
from .signer import MAX_PRESIGN_EXPIRES, Clock, presign_url, sign_headers, uri_encode, utcnow
from .validation import validate_bucket_name, validate_key
from .xml_decoder import decode_list_buckets, decode_list_objects

LOGGER = logging.getLogger(__name__)

METADATA_PREFIX = "x-amz-meta-"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_REGION = "us-east-1"
_OPERATION_ALIASES = {
    "read": PresignedOperation.READ,
    "get": PresignedOperation.READ,
    "write": PresignedOperation.WRITE,
    "put": PresignedOperation.WRITE,
}


def _parse_http_date(value: str | None) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        LOGGER.debug("Unparseable Last-Modified header %r", value)
        return None


def _encode_query(params: list[tuple[str, str]]) -> str:
    return "&".join(f"{uri_encode(name)}={uri_encode(value)}" for name, value in params)


class S3StorageClient:
    """Signs, sends and decodes S3 REST calls for a single configuration.

    Every call resolves the bucket (falling back to the configured default),
    validates names before any network traffic, signs the request with
    :func:`~s3lite.signer.sign_headers` and maps non-2xx answers onto the
    :mod:`s3lite.errors` hierarchy.
    """

    def __init__(
        self,
        configuration: S3Configuration,
        *,
        session_factory: Callable[[], object] | None = None,
        clock: Clock = utcnow,
    ):
        self._configuration = configuration
        self._credentials = configuration.credentials
        self._clock = clock
        self._session = session_factory() if session_factory is not None else URLLib3Session()

    @property
    def configuration(self) -> S3Configuration:
        return self._configuration

    def close(self) -> None:
        close = getattr(self._session, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "S3StorageClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # Objects

    def upload(
        self,
        data: bytes,
        key: str,
        bucket: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> UploadResult:
        """Store ``data`` under ``key``.

        A ``content-type`` (or ``contenttype``) entry in ``metadata`` becomes
        the object's ``Content-Type``; every other entry is sent as
        ``x-amz-meta-<name>``.
        """
        bucket_name = self._resolve_target(bucket, key)
        headers: dict[str, str] = {}
        for name, value in (metadata or {}).items():
            if name.lower() in ("content-type", "contenttype"):
                headers["Content-Type"] = value
            else:
                headers[f"{METADATA_PREFIX}{name}"] = value
        headers.setdefault("Content-Type", DEFAULT_CONTENT_TYPE)
        headers["Content-Length"] = str(len(data))

        response = self._request(
            "PUT",
            self._object_url(bucket_name, key),
            headers=headers,
            body=data,
            key=key,
            bucket=bucket_name,
        )
        etag = response.headers.get("ETag")
        return UploadResult(
            key=key,
            bucket=bucket_name,
            size=len(data),
            last_modified=self._clock(),
            etag=etag.strip('"') if etag else None,
            metadata=dict(metadata or {}),
        )

    def upload_file(
        self,
        source_path: str | Path,
        key: str,
        bucket: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> UploadResult:
        return self.upload(Path(source_path).read_bytes(), key, bucket, metadata)

    def upload_string(
        self,
        text: str,
        key: str,
        bucket: str | None = None,
        encoding: str = "utf-8",
        metadata: Mapping[str, str] | None = None,
    ) -> UploadResult:
        try:
            data = text.encode(encoding)
        except UnicodeEncodeError as exc:
            raise DataError(f"Unable to encode string as {encoding}") from exc
        return self.upload(data, key, bucket, metadata)

    def download(self, key: str, bucket: str | None = None) -> bytes:
        bucket_name = self._resolve_target(bucket, key)
        response = self._request(
            "GET", self._object_url(bucket_name, key), key=key, bucket=bucket_name
        )
        return response.content

    def download_string(self, key: str, bucket: str | None = None, encoding: str = "utf-8") -> str:
        data = self.download(key, bucket)
        try:
            return data.decode(encoding)
        except UnicodeDecodeError as exc:
            raise DataError(f"Unable to decode object as {encoding}") from exc

    def download_to_file(self, key: str, destination: str | Path, bucket: str | None = None) -> None:
        data = self.download(key, bucket)
        Path(destination).write_bytes(data)

    def delete(self, key: str, bucket: str | None = None) -> None:
        bucket_name = self._resolve_target(bucket, key)
        self._request("DELETE", self._object_url(bucket_name, key), key=key, bucket=bucket_name)

    def exists(self, key: str, bucket: str | None = None) -> bool:
        bucket_name = self._resolve_target(bucket, key)
        try:
            self._request("HEAD", self._object_url(bucket_name, key), key=key, bucket=bucket_name)
        except NotFoundError:
            return False
        return True

    def get_metadata(self, key: str, bucket: str | None = None) -> FileMetadata:
        bucket_name = self._resolve_target(bucket, key)
        response = self._request(
            "HEAD", self._object_url(bucket_name, key), key=key, bucket=bucket_name
        )
        headers = response.headers
        try:
            size = int(headers.get("Content-Length") or 0)
        except ValueError:
            size = 0
        etag = headers.get("ETag")
        custom = {
            name[len(METADATA_PREFIX):]: value
            for name, value in headers.items()
            if name.lower().startswith(METADATA_PREFIX)
        }
        return FileMetadata(
            key=key,
            bucket=bucket_name,
            size=size,
            last_modified=_parse_http_date(headers.get("Last-Modified")),
            etag=(etag.strip('"') or None) if etag else None,
            content_type=headers.get("Content-Type"),
            metadata=custom,
        )

    def get_file_size(self, key: str, bucket: str | None = None) -> int:
        return self.get_metadata(key, bucket).size

    # Listings

    def list_files(
        self,
        bucket: str | None = None,
        prefix: str | None = None,
        max_results: int | None = None,
        continuation_token: str | None = None,
    ) -> FileListResult:
        """Return one ListObjectsV2 page."""
        bucket_name = self._resolve_bucket(bucket)
        validate_bucket_name(bucket_name)

        params = [("list-type", "2")]
        if prefix is not None:
            params.append(("prefix", prefix))
        if max_results is not None:
            params.append(("max-keys", str(max_results)))
        if continuation_token is not None:
            params.append(("continuation-token", continuation_token))

        url = f"{self._bucket_url(bucket_name)}?{_encode_query(params)}"
        response = self._request("GET", url, bucket=bucket_name)
        return decode_list_objects(response.content, bucket_name, prefix, continuation_token)

    def iter_files(
        self,
        bucket: str | None = None,
        prefix: str | None = None,
        page_size: int | None = None,
    ) -> Iterator[FileMetadata]:
        """Yield every object under ``prefix``, following continuation tokens."""
        token: str | None = None
        while True:
            page = self.list_files(bucket, prefix, page_size, token)
            yield from page.files
            if not page.is_truncated or not page.next_continuation_token:
                return
            token = page.next_continuation_token

    # Buckets

    def create_bucket(self, bucket: str) -> None:
        validate_bucket_name(bucket)
        headers: dict[str, str] = {}
        body: bytes | None = None
        region = self._configuration.region
        if region != DEFAULT_REGION:
            body = (
                '<CreateBucketConfiguration xmlns="http://s3.amazonaws.com/doc/2006-03-01/">'
                f"<LocationConstraint>{xml_escape(region)}</LocationConstraint>"
                "</CreateBucketConfiguration>"
            ).encode("utf-8")
            headers["Content-Type"] = "application/xml"
            headers["Content-Length"] = str(len(body))
        self._request("PUT", self._bucket_url(bucket), headers=headers, body=body, bucket=bucket)

    def delete_bucket(self, bucket: str) -> None:
        validate_bucket_name(bucket)
        self._request("DELETE", self._bucket_url(bucket), bucket=bucket)

    def list_buckets(self) -> list[str]:
        response = self._request("GET", f"{self._configuration.base_url}/")
        return decode_list_buckets(response.content)

    # Presigned URLs

    def generate_presigned_url(
        self,
        key: str,
        bucket: str | None = None,
        operation: PresignedOperation | str = PresignedOperation.READ,
        expires_in: int = 3600,
    ) -> str:
        """Create a presigned URL for reading (GET) or writing (PUT) ``key``."""
        if isinstance(operation, str):
            normalized = _OPERATION_ALIASES.get(operation.strip().lower())
            if normalized is None:
                raise ValueError("operation must be either 'read' or 'write'")
            operation = normalized
        if expires_in <= 0:
            raise ValueError("expires_in must be greater than zero")
        if expires_in > MAX_PRESIGN_EXPIRES:
            raise ValueError(f"expires_in cannot exceed {MAX_PRESIGN_EXPIRES} seconds")

        bucket_name = self._resolve_target(bucket, key)
        return presign_url(
            operation.http_method,
            self._object_url(bucket_name, key),
            expires_in,
            self._credentials,
            clock=self._clock,
        )

    # Helpers

    def _resolve_bucket(self, bucket: str | None) -> str:
        bucket_name = bucket or self._configuration.default_bucket
        if not bucket_name:
            raise ConfigurationError("No bucket specified and no default bucket configured")
        return bucket_name

    def _resolve_target(self, bucket: str | None, key: str) -> str:
        bucket_name = self._resolve_bucket(bucket)
        validate_key(key)
        validate_bucket_name(bucket_name)
        return bucket_name

    def _bucket_url(self, bucket: str) -> str:
        return f"{self._configuration.base_url}/{bucket}"

    def _object_url(self, bucket: str, key: str) -> str:
        return f"{self._bucket_url(bucket)}/{uri_encode(key, encode_slash=False)}"

    def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
        key: str | None = None,
        bucket: str | None = None,
    ):
        signed = sign_headers(method, url, headers, body, self._credentials, clock=self._clock)
        request = AWSRequest(method=method, url=url, headers=signed, data=body)
        LOGGER.debug("%s %s", method, url.split("?", 1)[0])
        try:
            response = self._session.send(request.prepare())
        except BotoCoreError as exc:
            raise NetworkError(str(exc)) from exc
        self._raise_for_status(response, key=key, bucket=bucket)
        return response

    @staticmethod
    def _raise_for_status(response, *, key: str | None, bucket: str | None) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        message = (response.content or b"").decode("utf-8", errors="replace")
        LOGGER.warning("S3 request failed with status %s: %s", status, message)
        if status == 404:
            raise NotFoundError(message or f"'{key or bucket}' not found", key=key, bucket=bucket)
        if status == 403:
            raise AccessDeniedError(message or "Access denied")
        if status == 401:
            raise InvalidCredentialsError(message or "Invalid AWS credentials")
        raise RequestFailedError(status, message or "Unknown error")
