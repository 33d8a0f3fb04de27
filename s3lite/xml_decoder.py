from __future__ import annotations
"""Decoders for the S3 ListObjectsV2 and ListAllMyBuckets XML responses."""
from datetime import datetime
import logging
from typing import Optional
import xml.sax
from xml.sax.handler import ContentHandler

from .errors import DataError
from .models import FileListResult, FileMetadata

LOGGER = logging.getLogger(__name__)

_TIMESTAMP_FORMATS = ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z")
_RECORD_FIELDS = frozenset({"Key", "Size", "LastModified", "ETag"})


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp with or without fractional seconds."""
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def parse_size(value: str) -> int:
    """Parse a plain ASCII decimal size; anything else (signs, ``_``) is 0."""
    if value.isascii() and value.isdigit():
        return int(value)
    LOGGER.debug("Unparseable object size %r, using 0", value)
    return 0


class _ListingHandler(ContentHandler):
    """Single-pass event handler shared by both response shapes.

    ``Key``/``Size``/``LastModified``/``ETag`` only count inside ``Contents``
    and ``Name`` only counts inside ``Bucket``.
    """

    def __init__(self, bucket: str = ""):
        super().__init__()
        self._bucket = bucket
        self._buffer: list[str] = []
        self._record: Optional[FileMetadata] = None
        self._in_bucket = False
        self.files: list[FileMetadata] = []
        self.bucket_names: list[str] = []
        self.is_truncated = False
        self.next_continuation_token: Optional[str] = None

    def startElement(self, name, attrs):
        self._buffer = []
        if name == "Contents":
            self._record = FileMetadata(key="", bucket=self._bucket)
        elif name == "Bucket":
            self._in_bucket = True

    def characters(self, content):
        self._buffer.append(content)

    def endElement(self, name):
        value = "".join(self._buffer).strip()
        self._buffer = []

        if self._record is not None and name in _RECORD_FIELDS:
            self._store_field(name, value)
        elif name == "Contents" and self._record is not None:
            self.files.append(self._record)
            self._record = None
        elif name == "IsTruncated":
            self.is_truncated = value.lower() == "true"
        elif name == "NextContinuationToken":
            self.next_continuation_token = value or None
        elif name == "Name" and self._in_bucket:
            self.bucket_names.append(value)
        elif name == "Bucket":
            self._in_bucket = False

    def _store_field(self, name: str, value: str) -> None:
        record = self._record
        if name == "Key":
            record.key = value
        elif name == "Size":
            record.size = parse_size(value)
        elif name == "LastModified":
            record.last_modified = parse_timestamp(value)
            if record.last_modified is None:
                LOGGER.debug("Unparseable LastModified %r for key %r", value, record.key)
        elif name == "ETag":
            record.etag = value.strip('"') or None


def _run(xml_bytes: bytes, handler: _ListingHandler) -> None:
    try:
        xml_bytes.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DataError("Unable to parse response as UTF-8") from exc
    try:
        xml.sax.parseString(xml_bytes, handler)
    except xml.sax.SAXException as exc:
        raise DataError(f"Failed to parse XML response: {exc}") from exc


def decode_list_objects(
    xml_bytes: bytes,
    bucket: str,
    prefix: Optional[str] = None,
    continuation_token: Optional[str] = None,
) -> FileListResult:
    """Decode a ListObjectsV2 ``ListBucketResult`` document.

    Raises:
        DataError: when the body is not UTF-8 or not well-formed XML.
    """
    handler = _ListingHandler(bucket)
    _run(xml_bytes, handler)
    return FileListResult(
        files=handler.files,
        bucket=bucket,
        prefix=prefix,
        is_truncated=handler.is_truncated,
        continuation_token=continuation_token,
        next_continuation_token=handler.next_continuation_token if handler.is_truncated else None,
    )


def decode_list_buckets(xml_bytes: bytes) -> list[str]:
    """Decode a ``ListAllMyBucketsResult`` document into bucket names."""
    handler = _ListingHandler()
    _run(xml_bytes, handler)
    return handler.bucket_names
