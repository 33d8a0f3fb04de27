from __future__ import annotations
"""Data models shared by the signer, the decoder and the storage client."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Credentials:
    """Access key pair plus the scope a request is signed for."""

    access_key_id: str
    secret_access_key: str
    region: str
    session_token: Optional[str] = None
    service: str = "s3"

    def __repr__(self) -> str:
        return (
            f"Credentials(access_key_id={self.access_key_id!r}, region={self.region!r}, "
            f"service={self.service!r}, session_token={'***' if self.session_token else None})"
        )


@dataclass
class FileMetadata:
    """Metadata about a single stored object."""

    key: str
    bucket: str
    size: int = 0
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    content_type: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class FileListResult:
    """One page of a bucket listing."""

    files: list[FileMetadata] = field(default_factory=list)
    bucket: str = ""
    prefix: Optional[str] = None
    is_truncated: bool = False
    continuation_token: Optional[str] = None
    next_continuation_token: Optional[str] = None


@dataclass
class UploadResult:
    """Outcome of a single object upload."""

    key: str
    bucket: str
    size: int
    last_modified: datetime
    etag: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)


class PresignedOperation(Enum):
    READ = "read"
    WRITE = "write"

    @property
    def http_method(self) -> str:
        return "GET" if self is PresignedOperation.READ else "PUT"
