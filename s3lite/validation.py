from __future__ import annotations
"""Client-side checks applied to bucket names and object keys."""
import string

from .errors import InvalidBucketNameError, InvalidKeyError

_BUCKET_CHARS = frozenset(string.ascii_letters + string.digits + "-.")


def validate_key(key: str) -> None:
    if not key:
        raise InvalidKeyError("Key cannot be empty")
    if "//" in key or key.startswith("/") or key.endswith("/"):
        raise InvalidKeyError(f"Invalid key format: {key}")


def validate_bucket_name(bucket: str) -> None:
    if not 3 <= len(bucket) <= 63:
        raise InvalidBucketNameError("Bucket name must be between 3 and 63 characters")
    if not set(bucket) <= _BUCKET_CHARS:
        raise InvalidBucketNameError("Bucket name contains invalid characters")
    if bucket.startswith("-") or bucket.endswith("-"):
        raise InvalidBucketNameError("Bucket name cannot start or end with a hyphen")
