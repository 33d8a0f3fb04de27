from __future__ import annotations
"""Exception hierarchy raised by the storage client."""


class StorageError(Exception):
    """Base class for every error raised by s3lite."""


class ConfigurationError(StorageError):
    """Raised when the client or a request cannot be configured."""


class DataError(StorageError):
    """Raised when a response body cannot be decoded."""


class InvalidKeyError(StorageError):
    """Raised when an object key is rejected before sending."""


class InvalidBucketNameError(StorageError):
    """Raised when a bucket name is rejected before sending."""


class NetworkError(StorageError):
    """Raised when the HTTP transport fails before a response arrives."""


class RequestFailedError(StorageError):
    """Raised when the provider answers with a non-2xx status."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Request failed with status {status_code}: {message}")


class NotFoundError(RequestFailedError):
    def __init__(self, message: str = "", *, key: str | None = None, bucket: str | None = None):
        self.key = key
        self.bucket = bucket
        super().__init__(404, message)


class AccessDeniedError(RequestFailedError):
    def __init__(self, message: str = ""):
        super().__init__(403, message)


class InvalidCredentialsError(RequestFailedError):
    def __init__(self, message: str = ""):
        super().__init__(401, message)
