from __future__ import annotations
"""Connection configuration for the S3 client."""
from dataclasses import dataclass
import os
from typing import Mapping, Optional

from .errors import ConfigurationError
from .models import Credentials

REQUIRED_ENV = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_REGION")


@dataclass(frozen=True)
class S3Configuration:
    """Everything needed to reach one S3-compatible endpoint."""

    access_key_id: str
    secret_access_key: str
    region: str
    default_bucket: Optional[str] = None
    endpoint: Optional[str] = None
    session_token: Optional[str] = None

    @property
    def credentials(self) -> Credentials:
        return Credentials(
            access_key_id=self.access_key_id,
            secret_access_key=self.secret_access_key,
            region=self.region,
            session_token=self.session_token,
        )

    @property
    def base_url(self) -> str:
        if self.endpoint:
            return self.endpoint.rstrip("/")
        return f"https://s3.{self.region}.amazonaws.com"

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] | None = None) -> "S3Configuration":
        """Build a configuration from ``AWS_*`` environment variables.

        ``AWS_ACCESS_KEY_ID``, ``AWS_SECRET_ACCESS_KEY`` and ``AWS_REGION`` are
        required; ``AWS_DEFAULT_BUCKET``, ``AWS_ENDPOINT`` and
        ``AWS_SESSION_TOKEN`` are optional.

        Raises:
            ConfigurationError: when a required variable is missing or empty.
        """
        env = os.environ if environ is None else environ
        missing = [name for name in REQUIRED_ENV if not env.get(name)]
        if missing:
            raise ConfigurationError(
                "Missing required AWS environment variables: " + ", ".join(missing)
            )
        return cls(
            access_key_id=env["AWS_ACCESS_KEY_ID"],
            secret_access_key=env["AWS_SECRET_ACCESS_KEY"],
            region=env["AWS_REGION"],
            default_bucket=env.get("AWS_DEFAULT_BUCKET") or None,
            endpoint=env.get("AWS_ENDPOINT") or None,
            session_token=env.get("AWS_SESSION_TOKEN") or None,
        )
