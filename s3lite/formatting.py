from __future__ import annotations
"""Output helpers for the command line client."""
from dataclasses import dataclass
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, metadata, version

DIST_NAME = "pys3lite"


@dataclass(frozen=True)
class PackageInfo:
    name: str
    version: str
    summary: str


def load_package_info(dist_name: str = DIST_NAME) -> PackageInfo:
    try:
        distribution_metadata = metadata(dist_name)
        package_version = version(dist_name)
    except PackageNotFoundError:
        return PackageInfo(
            name="s3lite",
            version="",
            summary="Lightweight client for S3-compatible object storage.",
        )
    return PackageInfo(
        name=distribution_metadata.get("Name") or dist_name,
        version=package_version,
        summary=distribution_metadata.get("Summary") or "",
    )


_SIZE_UNITS = ("KB", "MB", "GB", "TB")


def format_size(size: int | None) -> str:
    """Whole bytes below 1 KB, otherwise one decimal in the largest fitting unit."""
    if size is None:
        return "-"
    if size < 1024:
        return f"{max(size, 0)} B"
    value = float(size)
    for unit in _SIZE_UNITS:
        value /= 1024
        if value < 1024:
            break
    return f"{value:.1f} {unit}"


def format_last_modified(last_modified: datetime | None) -> str:
    """Render ``last_modified`` in UTC; naive values are already UTC."""
    if last_modified is None:
        return "-"
    if last_modified.tzinfo is not None:
        last_modified = last_modified.astimezone(timezone.utc)
    return last_modified.strftime("%Y-%m-%d %H:%M:%S UTC")


def resolve_upload_key(key: str | None, filename: str) -> str:
    """Target key for ``put``: a missing key or a ``prefix/`` gets ``filename`` appended."""
    if key and not key.endswith("/"):
        return key
    return f"{(key or '').lstrip('/')}{filename}"


def local_filename(key: str) -> str:
    return key.rstrip("/").rpartition("/")[2] or "download"


def build_signed_url_commands(*, method: str, url: str, filename: str) -> tuple[str, str]:
    """Return ``(wget, curl)`` command lines that use a presigned URL."""
    normalized = (method or "get").strip().lower()
    if normalized in ("get", "read"):
        return f'wget "{url}" -O "{filename}"', f'curl -L "{url}" -o "{filename}"'
    wget_cmd = f'wget --method=PUT --body-file="{filename}" "{url}"'
    curl_cmd = f'curl -T "{filename}" "{url}"'
    return wget_cmd, curl_cmd
