"""Command line entry point for the s3lite client."""
from __future__ import annotations

import argparse
import getpass
import logging
import sys
import uuid
from pathlib import Path
from typing import Callable, TextIO

from .config import S3Configuration
from .errors import StorageError
from .formatting import (
    build_signed_url_commands,
    format_last_modified,
    format_size,
    load_package_info,
    local_filename,
    resolve_upload_key,
)
from .profiles import ConnectionProfile, ProfileStorage
from .services import S3StorageClient
from .settings import ClientSettings, SettingsStorage

LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[S3Configuration], S3StorageClient]


def _parse_metadata(pairs: list[str] | None) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Metadata must be given as name=value, got {pair!r}")
        metadata[name.strip()] = value
    return metadata


def _cmd_buckets(client: S3StorageClient, args, settings: ClientSettings, out: TextIO) -> int:
    for name in client.list_buckets():
        print(name, file=out)
    return 0


def _cmd_ls(client: S3StorageClient, args, settings: ClientSettings, out: TextIO) -> int:
    page = client.list_files(
        args.bucket,
        prefix=args.prefix,
        max_results=args.max_keys or settings.max_keys,
        continuation_token=args.token,
    )
    for item in page.files:
        print(
            f"{format_size(item.size):>10}  {format_last_modified(item.last_modified):<23}  {item.key}",
            file=out,
        )
    if page.is_truncated and page.next_continuation_token:
        print(f"-- more results, continue with --token {page.next_continuation_token}", file=out)
    return 0


def _cmd_put(client: S3StorageClient, args, settings: ClientSettings, out: TextIO) -> int:
    source = Path(args.file)
    key = resolve_upload_key(args.key, source.name)
    metadata = _parse_metadata(args.meta)
    if args.content_type:
        metadata["content-type"] = args.content_type
    result = client.upload_file(source, key, args.bucket, metadata)
    print(f"uploaded {result.bucket}/{result.key} ({format_size(result.size)}) etag={result.etag or '-'}", file=out)
    return 0


def _cmd_get(client: S3StorageClient, args, settings: ClientSettings, out: TextIO) -> int:
    destination = args.dest or local_filename(args.key)
    client.download_to_file(args.key, destination, args.bucket)
    print(f"downloaded {args.key} -> {destination}", file=out)
    return 0


def _cmd_rm(client: S3StorageClient, args, settings: ClientSettings, out: TextIO) -> int:
    client.delete(args.key, args.bucket)
    print(f"deleted {args.key}", file=out)
    return 0


def _cmd_stat(client: S3StorageClient, args, settings: ClientSettings, out: TextIO) -> int:
    details = client.get_metadata(args.key, args.bucket)
    print(f"Bucket:        {details.bucket}", file=out)
    print(f"Key:           {details.key}", file=out)
    print(f"Size:          {format_size(details.size)} ({details.size} bytes)", file=out)
    print(f"Last modified: {format_last_modified(details.last_modified)}", file=out)
    print(f"ETag:          {details.etag or '-'}", file=out)
    print(f"Content type:  {details.content_type or '-'}", file=out)
    for name, value in sorted(details.metadata.items()):
        print(f"Metadata:      {name}={value}", file=out)
    return 0


def _cmd_presign(client: S3StorageClient, args, settings: ClientSettings, out: TextIO) -> int:
    url = client.generate_presigned_url(
        args.key,
        args.bucket,
        operation=args.method,
        expires_in=args.expires or settings.presign_expires_in,
    )
    wget_cmd, curl_cmd = build_signed_url_commands(
        method=args.method, url=url, filename=local_filename(args.key)
    )
    print(url, file=out)
    print(f"# {wget_cmd}", file=out)
    print(f"# {curl_cmd}", file=out)
    return 0


def _cmd_mb(client: S3StorageClient, args, settings: ClientSettings, out: TextIO) -> int:
    client.create_bucket(args.bucket)
    print(f"created bucket {args.bucket}", file=out)
    return 0


def _cmd_rb(client: S3StorageClient, args, settings: ClientSettings, out: TextIO) -> int:
    client.delete_bucket(args.bucket)
    print(f"removed bucket {args.bucket}", file=out)
    return 0


def _cmd_selftest(client: S3StorageClient, args, settings: ClientSettings, out: TextIO) -> int:
    """Round-trip a small object: upload, check, download, compare, delete."""
    key = f"s3lite-selftest-{uuid.uuid4().hex}.txt"
    payload = f"s3lite self test {key}\n"
    bucket = args.bucket

    result = client.upload_string(payload, key, bucket, metadata={"purpose": "selftest"})
    print(f"upload ok: {result.bucket}/{result.key}", file=out)
    try:
        if not client.exists(key, bucket):
            print("exists check failed: object not found after upload", file=out)
            return 1
        details = client.get_metadata(key, bucket)
        print(f"metadata ok: {details.size} bytes, etag={details.etag or '-'}", file=out)
        downloaded = client.download_string(key, bucket)
        if downloaded != payload:
            print("download mismatch: content differs from upload", file=out)
            return 1
        print("download ok: content matches", file=out)
    finally:
        client.delete(key, bucket)
    if client.exists(key, bucket):
        print("delete check failed: object still present", file=out)
        return 1
    print("delete ok", file=out)
    return 0


def _run_profile(args, storage: ProfileStorage, out: TextIO) -> int:
    if args.profile_command == "list":
        for profile in storage.load():
            endpoint = profile.endpoint_url or "aws"
            print(f"{profile.name}\t{profile.region}\t{endpoint}\t{profile.default_bucket or '-'}", file=out)
        return 0
    if args.profile_command == "add":
        secret_key = args.secret_key or getpass.getpass("Secret key: ")
        storage.upsert(
            ConnectionProfile(
                name=args.name,
                region=args.region,
                access_key=args.access_key,
                secret_key=secret_key,
                endpoint_url=args.endpoint or "",
                default_bucket=args.bucket or "",
            )
        )
        print(f"saved profile {args.name}", file=out)
        return 0
    storage.remove(args.name)
    print(f"removed profile {args.name}", file=out)
    return 0


def build_parser() -> argparse.ArgumentParser:
    info = load_package_info()
    parser = argparse.ArgumentParser(prog="s3lite", description=info.summary)
    parser.add_argument("--version", action="version", version=f"%(prog)s {info.version or 'dev'}")
    parser.add_argument("--profile", help="saved connection profile (default: AWS_* environment)")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    buckets = commands.add_parser("buckets", help="list buckets")
    buckets.set_defaults(handler=_cmd_buckets)

    ls = commands.add_parser("ls", help="list objects in a bucket")
    ls.add_argument("bucket", nargs="?")
    ls.add_argument("--prefix")
    ls.add_argument("--max-keys", type=int)
    ls.add_argument("--token", help="continuation token from a previous page")
    ls.set_defaults(handler=_cmd_ls)

    put = commands.add_parser("put", help="upload a file")
    put.add_argument("file")
    put.add_argument("key", nargs="?", help="target key; a trailing / appends the file name")
    put.add_argument("--bucket")
    put.add_argument("--content-type")
    put.add_argument("--meta", action="append", metavar="NAME=VALUE")
    put.set_defaults(handler=_cmd_put)

    get = commands.add_parser("get", help="download an object")
    get.add_argument("key")
    get.add_argument("dest", nargs="?")
    get.add_argument("--bucket")
    get.set_defaults(handler=_cmd_get)

    rm = commands.add_parser("rm", help="delete an object")
    rm.add_argument("key")
    rm.add_argument("--bucket")
    rm.set_defaults(handler=_cmd_rm)

    stat = commands.add_parser("stat", help="show object metadata")
    stat.add_argument("key")
    stat.add_argument("--bucket")
    stat.set_defaults(handler=_cmd_stat)

    presign = commands.add_parser("presign", help="create a presigned URL")
    presign.add_argument("key")
    presign.add_argument("--bucket")
    presign.add_argument("--method", choices=("get", "put"), default="get")
    presign.add_argument("--expires", type=int, help="validity in seconds")
    presign.set_defaults(handler=_cmd_presign)

    mb = commands.add_parser("mb", help="create a bucket")
    mb.add_argument("bucket")
    mb.set_defaults(handler=_cmd_mb)

    rb = commands.add_parser("rb", help="delete an empty bucket")
    rb.add_argument("bucket")
    rb.set_defaults(handler=_cmd_rb)

    selftest = commands.add_parser("selftest", help="upload/download/delete round trip")
    selftest.add_argument("--bucket")
    selftest.set_defaults(handler=_cmd_selftest)

    profile = commands.add_parser("profile", help="manage saved connection profiles")
    profile_commands = profile.add_subparsers(dest="profile_command", required=True)
    profile_commands.add_parser("list")
    add = profile_commands.add_parser("add")
    add.add_argument("name")
    add.add_argument("--region", required=True)
    add.add_argument("--access-key", required=True)
    add.add_argument("--secret-key", help="prompted for when omitted")
    add.add_argument("--endpoint")
    add.add_argument("--bucket", help="default bucket")
    remove = profile_commands.add_parser("remove")
    remove.add_argument("name")

    return parser


def main(
    argv: list[str] | None = None,
    *,
    client_factory: ClientFactory = S3StorageClient,
    profiles: ProfileStorage | None = None,
    settings_storage: SettingsStorage | None = None,
    out: TextIO | None = None,
) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    out = out or sys.stdout
    profiles = profiles or ProfileStorage()
    try:
        if args.command == "profile":
            return _run_profile(args, profiles, out)
        settings = (settings_storage or SettingsStorage()).load()
        if args.profile:
            configuration = profiles.get(args.profile).to_configuration()
        else:
            configuration = S3Configuration.from_environment()
        with client_factory(configuration) as client:
            return args.handler(client, args, settings, out)
    except StorageError as exc:
        LOGGER.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except (ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
