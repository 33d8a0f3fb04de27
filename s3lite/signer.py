from __future__ import annotations
"""AWS Signature Version 4 signing for S3 requests.

Two modes are supported:

* header mode (:func:`sign_headers`) returns the request headers extended with
  ``Host``, ``X-Amz-Date``, ``X-Amz-Content-Sha256`` and ``Authorization``;
* query mode (:func:`presign_url`) returns a URL that carries its own
  authentication and stays valid for ``expires_in`` seconds.

Nothing here performs I/O. The current time comes from an injectable clock so
that signatures are reproducible in tests.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping, Optional
from urllib.parse import SplitResult, quote, unquote, urlsplit, urlunsplit

from .crypto import EMPTY_SHA256, hmac_sha256, sha256_hex
from .errors import ConfigurationError
from .models import Credentials

ALGORITHM = "AWS4-HMAC-SHA256"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
SCOPE_TERMINATOR = "aws4_request"
MAX_PRESIGN_EXPIRES = 7 * 24 * 3600

# Headers computed by the signer; caller supplied values are replaced.
_SIGNER_HEADERS = frozenset(
    {"host", "x-amz-date", "x-amz-content-sha256", "x-amz-security-token", "authorization"}
)
_SIGNED_PLAIN_HEADERS = frozenset({"host", "content-type", "content-length", "content-md5", "range"})
_DEFAULT_PORTS = {"http": 80, "https": 443}

Clock = Callable[[], datetime]

LOGGER = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def amz_date(moment: datetime) -> str:
    return _as_utc(moment).strftime("%Y%m%dT%H%M%SZ")


def date_stamp(moment: datetime) -> str:
    return _as_utc(moment).strftime("%Y%m%d")


def uri_encode(value: str, *, encode_slash: bool = True) -> str:
    """Percent-encode ``value`` leaving only ``A-Z a-z 0-9 - _ . ~`` untouched.

    Non-ASCII characters are encoded as their UTF-8 bytes with uppercase hex
    digits, and a space always becomes ``%20``.
    """
    return quote(value, safe="" if encode_slash else "/")


def canonical_uri(path: str) -> str:
    """Return the canonical form of an (optionally percent-encoded) URL path.

    Each segment is decoded and encoded again on its own, so an encoded ``/``
    inside a key stays ``%2F`` and never splits the segment.
    """
    if not path:
        return "/"
    return "/".join(uri_encode(unquote(segment)) for segment in path.split("/"))


def parse_query(query: str) -> list[tuple[str, str]]:
    params: list[tuple[str, str]] = []
    for pair in query.split("&"):
        if not pair:
            continue
        name, _, value = pair.partition("=")
        params.append((unquote(name), unquote(value)))
    return params


def canonical_query_string(params: Iterable[tuple[str, str]]) -> str:
    encoded = sorted((uri_encode(name), uri_encode(value)) for name, value in params)
    return "&".join(f"{name}={value}" for name, value in encoded)


def canonical_headers(headers: Mapping[str, str]) -> tuple[str, str]:
    """Return the canonical header block and the matching signed-header list.

    Names repeated with different case are listed once, their values joined
    with commas in input order.
    """
    values: dict[str, list[str]] = {}
    for name, value in headers.items():
        values.setdefault(name.strip().lower(), []).append(str(value).strip())
    names = sorted(values)
    block = "".join(f"{name}:{','.join(values[name])}\n" for name in names)
    return block, ";".join(names)


def build_canonical_request(
    method: str,
    uri: str,
    query: str,
    header_block: str,
    signed_headers: str,
    payload_hash: str,
) -> str:
    return "\n".join([method.upper(), uri, query, header_block, signed_headers, payload_hash])


def credential_scope(moment: datetime, credentials: Credentials) -> str:
    return f"{date_stamp(moment)}/{credentials.region}/{credentials.service}/{SCOPE_TERMINATOR}"


def build_string_to_sign(moment: datetime, scope: str, canonical_request: str) -> str:
    return "\n".join(
        [ALGORITHM, amz_date(moment), scope, sha256_hex(canonical_request.encode("utf-8"))]
    )


def derive_signing_key(secret_key: str, date: str, region: str, service: str = "s3") -> bytes:
    k_date = hmac_sha256(("AWS4" + secret_key).encode("utf-8"), date)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, SCOPE_TERMINATOR)


def _split_url(url: str) -> SplitResult:
    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError for a non-numeric port
    except ValueError as exc:
        raise ConfigurationError(f"Invalid URL for signing: {url!r}") from exc
    if not parts.scheme or not parts.netloc:
        raise ConfigurationError(f"Invalid URL for signing: {url!r}")
    return parts


def _host_header(parts: SplitResult) -> str:
    host = parts.netloc.rpartition("@")[2].lower()
    if parts.port is not None and parts.port == _DEFAULT_PORTS.get(parts.scheme.lower()):
        host = host.rsplit(":", 1)[0]
    return host


def _merge_caller_headers(headers: Optional[Mapping[str, str]]) -> dict[str, str]:
    # Names differing only in case are one header on the wire; the last one wins.
    spellings: dict[str, str] = {}
    merged: dict[str, str] = {}
    for name, value in (headers or {}).items():
        lowered = name.lower()
        if lowered in _SIGNER_HEADERS:
            continue
        previous = spellings.get(lowered)
        if previous is not None:
            del merged[previous]
        spellings[lowered] = name
        merged[name] = value
    return merged


def _is_signed_header(name: str) -> bool:
    lowered = name.lower()
    return lowered in _SIGNED_PLAIN_HEADERS or lowered.startswith("x-amz-")


def _signature(credentials: Credentials, moment: datetime, scope: str, canonical_request: str) -> str:
    string_to_sign = build_string_to_sign(moment, scope, canonical_request)
    LOGGER.debug("Canonical request:\n%s", canonical_request)
    LOGGER.debug("String to sign:\n%s", string_to_sign)
    key = derive_signing_key(
        credentials.secret_access_key, date_stamp(moment), credentials.region, credentials.service
    )
    return hmac_sha256(key, string_to_sign).hex()


def sign_headers(
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]],
    body: Optional[bytes],
    credentials: Credentials,
    *,
    clock: Clock = utcnow,
) -> dict[str, str]:
    """Return a new header dict for ``url`` carrying a SigV4 ``Authorization``.

    ``headers`` is copied, never modified. ``Host``, ``Content-Type``,
    ``Content-Length``, ``Content-MD5``, ``Range`` and every ``x-amz-*`` header
    take part in the signature.
    """
    parts = _split_url(url)
    moment = clock()
    payload_hash = sha256_hex(body) if body else EMPTY_SHA256

    result = _merge_caller_headers(headers)
    result["Host"] = _host_header(parts)
    result["X-Amz-Date"] = amz_date(moment)
    result["X-Amz-Content-Sha256"] = payload_hash
    if credentials.session_token:
        result["X-Amz-Security-Token"] = credentials.session_token

    header_block, signed_headers = canonical_headers(
        {name: value for name, value in result.items() if _is_signed_header(name)}
    )
    canonical_request = build_canonical_request(
        method,
        canonical_uri(parts.path),
        canonical_query_string(parse_query(parts.query)),
        header_block,
        signed_headers,
        payload_hash,
    )
    scope = credential_scope(moment, credentials)
    signature = _signature(credentials, moment, scope, canonical_request)
    result["Authorization"] = (
        f"{ALGORITHM} Credential={credentials.access_key_id}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return result


def presign_url(
    method: str,
    url: str,
    expires_in: int,
    credentials: Credentials,
    *,
    clock: Clock = utcnow,
) -> str:
    """Return ``url`` with SigV4 query authentication valid for ``expires_in`` seconds.

    Only ``host`` is signed and the payload is ``UNSIGNED-PAYLOAD``, so the URL
    can be used with any body. Query parameters already on ``url`` are kept.

    Raises:
        ConfigurationError: when ``url`` cannot be split into its components.
    """
    parts = _split_url(url)
    moment = clock()
    scope = credential_scope(moment, credentials)

    params = parse_query(parts.query)
    params.extend(
        [
            ("X-Amz-Algorithm", ALGORITHM),
            ("X-Amz-Credential", f"{credentials.access_key_id}/{scope}"),
            ("X-Amz-Date", amz_date(moment)),
            ("X-Amz-Expires", str(int(expires_in))),
            ("X-Amz-SignedHeaders", "host"),
        ]
    )
    if credentials.session_token:
        params.append(("X-Amz-Security-Token", credentials.session_token))

    query = canonical_query_string(params)
    path = canonical_uri(parts.path)
    header_block, signed_headers = canonical_headers({"host": _host_header(parts)})
    canonical_request = build_canonical_request(
        method, path, query, header_block, signed_headers, UNSIGNED_PAYLOAD
    )
    signature = _signature(credentials, moment, scope, canonical_request)
    return urlunsplit((parts.scheme, parts.netloc, path, f"{query}&X-Amz-Signature={signature}", ""))
