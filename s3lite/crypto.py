from __future__ import annotations
"""Hash primitives used by the request signer."""
import hashlib
import hmac

EMPTY_SHA256 = hashlib.sha256(b"").hexdigest()


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def sha256_hex(data: bytes) -> str:
    return sha256(data).hex()


def hmac_sha256(key: bytes, message: str | bytes) -> bytes:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(key, message, hashlib.sha256).digest()
