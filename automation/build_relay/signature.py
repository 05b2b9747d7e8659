"""HMAC verification of inbound webhook bodies.

The build service signs the raw body with HMAC-SHA1 and sends the digest in
base64 as `sha1=<digest>`; GitHub sends `sha256=<hex>`. Both algorithms and
both encodings are accepted, SHA-256 first.
"""

from __future__ import annotations

import base64
import hashlib
import hmac

ALGORITHMS = ("sha256", "sha1")


def provided_digest(header_value: str) -> str:
    value = header_value.strip()
    if "=" in value:
        return value.split("=", 1)[1]
    return value


def expected_digests(raw_body: bytes, secret: str) -> list[str]:
    candidates: list[str] = []
    for algorithm in ALGORITHMS:
        digest = hmac.new(secret.encode("utf-8"), raw_body, getattr(hashlib, algorithm)).digest()
        candidates.append(digest.hex())
        candidates.append(base64.b64encode(digest).decode("ascii"))
    return candidates


def verify(raw_body: bytes, secret: str, header_value: str) -> bool:
    """Return True when header_value is a valid signature of raw_body.

    An empty secret disables verification and every request is trusted.
    """

    if not secret:
        return True
    provided = provided_digest(header_value or "")
    if not provided:
        return False
    provided_bytes = provided.encode("utf-8")
    matched = False
    # Every candidate is compared so timing does not reveal which one matched.
    for candidate in expected_digests(raw_body, secret):
        if hmac.compare_digest(provided_bytes, candidate.encode("ascii")):
            matched = True
    return matched


def sign(raw_body: bytes, secret: str, algorithm: str = "sha1", encoding: str = "base64") -> str:
    if algorithm not in ALGORITHMS:
        raise ValueError(f"unsupported algorithm: {algorithm}")
    digest = hmac.new(secret.encode("utf-8"), raw_body, getattr(hashlib, algorithm)).digest()
    if encoding == "hex":
        value = digest.hex()
    elif encoding == "base64":
        value = base64.b64encode(digest).decode("ascii")
    else:
        raise ValueError(f"unsupported encoding: {encoding}")
    return f"{algorithm}={value}"
