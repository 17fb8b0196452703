"""Secure-hash signing shared by every gateway adapter.

The canonical string is built the same way for outgoing redirects and
incoming callbacks: drop empty values, sort keys byte-wise, form-encode
each ``key=value`` pair (spaces as ``+``) and join with ``&``.  The
signature is the lowercase hex HMAC-SHA512 of that string.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Mapping
from urllib.parse import quote_plus


def canonical_query(params: Mapping[str, object]) -> str:
    items = [
        (str(key), str(value))
        for key, value in params.items()
        if value is not None and str(value) != ""
    ]
    items.sort(key=lambda item: item[0].encode("utf-8"))
    return "&".join(f"{quote_plus(key)}={quote_plus(value)}" for key, value in items)


def sign(params: Mapping[str, object], secret: str) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        canonical_query(params).encode("utf-8"),
        hashlib.sha512,
    ).hexdigest()


def verify(params: Mapping[str, object], signature: str, secret: str) -> bool:
    """Constant-time comparison of ``signature`` with a fresh one over ``params``."""
    if not signature:
        return False
    return hmac.compare_digest(sign(params, secret), signature.strip().lower())


def signed_query(params: Mapping[str, object], secret: str, hash_field: str) -> str:
    """Canonical query string with the signature appended as the last parameter."""
    return f"{canonical_query(params)}&{hash_field}={sign(params, secret)}"
