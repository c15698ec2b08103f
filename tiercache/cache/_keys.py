"""
Key sanitizer — caller keys to filesystem-safe tokens.

    sanitize("https://image.tmdb.org/t/p/w500/abc.jpg?x=1&y=2")
    # 'https%3A%2F%2Fimage%2Etmdb%2Eorg%2Ft%2Fp%2Fw500%2Fabc%2Ejpg%3Fx%3D1%26y%3D2'

Every byte outside [A-Za-z0-9_~-] is percent-escaped, '%' and '.' included,
so distinct keys always yield distinct tokens and no token can end in the
sidecar suffix or be '.'/'..'.
"""

from __future__ import annotations

import hashlib
from urllib.parse import quote

# ═══════════════════════════════════════════════════════════════════════════════
# Limits
# ═══════════════════════════════════════════════════════════════════════════════

MAX_TOKEN_LENGTH = 200
"""Leaves room for the sidecar suffix under the usual 255-byte name limit."""

_PREFIX_LENGTH = 136
_HASH_SEPARATOR = "~"


# ═══════════════════════════════════════════════════════════════════════════════
# sanitize()
# ═══════════════════════════════════════════════════════════════════════════════


def sanitize(key: str) -> str:
    """
    Map a cache key to an on-disk token.

    Injective for tokens up to MAX_TOKEN_LENGTH. Longer tokens become
    '<prefix>~<sha256>' — exactly MAX_TOKEN_LENGTH + 1 characters, so they
    never coincide with an unshortened token.

    Raises:
        ValueError: key is empty.
    """
    if not key:
        raise ValueError("cache key must not be empty")

    # quote() never escapes '.', so do it by hand after '%' is already escaped
    token = quote(key, safe="").replace(".", "%2E")
    if len(token) <= MAX_TOKEN_LENGTH:
        return token

    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return f"{token[:_PREFIX_LENGTH]}{_HASH_SEPARATOR}{digest}"


def memory_key(category: str, token: str) -> str:
    """Memory-tier key; categories share one memory tier."""
    return f"{category}/{token}"


__all__ = ("MAX_TOKEN_LENGTH", "sanitize", "memory_key")
