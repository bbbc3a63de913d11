"""Hashing helpers: SHA-256, Hash160 and the concatenated-key digests used for key tweaks."""

from __future__ import annotations

import hashlib


def sha256(data: bytes) -> bytes:
    """Single SHA-256 hash."""
    return hashlib.sha256(data).digest()


def sha256d(data: bytes) -> bytes:
    """Double SHA-256 hash (SHA256(SHA256(data)))."""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def ripemd160(data: bytes) -> bytes:
    """RIPEMD-160 hash."""
    h = hashlib.new("ripemd160")
    h.update(data)
    return h.digest()


def hash160(data: bytes) -> bytes:
    """Standard Bitcoin Hash160: RIPEMD-160(SHA-256(data))."""
    return ripemd160(sha256(data))


def sha256_concat(*parts: bytes) -> bytes:
    """SHA-256 over the concatenation of *parts*, in the order given.

    Order is significant: ``sha256_concat(a, b) != sha256_concat(b, a)``.
    """
    h = hashlib.sha256()
    for part in parts:
        h.update(part)
    return h.digest()
