"""Tests for hashing helpers."""

from __future__ import annotations

from ln_contracts.utils.crypto import hash160, ripemd160, sha256, sha256_concat, sha256d


def test_sha256() -> None:
    assert sha256(b"").hex() == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def test_sha256d() -> None:
    assert sha256d(b"").hex() == "5df6e0e2761359d30a8275058e299fcc0381534545f55cf43e41983f5d4c9456"


def test_ripemd160() -> None:
    assert ripemd160(b"").hex() == "9c1185a5c5e9fc54612808977ee8f548b2258d31"


def test_hash160() -> None:
    data = b"channel"
    assert hash160(data) == ripemd160(sha256(data))
    assert len(hash160(data)) == 20


def test_sha256_concat_matches_joined_input() -> None:
    assert sha256_concat(b"ab", b"cd") == sha256(b"abcd")
    assert sha256_concat() == sha256(b"")


def test_sha256_concat_is_order_sensitive() -> None:
    a, b = b"\x02" * 33, b"\x03" * 33
    assert sha256_concat(a, b) != sha256_concat(b, a)
