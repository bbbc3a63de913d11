"""Tests for secp256k1 key arithmetic: bitcoin/keys.py."""

from __future__ import annotations

import pytest
from ecdsa.util import sigdecode_der

from ln_contracts.bitcoin.keys import (
    CURVE_ORDER,
    add_tweak_to_public_key,
    combine_public_keys,
    compress_public_key,
    decompress_public_key,
    multiply_public_key,
    public_key_from_secret,
    scalar_from_bytes,
    scalar_to_bytes,
    sign_digest,
    validate_public_key,
    verify_signature,
)
from ln_contracts.errors.construction_errors import DegenerateKeyError, InvalidKeyError
from ln_contracts.utils.crypto import sha256

_G = bytes.fromhex("0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798")
_G_Y = "483ada7726a3c4655da4fbfc0e1108a8fd17b448a68554199c47d08ffb10d4b8"
_2G = bytes.fromhex("02c6047f9441ed7d6d3045406e95c07cd85c778e4b8cef3ca7abac09b95c709ee5")
_3G = bytes.fromhex("02f9308a019258c31049344f85f89d5229b531c845836f99b08601f113bce036f9")
# x-only key from the BIP340 vectors with no matching y on the curve
_OFF_CURVE = bytes.fromhex("02eefdea4cdb677750a420fee807eacf21eb9898ae79b9768766e4faa04a2d4a34")


def _scalar(n: int) -> bytes:
    return n.to_bytes(32, "big")


class TestEncoding:
    """Compressed and uncompressed SEC encodings."""

    def test_public_key_from_secret(self) -> None:
        assert public_key_from_secret(_scalar(1)) == _G
        assert public_key_from_secret(_scalar(2)) == _2G

    def test_decompress_generator(self) -> None:
        raw = decompress_public_key(_G)
        assert raw[0] == 0x04
        assert raw[1:33] == _G[1:]
        assert raw[33:].hex() == _G_Y

    def test_compress_round_trip(self) -> None:
        assert compress_public_key(decompress_public_key(_G)) == _G
        assert compress_public_key(decompress_public_key(_G)[1:]) == _G
        assert compress_public_key(_G) == _G

    def test_odd_y_prefix(self) -> None:
        negated = b"\x03" + _G[1:]
        raw = decompress_public_key(negated)
        assert int.from_bytes(raw[33:], "big") % 2 == 1

    def test_off_curve_rejected(self) -> None:
        with pytest.raises(InvalidKeyError, match="not on the secp256k1 curve"):
            decompress_public_key(_OFF_CURVE)

    def test_bad_prefix_rejected(self) -> None:
        with pytest.raises(InvalidKeyError, match="prefix"):
            decompress_public_key(b"\x04" + _G[1:])

    def test_bad_length_rejected(self) -> None:
        with pytest.raises(InvalidKeyError, match="length"):
            decompress_public_key(_G[:-1])

    def test_x_above_field_rejected(self) -> None:
        with pytest.raises(InvalidKeyError, match="field size"):
            decompress_public_key(b"\x02" + b"\xff" * 32)

    def test_validate_names_argument(self) -> None:
        assert validate_public_key(_G) == _G
        with pytest.raises(InvalidKeyError) as excinfo:
            validate_public_key(_OFF_CURVE, argument="funding_key")
        assert excinfo.value.argument == "funding_key"


class TestScalars:
    """Scalar parsing modulo the curve order."""

    def test_zero_rejected(self) -> None:
        with pytest.raises(InvalidKeyError, match="zero"):
            scalar_from_bytes(_scalar(0))

    def test_order_rejected(self) -> None:
        with pytest.raises(InvalidKeyError):
            scalar_from_bytes(_scalar(CURVE_ORDER))

    def test_length_rejected(self) -> None:
        with pytest.raises(InvalidKeyError, match="32 bytes"):
            scalar_from_bytes(b"\x01" * 31)

    def test_to_bytes_reduces(self) -> None:
        assert scalar_to_bytes(CURVE_ORDER + 5) == _scalar(5)

    def test_secret_out_of_range(self) -> None:
        with pytest.raises(InvalidKeyError):
            public_key_from_secret(_scalar(0))


class TestPointArithmetic:
    """Tweaks and point addition."""

    def test_combine(self) -> None:
        assert combine_public_keys(_G, _G) == _2G
        assert combine_public_keys(_G, _2G) == _3G

    def test_combine_is_commutative(self) -> None:
        assert combine_public_keys(_2G, _G) == combine_public_keys(_G, _2G)

    def test_combine_to_infinity(self) -> None:
        negated = b"\x03" + _G[1:]
        with pytest.raises(DegenerateKeyError, match="infinity"):
            combine_public_keys(_G, negated)

    def test_multiply(self) -> None:
        assert multiply_public_key(_G, _scalar(3)) == _3G
        assert multiply_public_key(_G, _scalar(1)) == _G

    def test_multiply_by_zero(self) -> None:
        with pytest.raises(DegenerateKeyError, match="unusable tweak"):
            multiply_public_key(_G, _scalar(0))

    def test_add_tweak(self) -> None:
        assert add_tweak_to_public_key(_G, _scalar(2)) == _3G

    def test_add_tweak_to_infinity(self) -> None:
        with pytest.raises(DegenerateKeyError):
            add_tweak_to_public_key(_G, _scalar(CURVE_ORDER - 1))

    def test_degenerate_is_not_value_error(self) -> None:
        with pytest.raises(DegenerateKeyError) as excinfo:
            multiply_public_key(_G, _scalar(CURVE_ORDER))
        assert not isinstance(excinfo.value, ValueError)


class TestSignatures:
    """ECDSA over sighash digests."""

    def test_sign_and_verify(self) -> None:
        digest = sha256(b"commitment")
        signature = sign_digest(_scalar(7), digest)
        assert verify_signature(public_key_from_secret(_scalar(7)), digest, signature)

    def test_deterministic(self) -> None:
        digest = sha256(b"commitment")
        assert sign_digest(_scalar(7), digest) == sign_digest(_scalar(7), digest)

    def test_low_s(self) -> None:
        for message in (b"a", b"b", b"c", b"d"):
            _, s = sigdecode_der(sign_digest(_scalar(9), sha256(message)), CURVE_ORDER)
            assert s <= CURVE_ORDER // 2

    def test_wrong_digest(self) -> None:
        signature = sign_digest(_scalar(7), sha256(b"one"))
        assert not verify_signature(public_key_from_secret(_scalar(7)), sha256(b"two"), signature)

    def test_wrong_key(self) -> None:
        digest = sha256(b"one")
        signature = sign_digest(_scalar(7), digest)
        assert not verify_signature(_G, digest, signature)

    def test_malformed_der(self) -> None:
        assert not verify_signature(_G, sha256(b"one"), b"\x30\x01\x00")
