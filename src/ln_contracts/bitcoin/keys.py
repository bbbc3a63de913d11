"""secp256k1 public-key arithmetic: parsing, compression, tweaks and point addition.

Implements the elliptic-curve operations channel key derivation needs:
- Compressed / uncompressed SEC public key encoding with on-curve checks
- Public key from a 32-byte secret
- Point × scalar tweaks and point + point combination
- Scalar arithmetic modulo the curve order
- ECDSA signing and verification of sighash digests
"""

from __future__ import annotations

import hashlib

from ecdsa import SECP256k1, BadSignatureError, SigningKey, VerifyingKey
from ecdsa.der import UnexpectedDER
from ecdsa.ellipticcurve import INFINITY, Point
from ecdsa.util import sigdecode_der, sigencode_der_canonize

from ln_contracts.errors.construction_errors import DegenerateKeyError, InvalidKeyError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_CURVE = SECP256k1
CURVE_ORDER = _CURVE.order
_FIELD_P = _CURVE.curve.p()


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def compress_public_key(raw_pubkey: bytes) -> bytes:
    """Compress a 64-byte (or 65-byte with 0x04 prefix) raw public key to 33 bytes."""
    if len(raw_pubkey) == 65 and raw_pubkey[0] == 0x04:
        raw_pubkey = raw_pubkey[1:]
    if len(raw_pubkey) != 64:
        if len(raw_pubkey) == 33 and raw_pubkey[0] in (0x02, 0x03):
            return raw_pubkey  # Already compressed
        msg = f"Invalid raw public key length: {len(raw_pubkey)}"
        raise InvalidKeyError(msg, template="compress_public_key", argument="raw_pubkey")
    x = int.from_bytes(raw_pubkey[:32], "big")
    y = int.from_bytes(raw_pubkey[32:], "big")
    prefix = b"\x02" if y % 2 == 0 else b"\x03"
    return prefix + x.to_bytes(32, "big")


def decompress_public_key(compressed: bytes) -> bytes:
    """Decompress a 33-byte compressed public key to 65-byte uncompressed.

    Raises:
        InvalidKeyError: If the encoding is malformed or x is not on the curve.
    """
    if len(compressed) != 33:
        msg = f"Invalid compressed key length: {len(compressed)}"
        raise InvalidKeyError(msg, template="decompress_public_key", argument="pubkey")
    prefix = compressed[0]
    if prefix not in (0x02, 0x03):
        msg = f"Invalid compressed key prefix: {prefix:#x}"
        raise InvalidKeyError(msg, template="decompress_public_key", argument="pubkey")
    x = int.from_bytes(compressed[1:], "big")
    if x >= _FIELD_P:
        msg = "x coordinate exceeds the field size"
        raise InvalidKeyError(msg, template="decompress_public_key", argument="pubkey")
    # y^2 = x^3 + 7  (mod p)  for secp256k1
    y_sq = (pow(x, 3, _FIELD_P) + 7) % _FIELD_P
    y = pow(y_sq, (_FIELD_P + 1) // 4, _FIELD_P)
    if pow(y, 2, _FIELD_P) != y_sq:
        msg = "point is not on the secp256k1 curve"
        raise InvalidKeyError(msg, template="decompress_public_key", argument="pubkey")
    if (y % 2 == 0) != (prefix == 0x02):
        y = _FIELD_P - y
    return b"\x04" + x.to_bytes(32, "big") + y.to_bytes(32, "big")


def validate_public_key(pubkey: bytes, *, argument: str = "pubkey") -> bytes:
    """Return *pubkey* unchanged if it is a valid compressed key, else raise."""
    try:
        decompress_public_key(pubkey)
    except InvalidKeyError as exc:
        raise InvalidKeyError(exc.message, template="validate_public_key", argument=argument) from exc
    return pubkey


def point_from_public_key(compressed: bytes) -> Point:
    """Decode a 33-byte compressed public key to an elliptic curve point."""
    uncompressed = decompress_public_key(compressed)
    x = int.from_bytes(uncompressed[1:33], "big")
    y = int.from_bytes(uncompressed[33:65], "big")
    return Point(_CURVE.curve, x, y, CURVE_ORDER)


def public_key_from_point(point: Point) -> bytes:
    """Encode an elliptic curve point as a 33-byte compressed public key."""
    if point == INFINITY:
        msg = "cannot encode the point at infinity"
        raise DegenerateKeyError(msg, template="public_key_from_point")
    x_bytes = point.x().to_bytes(32, "big")
    prefix = b"\x02" if point.y() % 2 == 0 else b"\x03"
    return prefix + x_bytes


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def scalar_from_bytes(data: bytes, *, argument: str = "scalar") -> int:
    """Interpret 32 big-endian bytes as a non-zero scalar below the curve order.

    Raises:
        InvalidKeyError: If the length is wrong or the value is out of range.
    """
    if len(data) != 32:
        msg = f"scalar must be 32 bytes, got {len(data)}"
        raise InvalidKeyError(msg, template="scalar_from_bytes", argument=argument)
    n = int.from_bytes(data, "big")
    if not 0 < n < CURVE_ORDER:
        msg = "scalar is zero or not below the curve order"
        raise InvalidKeyError(msg, template="scalar_from_bytes", argument=argument)
    return n


def scalar_to_bytes(n: int) -> bytes:
    return (n % CURVE_ORDER).to_bytes(32, "big")


def public_key_from_secret(secret: bytes) -> bytes:
    """Derive the 33-byte compressed public key for a 32-byte secret."""
    scalar_from_bytes(secret, argument="secret")
    sk = SigningKey.from_string(secret, curve=_CURVE)
    return compress_public_key(sk.get_verifying_key().to_string())


# ---------------------------------------------------------------------------
# Tweaks
# ---------------------------------------------------------------------------


def _tweak_scalar(tweak: bytes, template: str) -> int:
    try:
        return scalar_from_bytes(tweak, argument="tweak")
    except InvalidKeyError as exc:
        raise DegenerateKeyError(f"unusable tweak: {exc.message}", template=template) from exc


def multiply_public_key(pubkey: bytes, tweak: bytes) -> bytes:
    """Point-scalar multiplication: ``pubkey · tweak``.

    Raises:
        DegenerateKeyError: If *tweak* is zero or not below the curve order.
    """
    k = _tweak_scalar(tweak, "multiply_public_key")
    return public_key_from_point(point_from_public_key(pubkey) * k)


def add_tweak_to_public_key(pubkey: bytes, tweak: bytes) -> bytes:
    """``pubkey + tweak·G``.

    Raises:
        DegenerateKeyError: If the tweak is unusable or the sum is infinity.
    """
    k = _tweak_scalar(tweak, "add_tweak_to_public_key")
    return combine_public_keys(pubkey, public_key_from_secret(scalar_to_bytes(k)))


def combine_public_keys(first: bytes, second: bytes) -> bytes:
    """Elliptic-curve point addition of two public keys.

    Raises:
        DegenerateKeyError: If the keys are negations of each other.
    """
    total = point_from_public_key(first) + point_from_public_key(second)
    if total == INFINITY:
        msg = "public keys sum to the point at infinity"
        raise DegenerateKeyError(msg, template="combine_public_keys")
    return public_key_from_point(total)


# ---------------------------------------------------------------------------
# ECDSA
# ---------------------------------------------------------------------------


def sign_digest(secret: bytes, digest: bytes) -> bytes:
    """Sign a 32-byte digest (RFC 6979 nonce, low-S DER encoding)."""
    scalar_from_bytes(secret, argument="secret")
    sk = SigningKey.from_string(secret, curve=_CURVE)
    return sk.sign_digest_deterministic(
        digest, hashfunc=hashlib.sha256, sigencode=sigencode_der_canonize
    )


def verify_signature(pubkey: bytes, digest: bytes, signature: bytes) -> bool:
    """Verify a DER-encoded signature against a compressed public key and digest."""
    raw_key = decompress_public_key(pubkey)[1:]
    vk = VerifyingKey.from_string(raw_key, curve=_CURVE)
    try:
        return vk.verify_digest(signature, digest, sigdecode=sigdecode_der)
    except (BadSignatureError, UnexpectedDER):
        return False
