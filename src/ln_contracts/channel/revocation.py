"""Revocation keys, per-commitment key tweaks and per-commitment secrets.

A commitment transaction pays its broadcaster through a key the
counterparty can also reach once the state is revoked:

    revocationpubkey = B · SHA256(B ‖ P) + P · SHA256(P ‖ B)

where ``B`` is the counterparty's revocation basepoint and ``P`` the
broadcaster's per-commitment point.  Neither party knows the matching
private key until the broadcaster reveals the per-commitment secret, at
which point the counterparty computes it with
:func:`derive_revocation_privkey`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ln_contracts.bitcoin.keys import (
    CURVE_ORDER,
    add_tweak_to_public_key,
    combine_public_keys,
    multiply_public_key,
    public_key_from_secret,
    scalar_from_bytes,
    scalar_to_bytes,
    validate_public_key,
)
from ln_contracts.errors.construction_errors import DegenerateKeyError, InvalidKeyError
from ln_contracts.utils.crypto import sha256, sha256_concat

logger = logging.getLogger(__name__)

# Per-commitment secrets are indexed from 2^48 - 1 downwards
MAX_COMMITMENT_INDEX = (1 << 48) - 1


# ---------------------------------------------------------------------------
# Secret holders
# ---------------------------------------------------------------------------


@dataclass(frozen=True, repr=False)
class RevocationBasepointSecret:
    """The static secret behind a party's revocation basepoint."""

    secret: bytes

    def __post_init__(self) -> None:
        scalar_from_bytes(self.secret, argument="revocation_basepoint_secret")

    def __repr__(self) -> str:
        return f"RevocationBasepointSecret(basepoint={self.basepoint.hex()})"

    @property
    def basepoint(self) -> bytes:
        return public_key_from_secret(self.secret)


@dataclass(frozen=True, repr=False)
class PerCommitmentSecret:
    """A per-state secret, revealed to the counterparty on revocation."""

    secret: bytes

    def __post_init__(self) -> None:
        scalar_from_bytes(self.secret, argument="per_commitment_secret")

    def __repr__(self) -> str:
        return f"PerCommitmentSecret(point={self.point.hex()})"

    @property
    def point(self) -> bytes:
        return public_key_from_secret(self.secret)


# ---------------------------------------------------------------------------
# Revocation keys
# ---------------------------------------------------------------------------


def derive_revocation_pubkey(revocation_basepoint: bytes, per_commitment_point: bytes) -> bytes:
    """Derive the revocation public key for one commitment state.

    Args:
        revocation_basepoint: The countersignatory's revocation basepoint ``B``.
        per_commitment_point: The broadcaster's per-commitment point ``P``.

    Returns:
        33-byte compressed ``B·SHA256(B‖P) + P·SHA256(P‖B)``.

    Raises:
        InvalidKeyError: If either input is not a valid compressed key.
        DegenerateKeyError: If a tweak is out of range or the sum is the
            point at infinity.
    """
    validate_public_key(revocation_basepoint, argument="revocation_basepoint")
    validate_public_key(per_commitment_point, argument="per_commitment_point")
    basepoint_tweak = sha256_concat(revocation_basepoint, per_commitment_point)
    commitment_tweak = sha256_concat(per_commitment_point, revocation_basepoint)
    try:
        return combine_public_keys(
            multiply_public_key(revocation_basepoint, basepoint_tweak),
            multiply_public_key(per_commitment_point, commitment_tweak),
        )
    except DegenerateKeyError:
        logger.error(
            "Degenerate revocation key for basepoint %s and per-commitment point %s",
            revocation_basepoint.hex(),
            per_commitment_point.hex(),
        )
        raise


def derive_revocation_privkey(
    basepoint_secret: RevocationBasepointSecret,
    per_commitment_secret: PerCommitmentSecret,
) -> bytes:
    """Private key matching :func:`derive_revocation_pubkey`.

    Computable only by the countersignatory, once the broadcaster has
    revealed *per_commitment_secret*.

    Raises:
        TypeError: If the two secrets are passed in the wrong roles.
        DegenerateKeyError: If the combined scalar is zero.
    """
    if not isinstance(basepoint_secret, RevocationBasepointSecret):
        msg = "basepoint_secret must be a RevocationBasepointSecret"
        raise TypeError(msg)
    if not isinstance(per_commitment_secret, PerCommitmentSecret):
        msg = "per_commitment_secret must be a PerCommitmentSecret"
        raise TypeError(msg)
    basepoint = basepoint_secret.basepoint
    point = per_commitment_secret.point
    b = int.from_bytes(basepoint_secret.secret, "big")
    s = int.from_bytes(per_commitment_secret.secret, "big")
    h1 = int.from_bytes(sha256_concat(basepoint, point), "big")
    h2 = int.from_bytes(sha256_concat(point, basepoint), "big")
    key = (b * h1 + s * h2) % CURVE_ORDER
    if key == 0:
        logger.error("Degenerate revocation private key for basepoint %s", basepoint.hex())
        msg = "revocation private key is zero"
        raise DegenerateKeyError(msg, template="derive_revocation_privkey")
    return scalar_to_bytes(key)


# ---------------------------------------------------------------------------
# Per-commitment basepoint tweaks (localpubkey, htlcpubkey, delayedpubkey)
# ---------------------------------------------------------------------------


def derive_pubkey(basepoint: bytes, per_commitment_point: bytes) -> bytes:
    """``basepoint + SHA256(per_commitment_point ‖ basepoint)·G``."""
    validate_public_key(basepoint, argument="basepoint")
    validate_public_key(per_commitment_point, argument="per_commitment_point")
    tweak = sha256_concat(per_commitment_point, basepoint)
    try:
        return add_tweak_to_public_key(basepoint, tweak)
    except DegenerateKeyError:
        logger.error("Degenerate key tweak for basepoint %s", basepoint.hex())
        raise


def derive_privkey(basepoint_secret: bytes, per_commitment_point: bytes) -> bytes:
    """``basepoint_secret + SHA256(per_commitment_point ‖ basepoint)`` mod n."""
    secret = scalar_from_bytes(basepoint_secret, argument="basepoint_secret")
    validate_public_key(per_commitment_point, argument="per_commitment_point")
    basepoint = public_key_from_secret(basepoint_secret)
    tweak = int.from_bytes(sha256_concat(per_commitment_point, basepoint), "big")
    key = (secret + tweak) % CURVE_ORDER
    if key == 0:
        logger.error("Degenerate private key tweak for basepoint %s", basepoint.hex())
        msg = "tweaked private key is zero"
        raise DegenerateKeyError(msg, template="derive_privkey")
    return scalar_to_bytes(key)


# ---------------------------------------------------------------------------
# Per-commitment secrets
# ---------------------------------------------------------------------------


def shachain_secret(seed: bytes, index: int) -> bytes:
    """Generate the secret at *index* from a 32-byte *seed*.

    For each set bit ``b`` of the 48-bit index, from the most significant
    down, the bit is flipped in the running value and the value re-hashed.
    """
    if len(seed) != 32:
        msg = f"seed must be 32 bytes, got {len(seed)}"
        raise InvalidKeyError(msg, template="shachain_secret", argument="seed")
    if not 0 <= index <= MAX_COMMITMENT_INDEX:
        msg = f"index {index} outside 0..{MAX_COMMITMENT_INDEX}"
        raise InvalidKeyError(msg, template="shachain_secret", argument="index")
    value = bytearray(seed)
    for bit in range(47, -1, -1):
        if index >> bit & 1:
            value[bit // 8] ^= 1 << (bit % 8)
            value = bytearray(sha256(bytes(value)))
    return bytes(value)


def per_commitment_secret(seed: bytes, commitment_number: int) -> PerCommitmentSecret:
    """Per-commitment secret of state *commitment_number* (0 is the first)."""
    if not 0 <= commitment_number <= MAX_COMMITMENT_INDEX:
        msg = f"commitment number {commitment_number} outside 0..{MAX_COMMITMENT_INDEX}"
        raise InvalidKeyError(msg, template="per_commitment_secret", argument="commitment_number")
    return PerCommitmentSecret(shachain_secret(seed, MAX_COMMITMENT_INDEX - commitment_number))


def per_commitment_point(seed: bytes, commitment_number: int) -> bytes:
    """Public point of :func:`per_commitment_secret`."""
    return per_commitment_secret(seed, commitment_number).point
