"""Per-party key material and HTLC descriptions."""

from __future__ import annotations

from dataclasses import dataclass

from ln_contracts.bitcoin.keys import validate_public_key
from ln_contracts.bitcoin.transaction import MAX_MONEY, check_locktime
from ln_contracts.channel.revocation import derive_pubkey, derive_revocation_pubkey
from ln_contracts.channel.templates import HtlcDirection
from ln_contracts.errors.construction_errors import AmountError, ScriptEncodingError


@dataclass(frozen=True)
class ChannelPublicKeys:
    """The static public keys one party contributes to a channel.

    All keys are 33-byte compressed public keys and are validated on
    construction.
    """

    identity_key: bytes
    funding_key: bytes
    revocation_basepoint: bytes
    payment_basepoint: bytes
    delayed_payment_basepoint: bytes
    htlc_basepoint: bytes

    def __post_init__(self) -> None:
        validate_public_key(self.identity_key, argument="identity_key")
        validate_public_key(self.funding_key, argument="funding_key")
        validate_public_key(self.revocation_basepoint, argument="revocation_basepoint")
        validate_public_key(self.payment_basepoint, argument="payment_basepoint")
        validate_public_key(self.delayed_payment_basepoint, argument="delayed_payment_basepoint")
        validate_public_key(self.htlc_basepoint, argument="htlc_basepoint")


@dataclass(frozen=True)
class CommitmentKeys:
    """Keys tweaked for one commitment state, from the broadcaster's view.

    Attributes:
        per_commitment_point: The broadcaster's point for this state.
        revocation_pubkey: Key that lets the countersignatory punish this state.
        local_delayed_pubkey: Broadcaster's delayed to-local key.
        local_htlc_pubkey: Broadcaster's HTLC key.
        remote_htlc_pubkey: Countersignatory's HTLC key.
        remote_payment_pubkey: Countersignatory's to-remote key.
    """

    per_commitment_point: bytes
    revocation_pubkey: bytes
    local_delayed_pubkey: bytes
    local_htlc_pubkey: bytes
    remote_htlc_pubkey: bytes
    remote_payment_pubkey: bytes

    @classmethod
    def derive(
        cls,
        per_commitment_point: bytes,
        local: ChannelPublicKeys,
        remote: ChannelPublicKeys,
    ) -> CommitmentKeys:
        """Tweak both parties' basepoints for the broadcaster's state.

        The to-remote output pays the countersignatory's untweaked payment
        basepoint.
        """
        return cls(
            per_commitment_point=per_commitment_point,
            revocation_pubkey=derive_revocation_pubkey(
                remote.revocation_basepoint, per_commitment_point
            ),
            local_delayed_pubkey=derive_pubkey(
                local.delayed_payment_basepoint, per_commitment_point
            ),
            local_htlc_pubkey=derive_pubkey(local.htlc_basepoint, per_commitment_point),
            remote_htlc_pubkey=derive_pubkey(remote.htlc_basepoint, per_commitment_point),
            remote_payment_pubkey=remote.payment_basepoint,
        )


@dataclass(frozen=True)
class Htlc:
    """A hashed-time-locked contract pending on a commitment.

    Attributes:
        payment_hash160: RIPEMD160 of the SHA256 payment hash (20 bytes).
        amount: HTLC value in satoshis.
        cltv_expiry: Absolute block height after which the offerer may reclaim.
        direction: Whether the commitment broadcaster offered or received it.
    """

    payment_hash160: bytes
    amount: int
    cltv_expiry: int
    direction: HtlcDirection

    def __post_init__(self) -> None:
        if len(self.payment_hash160) != 20:
            msg = f"payment hash160 must be 20 bytes, got {len(self.payment_hash160)}"
            raise ScriptEncodingError(msg, template="Htlc", argument="payment_hash160")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            msg = f"HTLC amount must be an integer number of satoshis, got {self.amount!r}"
            raise AmountError(msg, template="Htlc", argument="amount")
        if not 0 < self.amount <= MAX_MONEY:
            msg = f"HTLC amount {self.amount} outside 1..{MAX_MONEY} satoshis"
            raise AmountError(msg, template="Htlc", argument="amount")
        check_locktime(self.cltv_expiry, template="Htlc")
        object.__setattr__(self, "direction", HtlcDirection(self.direction))
