"""Script templates for payment channels and HTLCs.

Every function here is pure: the same keys and parameters always produce the
same bytes, and each returned :class:`Script` is a fresh immutable value.

Output scripts:
- P2PKH, P2WPKH, P2SH and P2WSH locking scripts
- k-of-n bare multisig and the 2-of-2 channel funding script
- CSV / CLTV timelocked P2PKH

Witness scripts:
- payment-channel funding-with-refund
- to-local (revocable, delayed)
- offered and received HTLCs
"""

from __future__ import annotations

import enum

from ln_contracts.bitcoin.script import MAX_MULTISIG_KEYS, OpCode, Script, ScriptBuilder
from ln_contracts.bitcoin.transaction import (
    RelativeLockTime,
    as_relative_locktime,
    check_locktime,
)
from ln_contracts.errors.construction_errors import ScriptEncodingError
from ln_contracts.utils.crypto import hash160, ripemd160

PAYMENT_PREIMAGE_SIZE = 32


class HtlcDirection(enum.StrEnum):
    """Which side of the commitment transaction offered the HTLC."""

    OFFERED = "offered"
    RECEIVED = "received"


class ClaimPath(enum.StrEnum):
    """Script branch used to spend a revocable or HTLC output."""

    REVOCATION = "revocation"
    PREIMAGE = "preimage"
    TIMEOUT = "timeout"


# ---------------------------------------------------------------------------
# Standard output scripts
# ---------------------------------------------------------------------------


def p2pkh_script(pubkey: bytes) -> Script:
    """``OP_DUP OP_HASH160 <hash160(pubkey)> OP_EQUALVERIFY OP_CHECKSIG``."""
    return _p2pkh_tail(ScriptBuilder(), pubkey).build()


def _p2pkh_tail(builder: ScriptBuilder, pubkey: bytes) -> ScriptBuilder:
    return (
        builder.push_opcode(OpCode.OP_DUP)
        .push_opcode(OpCode.OP_HASH160)
        .push_pubkey_hash(pubkey)
        .push_opcode(OpCode.OP_EQUALVERIFY)
        .push_opcode(OpCode.OP_CHECKSIG)
    )


def p2wpkh_script(pubkey: bytes) -> Script:
    """``OP_0 <hash160(pubkey)>``."""
    return ScriptBuilder().push_opcode(OpCode.OP_0).push_pubkey_hash(pubkey).build()


def p2wsh_script(witness_script: bytes) -> Script:
    """``OP_0 <sha256(witness_script)>``."""
    return Script(witness_script).to_p2wsh()


def p2sh_script(redeem_script: bytes) -> Script:
    """``OP_HASH160 <hash160(redeem_script)> OP_EQUAL``."""
    return Script(redeem_script).to_p2sh()


# ---------------------------------------------------------------------------
# Multisig and funding
# ---------------------------------------------------------------------------


def sort_pubkeys(pubkeys: list[bytes] | tuple[bytes, ...]) -> list[bytes]:
    """Canonical order: lexicographic by compressed serialization."""
    return sorted(pubkeys)


def multisig_script(threshold: int, pubkeys: list[bytes] | tuple[bytes, ...]) -> Script:
    """``<k> <key_1> ... <key_n> <n> OP_CHECKMULTISIG`` with keys in caller order.

    Raises:
        ScriptEncodingError: Unless ``1 <= threshold <= len(pubkeys) <= 20``.
    """
    n = len(pubkeys)
    if not 1 <= threshold <= n <= MAX_MULTISIG_KEYS:
        msg = f"invalid {threshold}-of-{n} multisig (need 1 <= k <= n <= {MAX_MULTISIG_KEYS})"
        raise ScriptEncodingError(msg, template="multisig_script", argument="threshold")
    builder = ScriptBuilder().push_int(threshold)
    for pubkey in pubkeys:
        builder.push_key(pubkey)
    return builder.push_int(n).push_opcode(OpCode.OP_CHECKMULTISIG).build()


def funding_script(pubkey_a: bytes, pubkey_b: bytes, *, sort_keys: bool = True) -> Script:
    """The 2-of-2 witness script locking the channel funds.

    With *sort_keys* (the default) both parties derive identical bytes
    regardless of argument order.
    """
    keys = [pubkey_a, pubkey_b]
    if sort_keys:
        keys = sort_pubkeys(keys)
    return multisig_script(2, keys)


def funding_output_script(pubkey_a: bytes, pubkey_b: bytes, *, sort_keys: bool = True) -> Script:
    """P2WSH locking script of the funding output."""
    return p2wsh_script(funding_script(pubkey_a, pubkey_b, sort_keys=sort_keys))


# ---------------------------------------------------------------------------
# Timelocks
# ---------------------------------------------------------------------------


def _push_csv_delay(builder: ScriptBuilder, delay: int | RelativeLockTime) -> ScriptBuilder:
    return (
        builder.push_int(as_relative_locktime(delay).to_sequence())
        .push_opcode(OpCode.OP_CHECKSEQUENCEVERIFY)
        .push_opcode(OpCode.OP_DROP)
    )


def csv_p2pkh_script(pubkey: bytes, delay: int | RelativeLockTime) -> Script:
    """``<delay> OP_CSV OP_DROP`` followed by P2PKH.

    A plain int *delay* counts blocks.
    """
    return _p2pkh_tail(_push_csv_delay(ScriptBuilder(), delay), pubkey).build()


def cltv_p2pkh_script(pubkey: bytes, locktime: int) -> Script:
    """``<height-or-timestamp> OP_CLTV OP_DROP`` followed by P2PKH."""
    check_locktime(locktime, template="cltv_p2pkh_script")
    builder = (
        ScriptBuilder()
        .push_int(locktime)
        .push_opcode(OpCode.OP_CHECKLOCKTIMEVERIFY)
        .push_opcode(OpCode.OP_DROP)
    )
    return _p2pkh_tail(builder, pubkey).build()


def payment_channel_funding_script(
    pubkey_a: bytes,
    pubkey_b: bytes,
    refund_delay: int | RelativeLockTime,
    *,
    sort_keys: bool = True,
) -> Script:
    """Funding script with a unilateral refund path for the funder.

    ``OP_IF <2-of-2> OP_ELSE <delay> OP_CSV OP_DROP <P2PKH(pubkey_a)> OP_ENDIF``.
    *pubkey_a* is the funder; only the multisig branch is affected by
    *sort_keys*.
    """
    return (
        ScriptBuilder()
        .push_opcode(OpCode.OP_IF)
        .push_script(funding_script(pubkey_a, pubkey_b, sort_keys=sort_keys))
        .push_opcode(OpCode.OP_ELSE)
        .push_script(csv_p2pkh_script(pubkey_a, refund_delay))
        .push_opcode(OpCode.OP_ENDIF)
        .build()
    )


# ---------------------------------------------------------------------------
# Commitment outputs
# ---------------------------------------------------------------------------


def to_local_script(
    revocation_pubkey: bytes,
    delayed_pubkey: bytes,
    to_self_delay: int | RelativeLockTime,
) -> Script:
    """Revocable, delayed output paying the commitment broadcaster.

    ``OP_IF <revocationpubkey> OP_ELSE <to_self_delay> OP_CSV OP_DROP
    <delayedpubkey> OP_ENDIF OP_CHECKSIG``
    """
    builder = (
        ScriptBuilder()
        .push_opcode(OpCode.OP_IF)
        .push_key(revocation_pubkey)
        .push_opcode(OpCode.OP_ELSE)
    )
    return (
        _push_csv_delay(builder, to_self_delay)
        .push_key(delayed_pubkey)
        .push_opcode(OpCode.OP_ENDIF)
        .push_opcode(OpCode.OP_CHECKSIG)
        .build()
    )


def payment_hash_to_hash160(payment_hash: bytes) -> bytes:
    """RIPEMD160 of a 32-byte SHA256 payment hash, as committed to in HTLC scripts."""
    if len(payment_hash) != 32:
        msg = f"payment hash must be 32 bytes, got {len(payment_hash)}"
        raise ScriptEncodingError(msg, template="payment_hash_to_hash160", argument="payment_hash")
    return ripemd160(payment_hash)


def htlc_script(
    direction: HtlcDirection,
    revocation_pubkey: bytes,
    remote_htlc_pubkey: bytes,
    local_htlc_pubkey: bytes,
    payment_hash160: bytes,
    cltv_expiry: int | None = None,
) -> Script:
    """Witness script of an HTLC output on a commitment transaction.

    Both directions open with the revocation check::

        OP_DUP OP_HASH160 <hash160(revocationpubkey)> OP_EQUAL
        OP_IF OP_CHECKSIG OP_ELSE <remote_htlcpubkey> OP_SWAP OP_SIZE 32 OP_EQUAL

    An offered HTLC then lets the remote side claim with the preimage, or both
    sides spend jointly (into an HTLC-timeout transaction)::

        OP_NOTIF OP_DROP 2 OP_SWAP <local_htlcpubkey> 2 OP_CHECKMULTISIG
        OP_ELSE OP_HASH160 <payment_hash160> OP_EQUALVERIFY OP_CHECKSIG
        OP_ENDIF OP_ENDIF

    A received HTLC lets both sides spend jointly with the preimage (into an
    HTLC-success transaction), or the remote side reclaim after *cltv_expiry*::

        OP_IF OP_HASH160 <payment_hash160> OP_EQUALVERIFY
        2 OP_SWAP <local_htlcpubkey> 2 OP_CHECKMULTISIG
        OP_ELSE OP_DROP <cltv_expiry> OP_CLTV OP_DROP OP_CHECKSIG
        OP_ENDIF OP_ENDIF

    Raises:
        ScriptEncodingError: If a received HTLC has no *cltv_expiry*.
    """
    builder = (
        ScriptBuilder()
        .push_opcode(OpCode.OP_DUP)
        .push_opcode(OpCode.OP_HASH160)
        .push_hash160(hash160(revocation_pubkey))
        .push_opcode(OpCode.OP_EQUAL)
        .push_opcode(OpCode.OP_IF)
        .push_opcode(OpCode.OP_CHECKSIG)
        .push_opcode(OpCode.OP_ELSE)
        .push_key(remote_htlc_pubkey)
        .push_opcode(OpCode.OP_SWAP)
        .push_opcode(OpCode.OP_SIZE)
        .push_int(PAYMENT_PREIMAGE_SIZE)
        .push_opcode(OpCode.OP_EQUAL)
    )
    if direction == HtlcDirection.OFFERED:
        builder.push_opcode(OpCode.OP_NOTIF).push_opcode(OpCode.OP_DROP)
        _push_htlc_multisig(builder, local_htlc_pubkey)
        (
            builder.push_opcode(OpCode.OP_ELSE)
            .push_opcode(OpCode.OP_HASH160)
            .push_hash160(payment_hash160)
            .push_opcode(OpCode.OP_EQUALVERIFY)
            .push_opcode(OpCode.OP_CHECKSIG)
        )
    else:
        if cltv_expiry is None:
            msg = "received HTLC script needs a cltv_expiry"
            raise ScriptEncodingError(msg, template="htlc_script", argument="cltv_expiry")
        check_locktime(cltv_expiry, template="htlc_script")
        (
            builder.push_opcode(OpCode.OP_IF)
            .push_opcode(OpCode.OP_HASH160)
            .push_hash160(payment_hash160)
            .push_opcode(OpCode.OP_EQUALVERIFY)
        )
        _push_htlc_multisig(builder, local_htlc_pubkey)
        (
            builder.push_opcode(OpCode.OP_ELSE)
            .push_opcode(OpCode.OP_DROP)
            .push_int(cltv_expiry)
            .push_opcode(OpCode.OP_CHECKLOCKTIMEVERIFY)
            .push_opcode(OpCode.OP_DROP)
            .push_opcode(OpCode.OP_CHECKSIG)
        )
    return builder.push_opcode(OpCode.OP_ENDIF).push_opcode(OpCode.OP_ENDIF).build()


def _push_htlc_multisig(builder: ScriptBuilder, local_htlc_pubkey: bytes) -> None:
    # remote key is already on the stack beneath the swap
    (
        builder.push_int(2)
        .push_opcode(OpCode.OP_SWAP)
        .push_key(local_htlc_pubkey)
        .push_int(2)
        .push_opcode(OpCode.OP_CHECKMULTISIG)
    )


def offered_htlc_script(
    revocation_pubkey: bytes,
    remote_htlc_pubkey: bytes,
    local_htlc_pubkey: bytes,
    payment_hash160: bytes,
) -> Script:
    return htlc_script(
        HtlcDirection.OFFERED,
        revocation_pubkey,
        remote_htlc_pubkey,
        local_htlc_pubkey,
        payment_hash160,
    )


def received_htlc_script(
    revocation_pubkey: bytes,
    remote_htlc_pubkey: bytes,
    local_htlc_pubkey: bytes,
    payment_hash160: bytes,
    cltv_expiry: int,
) -> Script:
    return htlc_script(
        HtlcDirection.RECEIVED,
        revocation_pubkey,
        remote_htlc_pubkey,
        local_htlc_pubkey,
        payment_hash160,
        cltv_expiry,
    )
