"""Witness assembly, signing orchestration and broadcast.

Transaction templates produce unsigned transactions; the functions here
collect signatures from :class:`~ln_contracts.channel.interfaces.Signer`
implementations, lay out the witness stack each script branch expects and
hand the result to a :class:`~ln_contracts.channel.interfaces.Broadcaster`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

from ln_contracts.bitcoin.keys import verify_signature
from ln_contracts.bitcoin.script import find_multisig
from ln_contracts.bitcoin.transaction import SigHash, Transaction
from ln_contracts.channel.templates import PAYMENT_PREIMAGE_SIZE, ClaimPath, HtlcDirection
from ln_contracts.errors.construction_errors import (
    InvalidKeyError,
    ScriptEncodingError,
    TransactionError,
)

if TYPE_CHECKING:
    from ln_contracts.channel.interfaces import Broadcaster, Signer

logger = logging.getLogger(__name__)

# Witness stack element that selects the OP_IF branch
_TRUE = b"\x01"
# Empty element: the OP_ELSE branch selector and the CHECKMULTISIG dummy
_EMPTY = b""


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


def sign_input(
    transaction: Transaction,
    input_index: int,
    signer: Signer,
    witness_script: bytes,
    amount: int,
    sighash_type: int = SigHash.ALL,
) -> bytes:
    """Collect a signature from *signer* and append the sighash byte."""
    der = signer.sign(transaction, input_index, witness_script, amount, sighash_type)
    return der + bytes([sighash_type])


def verify_input_signature(
    transaction: Transaction,
    input_index: int,
    witness_script: bytes,
    amount: int,
    pubkey: bytes,
    signature: bytes,
) -> bool:
    """Check a sighash-suffixed signature over input *input_index*."""
    if not signature:
        return False
    digest = transaction.segwit_sighash(input_index, witness_script, amount, signature[-1])
    return verify_signature(pubkey, digest, signature[:-1])


# ---------------------------------------------------------------------------
# Multisig
# ---------------------------------------------------------------------------


def _multisig_keys(witness_script: bytes) -> tuple[int, list[bytes]]:
    """Threshold and keys of the first ``<k> <keys...> <n> CHECKMULTISIG`` in a script."""
    try:
        found = find_multisig(witness_script)
    except ScriptEncodingError as exc:
        raise TransactionError(
            exc.message, template="multisig_witness", argument="witness_script"
        ) from exc
    if found is None:
        msg = "witness script has no CHECKMULTISIG over compressed keys"
        raise TransactionError(msg, template="multisig_witness", argument="witness_script")
    return found


def ordered_signatures(
    keys: Sequence[bytes], threshold: int, signatures: Mapping[bytes, bytes]
) -> list[bytes]:
    """Pick *threshold* signatures in the order their keys appear in the script.

    Raises:
        TransactionError: If fewer than *threshold* keys have a signature.
    """
    ordered = [signatures[key] for key in keys if key in signatures][:threshold]
    if len(ordered) < threshold:
        msg = f"need {threshold} signatures, have {len(ordered)} for the script's keys"
        raise TransactionError(msg, template="ordered_signatures", argument="signatures")
    return ordered


def multisig_witness(witness_script: bytes, signatures: Mapping[bytes, bytes]) -> tuple[bytes, ...]:
    """``<> <sig...> <witness_script>`` for a bare k-of-n multisig witness script.

    *signatures* maps public key to sighash-suffixed signature.
    """
    threshold, keys = _multisig_keys(witness_script)
    return (_EMPTY, *ordered_signatures(keys, threshold, signatures), bytes(witness_script))


def payment_channel_multisig_witness(
    witness_script: bytes, signatures: Mapping[bytes, bytes]
) -> tuple[bytes, ...]:
    """Cooperative branch of the funding-with-refund script."""
    threshold, keys = _multisig_keys(witness_script)
    return (
        _EMPTY,
        *ordered_signatures(keys, threshold, signatures),
        _TRUE,
        bytes(witness_script),
    )


def payment_channel_refund_witness(
    witness_script: bytes, pubkey: bytes, signature: bytes
) -> tuple[bytes, ...]:
    """Refund branch of the funding-with-refund script.

    The spending input's sequence must encode at least the script's CSV
    delay, in a version 2 transaction.
    """
    return (signature, pubkey, _EMPTY, bytes(witness_script))


def sign_multisig_input(
    transaction: Transaction,
    input_index: int,
    witness_script: bytes,
    amount: int,
    signers: Sequence[Signer],
    sighash_type: int = SigHash.ALL,
) -> Transaction:
    """Sign a P2WSH multisig input with every signer and attach the witness."""
    signatures = {
        signer.public_key: sign_input(
            transaction, input_index, signer, witness_script, amount, sighash_type
        )
        for signer in signers
    }
    witness = multisig_witness(witness_script, signatures)
    return transaction.with_input_witness(input_index, *witness)


# ---------------------------------------------------------------------------
# Commitment outputs
# ---------------------------------------------------------------------------


def to_local_witness(witness_script: bytes, signature: bytes, path: ClaimPath) -> tuple[bytes, ...]:
    """Witness spending a to-local output (or an HTLC second-stage output).

    ``ClaimPath.REVOCATION`` is the counterparty's penalty sweep;
    ``ClaimPath.TIMEOUT`` is the owner's claim once the CSV delay has passed.

    Raises:
        TransactionError: For ``ClaimPath.PREIMAGE``, which has no branch here.
    """
    if path == ClaimPath.REVOCATION:
        return (signature, _TRUE, bytes(witness_script))
    if path == ClaimPath.TIMEOUT:
        return (signature, _EMPTY, bytes(witness_script))
    msg = f"to-local output has no {path} branch"
    raise TransactionError(msg, template="to_local_witness", argument="path")


def htlc_witness(
    direction: HtlcDirection,
    path: ClaimPath,
    witness_script: bytes,
    signature: bytes,
    *,
    local_signature: bytes | None = None,
    revocation_pubkey: bytes | None = None,
    preimage: bytes | None = None,
) -> tuple[bytes, ...]:
    """Witness stack spending an HTLC output of a commitment transaction.

    *signature* is the spender's signature: the revocation key holder's for
    ``REVOCATION``, otherwise the remote HTLC key holder's.

    ===========  ===========  ============================================
    direction    path         stack (bottom first, script omitted)
    ===========  ===========  ============================================
    any          REVOCATION   revocation_sig, revocation_pubkey
    OFFERED      PREIMAGE     remote_sig, preimage
    OFFERED      TIMEOUT      <>, remote_sig, local_sig, <>
    RECEIVED     PREIMAGE     <>, remote_sig, local_sig, preimage
    RECEIVED     TIMEOUT      remote_sig, <>
    ===========  ===========  ============================================

    Raises:
        InvalidKeyError: If a revocation spend has no *revocation_pubkey*.
        TransactionError: If the branch's other inputs are missing.
    """
    script = bytes(witness_script)
    if path == ClaimPath.REVOCATION:
        if revocation_pubkey is None:
            msg = "revocation spend needs the revocation public key"
            raise InvalidKeyError(msg, template="htlc_witness", argument="revocation_pubkey")
        return (signature, revocation_pubkey, script)

    needs_preimage = path == ClaimPath.PREIMAGE
    needs_local = (direction == HtlcDirection.OFFERED) == (path == ClaimPath.TIMEOUT)
    if needs_preimage and (preimage is None or len(preimage) != PAYMENT_PREIMAGE_SIZE):
        msg = f"{direction} HTLC {path} spend needs a {PAYMENT_PREIMAGE_SIZE}-byte preimage"
        raise TransactionError(msg, template="htlc_witness", argument="preimage")
    if needs_local and local_signature is None:
        msg = f"{direction} HTLC {path} spend needs the local HTLC signature"
        raise TransactionError(msg, template="htlc_witness", argument="local_signature")

    if direction == HtlcDirection.OFFERED and path == ClaimPath.PREIMAGE:
        return (signature, preimage, script)
    if direction == HtlcDirection.OFFERED:
        return (_EMPTY, signature, local_signature, _EMPTY, script)
    if path == ClaimPath.PREIMAGE:
        return (_EMPTY, signature, local_signature, preimage, script)
    return (signature, _EMPTY, script)


# ---------------------------------------------------------------------------
# Broadcast
# ---------------------------------------------------------------------------


def broadcast_transaction(transaction: Transaction, broadcaster: Broadcaster) -> str:
    """Hand a fully signed transaction to *broadcaster* and return its txid.

    Raises:
        TransactionError: If any input carries neither a witness nor a script_sig.
    """
    for index, tx_input in enumerate(transaction.inputs):
        if not tx_input.witness and not tx_input.script_sig:
            msg = f"input {index} ({tx_input.outpoint}) is unsigned"
            raise TransactionError(msg, template="broadcast_transaction", argument="transaction")
    txid = transaction.txid()
    logger.info("Broadcasting transaction %s (%d vbytes)", txid, transaction.vsize)
    broadcaster.broadcast(transaction.serialize())
    return txid
