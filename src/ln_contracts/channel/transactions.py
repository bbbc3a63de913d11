"""Transaction templates for the channel lifecycle.

Each builder returns an unsigned :class:`Transaction` whose version,
locktime and input sequences are set explicitly, so the same arguments
always produce the same txid.  Witnesses are attached afterwards by
:mod:`ln_contracts.channel.finalize`.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ln_contracts.bitcoin.script import Script
from ln_contracts.bitcoin.transaction import (
    LOCKTIME_THRESHOLD,
    SEQUENCE_FINAL,
    SEQUENCE_LOCKTIME_ENABLED,
    Coin,
    OutPoint,
    RelativeLockTime,
    Transaction,
    TxInput,
    TxOutput,
    check_locktime,
)
from ln_contracts.channel.parties import Htlc
from ln_contracts.channel.templates import (
    HtlcDirection,
    csv_p2pkh_script,
    funding_script,
    htlc_script,
    p2wpkh_script,
    p2wsh_script,
    to_local_script,
)
from ln_contracts.errors.construction_errors import AmountError, TransactionError
from ln_contracts.utils.crypto import sha256_concat

logger = logging.getLogger(__name__)

CHANNEL_TX_VERSION = 2
TIMELOCKED_TX_VERSION = 1

# Upper byte markers of an obscured commitment number (BOLT #3)
_COMMITMENT_LOCKTIME_MARKER = 0x20 << 24
_COMMITMENT_SEQUENCE_MARKER = 0x80 << 24
_COMMITMENT_NUMBER_BITS = 48


def _log_built(message: str, tx: Transaction, *args: object) -> None:
    """Debug-log a built transaction; *message* takes its txid as the first argument."""
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(message, tx.txid(), *args)


def _check_amount(amount: int, *, template: str, argument: str) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        msg = f"{argument} must be an integer number of satoshis, got {amount!r}"
        raise AmountError(msg, template=template, argument=argument)
    if amount < 0:
        msg = f"{argument} is negative ({amount} sat)"
        raise AmountError(msg, template=template, argument=argument)
    return amount


def build_output(amount: int, script_pubkey: bytes) -> TxOutput:
    """Pair an amount with a locking script."""
    _check_amount(amount, template="build_output", argument="amount")
    return TxOutput(amount, Script(script_pubkey))


# ---------------------------------------------------------------------------
# Funding and cooperative close
# ---------------------------------------------------------------------------


def build_funding_transaction(
    coins: Sequence[Coin],
    pubkey_a: bytes,
    pubkey_b: bytes,
    amount: int,
    *,
    change_script: bytes | None = None,
    fee: int = 0,
    sort_keys: bool = True,
) -> Transaction:
    """Lock *amount* into the 2-of-2 P2WSH funding output.

    Output 0 is the funding output.  With a *change_script*, any value left
    after *amount* and *fee* returns in output 1; without one it is left to
    the miner.

    Raises:
        AmountError: If *coins* cannot cover ``amount + fee``.
    """
    template = "build_funding_transaction"
    _check_amount(amount, template=template, argument="amount")
    _check_amount(fee, template=template, argument="fee")
    if not coins:
        msg = "no coins to fund the channel"
        raise AmountError(msg, template=template, argument="coins")
    total_in = sum(coin.amount for coin in coins)
    change = total_in - amount - fee
    if change < 0:
        msg = f"inputs total {total_in} sat, need {amount + fee} sat"
        raise AmountError(msg, template=template, argument="coins")

    witness_script = funding_script(pubkey_a, pubkey_b, sort_keys=sort_keys)
    outputs = [build_output(amount, p2wsh_script(witness_script))]
    if change_script is not None and change > 0:
        outputs.append(build_output(change, change_script))

    tx = Transaction(
        version=CHANNEL_TX_VERSION,
        inputs=[TxInput(coin.outpoint, sequence=SEQUENCE_FINAL) for coin in coins],
        outputs=outputs,
        locktime=0,
    )
    _log_built(
        "Built funding tx %s: %d sat channel, %d inputs, change %d sat",
        tx,
        amount,
        len(coins),
        change if len(outputs) > 1 else 0,
    )
    return tx


def build_refund_transaction(
    funding_outpoint: OutPoint,
    pubkey_a: bytes,
    pubkey_b: bytes,
    balance_a: int,
    balance_b: int,
) -> Transaction:
    """Cooperative close: pay each party its final balance to P2WPKH."""
    template = "build_refund_transaction"
    _check_amount(balance_a, template=template, argument="balance_a")
    _check_amount(balance_b, template=template, argument="balance_b")
    tx = Transaction(
        version=CHANNEL_TX_VERSION,
        inputs=[TxInput(funding_outpoint, sequence=SEQUENCE_FINAL)],
        outputs=[
            build_output(balance_a, p2wpkh_script(pubkey_a)),
            build_output(balance_b, p2wpkh_script(pubkey_b)),
        ],
        locktime=0,
    )
    _log_built("Built refund tx %s spending %s", tx, funding_outpoint)
    return tx


# ---------------------------------------------------------------------------
# Commitments
# ---------------------------------------------------------------------------


def commitment_number_obscuring_factor(
    opener_payment_basepoint: bytes, accepter_payment_basepoint: bytes
) -> int:
    """Lower 48 bits of SHA256(opener basepoint ‖ accepter basepoint)."""
    digest = sha256_concat(opener_payment_basepoint, accepter_payment_basepoint)
    return int.from_bytes(digest[-6:], "big")


def obscure_commitment_number(commitment_number: int, obscuring_factor: int) -> int:
    if not 0 <= commitment_number < 1 << _COMMITMENT_NUMBER_BITS:
        msg = f"commitment number {commitment_number} does not fit in 48 bits"
        raise TransactionError(msg, template="obscure_commitment_number", argument="commitment_number")
    return commitment_number ^ obscuring_factor


def commitment_locktime_and_sequence(obscured_commitment_number: int) -> tuple[int, int]:
    """Split a 48-bit obscured commitment number into (locktime, sequence).

    The low 24 bits go into the locktime under an ``0x20`` marker byte, the
    high 24 bits into the input sequence under an ``0x80`` marker byte.
    """
    if not 0 <= obscured_commitment_number < 1 << _COMMITMENT_NUMBER_BITS:
        msg = f"obscured commitment number {obscured_commitment_number} does not fit in 48 bits"
        raise TransactionError(
            msg, template="commitment_locktime_and_sequence", argument="obscured_commitment_number"
        )
    locktime = _COMMITMENT_LOCKTIME_MARKER | (obscured_commitment_number & 0xFFFFFF)
    sequence = _COMMITMENT_SEQUENCE_MARKER | (obscured_commitment_number >> 24)
    return locktime, sequence


def build_commitment_transaction(
    funding_outpoint: OutPoint,
    revocation_pubkey: bytes,
    delayed_pubkey: bytes,
    remote_pubkey: bytes,
    to_self_delay: int | RelativeLockTime,
    local_amount: int,
    remote_amount: int,
    *,
    obscured_commitment_number: int | None = None,
) -> Transaction:
    """One party's broadcastable snapshot of the channel balances.

    Output 0 pays *local_amount* to P2WSH(to-local script); output 1 pays
    *remote_amount* to P2WPKH(*remote_pubkey*).
    """
    return _build_commitment(
        "build_commitment_transaction",
        funding_outpoint,
        to_local_script(revocation_pubkey, delayed_pubkey, to_self_delay),
        remote_pubkey,
        local_amount,
        remote_amount,
        [],
        obscured_commitment_number,
    )


def build_htlc_commitment_transaction(
    funding_outpoint: OutPoint,
    revocation_pubkey: bytes,
    remote_htlc_pubkey: bytes,
    local_htlc_pubkey: bytes,
    delayed_pubkey: bytes,
    remote_pubkey: bytes,
    to_self_delay: int | RelativeLockTime,
    htlcs: Sequence[Htlc],
    local_amount: int,
    remote_amount: int,
    *,
    obscured_commitment_number: int | None = None,
) -> Transaction:
    """Commitment transaction carrying in-flight HTLCs.

    *local_amount* and *remote_amount* are the balances before the HTLCs are
    carved out: offered HTLCs come out of the local balance, received HTLCs
    out of the remote balance.  HTLC outputs follow the two balance outputs
    in the order given.

    Raises:
        AmountError: If either balance cannot cover its HTLCs.
    """
    template = "build_htlc_commitment_transaction"
    _check_amount(local_amount, template=template, argument="local_amount")
    _check_amount(remote_amount, template=template, argument="remote_amount")
    htlc_outputs = []
    for htlc in htlcs:
        if htlc.direction == HtlcDirection.OFFERED:
            local_amount -= htlc.amount
        else:
            remote_amount -= htlc.amount
        witness_script = htlc_script(
            htlc.direction,
            revocation_pubkey,
            remote_htlc_pubkey,
            local_htlc_pubkey,
            htlc.payment_hash160,
            htlc.cltv_expiry,
        )
        htlc_outputs.append(build_output(htlc.amount, p2wsh_script(witness_script)))
    if local_amount < 0:
        msg = f"offered HTLCs exceed the local balance by {-local_amount} sat"
        raise AmountError(msg, template=template, argument="local_amount")
    if remote_amount < 0:
        msg = f"received HTLCs exceed the remote balance by {-remote_amount} sat"
        raise AmountError(msg, template=template, argument="remote_amount")
    return _build_commitment(
        template,
        funding_outpoint,
        to_local_script(revocation_pubkey, delayed_pubkey, to_self_delay),
        remote_pubkey,
        local_amount,
        remote_amount,
        htlc_outputs,
        obscured_commitment_number,
    )


def _build_commitment(
    template: str,
    funding_outpoint: OutPoint,
    to_local: Script,
    remote_pubkey: bytes,
    local_amount: int,
    remote_amount: int,
    extra_outputs: list[TxOutput],
    obscured_commitment_number: int | None,
) -> Transaction:
    _check_amount(local_amount, template=template, argument="local_amount")
    _check_amount(remote_amount, template=template, argument="remote_amount")
    locktime, sequence = 0, SEQUENCE_FINAL
    if obscured_commitment_number is not None:
        locktime, sequence = commitment_locktime_and_sequence(obscured_commitment_number)
    outputs = [
        build_output(local_amount, p2wsh_script(to_local)),
        build_output(remote_amount, p2wpkh_script(remote_pubkey)),
        *extra_outputs,
    ]
    tx = Transaction(
        version=CHANNEL_TX_VERSION,
        inputs=[TxInput(funding_outpoint, sequence=sequence)],
        outputs=outputs,
        locktime=locktime,
    )
    _log_built(
        "Built commitment tx %s: local %d sat, remote %d sat, %d HTLC outputs",
        tx,
        local_amount,
        remote_amount,
        len(extra_outputs),
    )
    return tx


# ---------------------------------------------------------------------------
# Second-stage HTLC transactions
# ---------------------------------------------------------------------------


def _build_htlc_second_stage(
    template: str,
    htlc_outpoint: OutPoint,
    revocation_pubkey: bytes,
    delayed_pubkey: bytes,
    to_self_delay: int | RelativeLockTime,
    locktime: int,
    htlc_amount: int,
    fee: int,
) -> Transaction:
    _check_amount(htlc_amount, template=template, argument="htlc_amount")
    _check_amount(fee, template=template, argument="fee")
    if fee > htlc_amount:
        msg = f"fee {fee} sat exceeds the HTLC amount {htlc_amount} sat"
        raise AmountError(msg, template=template, argument="fee")
    check_locktime(locktime, template=template)
    output_script = p2wsh_script(to_local_script(revocation_pubkey, delayed_pubkey, to_self_delay))
    tx = Transaction(
        version=CHANNEL_TX_VERSION,
        inputs=[TxInput(htlc_outpoint, sequence=0)],
        outputs=[build_output(htlc_amount - fee, output_script)],
        locktime=locktime,
    )
    _log_built("Built tx %s (%s) spending %s", tx, template, htlc_outpoint)
    return tx


def build_htlc_timeout_transaction(
    htlc_outpoint: OutPoint,
    revocation_pubkey: bytes,
    delayed_pubkey: bytes,
    to_self_delay: int | RelativeLockTime,
    cltv_expiry: int,
    htlc_amount: int,
    *,
    fee: int = 0,
) -> Transaction:
    """Reclaim an offered HTLC after *cltv_expiry* into a revocable, delayed output."""
    return _build_htlc_second_stage(
        "build_htlc_timeout_transaction",
        htlc_outpoint,
        revocation_pubkey,
        delayed_pubkey,
        to_self_delay,
        cltv_expiry,
        htlc_amount,
        fee,
    )


def build_htlc_success_transaction(
    htlc_outpoint: OutPoint,
    revocation_pubkey: bytes,
    delayed_pubkey: bytes,
    to_self_delay: int | RelativeLockTime,
    htlc_amount: int,
    *,
    fee: int = 0,
) -> Transaction:
    """Claim a received HTLC with its preimage into a revocable, delayed output."""
    return _build_htlc_second_stage(
        "build_htlc_success_transaction",
        htlc_outpoint,
        revocation_pubkey,
        delayed_pubkey,
        to_self_delay,
        0,
        htlc_amount,
        fee,
    )


# ---------------------------------------------------------------------------
# Absolute timelock
# ---------------------------------------------------------------------------


def build_timelocked_transaction(
    outpoints: Sequence[OutPoint],
    pubkey: bytes,
    block_height: int,
    csv_delay: int | RelativeLockTime,
    amount: int,
) -> Transaction:
    """Transaction minable only from *block_height* on, paying a CSV-P2PKH output.

    Inputs use sequence ``0xFFFFFFFE`` so the locktime is enforced.

    Raises:
        TransactionError: If *block_height* is not a block height.
    """
    template = "build_timelocked_transaction"
    _check_amount(amount, template=template, argument="amount")
    if not 0 <= block_height < LOCKTIME_THRESHOLD:
        msg = f"block height {block_height} outside 0..{LOCKTIME_THRESHOLD - 1}"
        raise TransactionError(msg, template=template, argument="block_height")
    tx = Transaction(
        version=TIMELOCKED_TX_VERSION,
        inputs=[TxInput(op, sequence=SEQUENCE_LOCKTIME_ENABLED) for op in outpoints],
        outputs=[build_output(amount, csv_p2pkh_script(pubkey, csv_delay))],
        locktime=block_height,
    )
    _log_built("Built timelocked tx %s, locktime %d", tx, block_height)
    return tx
