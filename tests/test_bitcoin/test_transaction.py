"""Tests for transaction serialisation and signature hashing: bitcoin/transaction.py."""

from __future__ import annotations

from io import BytesIO

import pytest

from ln_contracts.bitcoin.transaction import (
    SEQUENCE_FINAL,
    LockTimeUnit,
    OutPoint,
    RelativeLockTime,
    SigHash,
    Transaction,
    TxInput,
    TxOutput,
    as_relative_locktime,
    check_locktime,
    encode_varint,
    read_varint,
)
from ln_contracts.errors.construction_errors import AmountError, TransactionError

# BIP143 native P2WPKH example, unsigned
_BIP143_UNSIGNED = (
    "0100000002fff7f7881a8099afa6940d42d1e7f6362bec38171ea3edf433541db4e4ad969f"
    "0000000000eeffffffef51e1b804cc89d182d279655c3aa89e815b1b309fe287d9b2b55d57b9"
    "0ec68a0100000000ffffffff02202cb206000000001976a9148280b37df378db99f66f85c95a"
    "783a76ac7a6d5988ac9093510d000000001976a9143bde42dbee7e4dbe6a21b2d50ce2f0167f"
    "aa815988ac11000000"
)
_BIP143_SCRIPT_CODE = bytes.fromhex("76a9141d0f172a0ecb48aee1be1f2687d2963ae33f71a188ac")
_BIP143_SIGHASH = "c37af31116d1b27caf68aae9e3ac82f1477929014d5b917657d0eb49478cb670"


def _simple_tx(witness: tuple[bytes, ...] = ()) -> Transaction:
    return Transaction(
        version=2,
        inputs=[TxInput(OutPoint(b"\x11" * 32, 1), sequence=0xFFFFFFFD, witness=witness)],
        outputs=[TxOutput(50_000, b"\x00\x14" + b"\x22" * 20)],
        locktime=650_000,
    )


class TestVarInt:
    """Variable-length integer boundaries."""

    @pytest.mark.parametrize(
        ("value", "encoded"),
        [
            (0, "00"),
            (0xFC, "fc"),
            (0xFD, "fdfd00"),
            (0xFFFF, "fdffff"),
            (0x10000, "fe00000100"),
            (0x100000000, "ff0000000001000000"),
        ],
    )
    def test_encode_and_read(self, value: int, encoded: str) -> None:
        assert encode_varint(value).hex() == encoded
        assert read_varint(BytesIO(bytes.fromhex(encoded))) == value

    def test_read_empty_stream(self) -> None:
        with pytest.raises(ValueError, match="end of stream"):
            read_varint(BytesIO(b""))


class TestOutPoint:
    """Outpoint validation and display."""

    def test_display_order(self) -> None:
        outpoint = OutPoint(bytes(range(32)), 3)
        assert outpoint.txid_hex == bytes(range(32))[::-1].hex()
        assert str(outpoint) == f"{outpoint.txid_hex}:3"
        assert OutPoint.from_txid_hex(outpoint.txid_hex, 3) == outpoint

    def test_txid_length(self) -> None:
        with pytest.raises(TransactionError, match="32 bytes"):
            OutPoint(b"\x00" * 31, 0)

    def test_index_range(self) -> None:
        with pytest.raises(TransactionError):
            OutPoint(b"\x00" * 32, 2**32)


class TestOutputsAndInputs:
    """Field validation on inputs and outputs."""

    def test_negative_amount(self) -> None:
        with pytest.raises(AmountError, match="outside"):
            TxOutput(-1, b"")

    def test_amount_above_max_money(self) -> None:
        with pytest.raises(AmountError):
            TxOutput(21_000_000 * 100_000_000 + 1, b"")

    def test_bool_amount(self) -> None:
        with pytest.raises(AmountError, match="integer"):
            TxOutput(True, b"")

    def test_sequence_range(self) -> None:
        with pytest.raises(TransactionError):
            TxInput(OutPoint(b"\x00" * 32, 0), sequence=-1)

    def test_with_witness_copies(self) -> None:
        tx_input = TxInput(OutPoint(b"\x00" * 32, 0))
        signed = tx_input.with_witness(b"\x01", b"\x02")
        assert signed.witness == (b"\x01", b"\x02")
        assert tx_input.witness == ()


class TestTransaction:
    """Serialization, ids and size accounting."""

    def test_needs_inputs_and_outputs(self) -> None:
        with pytest.raises(TransactionError, match="no inputs"):
            Transaction(version=2, inputs=[], outputs=[TxOutput(1, b"")])
        with pytest.raises(TransactionError, match="no outputs"):
            Transaction(version=2, inputs=[TxInput(OutPoint(b"\x00" * 32, 0))], outputs=[])

    def test_lists_stored_as_tuples(self) -> None:
        tx = _simple_tx()
        assert isinstance(tx.inputs, tuple)
        assert isinstance(tx.outputs, tuple)

    def test_legacy_round_trip(self) -> None:
        tx = Transaction.from_hex(_BIP143_UNSIGNED)
        assert tx.to_hex() == _BIP143_UNSIGNED
        assert tx.version == 1
        assert tx.locktime == 0x11
        assert tx.inputs[0].sequence == 0xFFFFFFEE
        assert [out.value for out in tx.outputs] == [112_340_000, 223_450_000]

    def test_segwit_round_trip(self) -> None:
        tx = _simple_tx(witness=(b"\x30" * 71, b"\x02" * 33))
        raw = tx.serialize()
        assert raw[4:6] == b"\x00\x01"
        assert Transaction.from_bytes(raw) == tx

    def test_txid_ignores_witness(self) -> None:
        bare = _simple_tx()
        signed = bare.with_input_witness(0, b"\x01")
        assert signed.txid() == bare.txid()
        assert signed.wtxid() != bare.wtxid()
        assert bare.wtxid() == bare.txid()

    def test_txid_is_reversed_hash(self) -> None:
        tx = _simple_tx()
        assert tx.txid() == tx.txid_bytes()[::-1].hex()
        assert tx.outpoint(0) == OutPoint(tx.txid_bytes(), 0)

    def test_outpoint_range(self) -> None:
        with pytest.raises(TransactionError, match="out of range"):
            _simple_tx().outpoint(1)

    def test_trailing_bytes(self) -> None:
        with pytest.raises(TransactionError, match="trailing"):
            Transaction.from_bytes(_simple_tx().serialize() + b"\x00")

    def test_truncated(self) -> None:
        with pytest.raises(ValueError):
            Transaction.from_bytes(_simple_tx().serialize()[:-2])

    def test_weight(self) -> None:
        bare = _simple_tx()
        assert bare.weight == 4 * bare.size
        signed = bare.with_input_witness(0, b"\x01" * 72)
        assert signed.weight < 4 * signed.size
        assert signed.vsize == (signed.weight + 3) // 4

    def test_total_output_value(self) -> None:
        assert _simple_tx().total_output_value == 50_000


class TestSegwitSighash:
    """BIP143 signature hash."""

    def test_bip143_native_p2wpkh(self) -> None:
        tx = Transaction.from_hex(_BIP143_UNSIGNED)
        digest = tx.segwit_sighash(1, _BIP143_SCRIPT_CODE, 600_000_000, SigHash.ALL)
        assert digest.hex() == _BIP143_SIGHASH

    def test_commits_to_amount(self) -> None:
        tx = Transaction.from_hex(_BIP143_UNSIGNED)
        assert tx.segwit_sighash(1, _BIP143_SCRIPT_CODE, 600_000_000) != tx.segwit_sighash(
            1, _BIP143_SCRIPT_CODE, 600_000_001
        )

    def test_sighash_types_differ(self) -> None:
        tx = Transaction.from_hex(_BIP143_UNSIGNED)
        digests = {
            tx.segwit_sighash(0, _BIP143_SCRIPT_CODE, 1000, flags)
            for flags in (SigHash.ALL, SigHash.NONE, SigHash.SINGLE, SigHash.ALL | SigHash.ANYONECANPAY)
        }
        assert len(digests) == 4

    def test_input_index_range(self) -> None:
        with pytest.raises(TransactionError, match="out of range"):
            _simple_tx().segwit_sighash(1, b"", 0)


class TestLockTimes:
    """BIP68 relative locktimes and absolute locktime validation."""

    def test_blocks(self) -> None:
        lock = RelativeLockTime.from_blocks(144)
        assert lock.unit == LockTimeUnit.BLOCKS
        assert lock.to_sequence() == 144

    def test_seconds_round_up(self) -> None:
        assert RelativeLockTime.from_seconds(1024).value == 2
        assert RelativeLockTime.from_seconds(1025).value == 3
        assert RelativeLockTime.from_seconds(1).value == 1

    def test_seconds_sequence_sets_type_flag(self) -> None:
        assert RelativeLockTime.from_seconds(1024).to_sequence() == (1 << 22) | 2

    def test_from_sequence(self) -> None:
        assert RelativeLockTime.from_sequence(SEQUENCE_FINAL) is None
        assert RelativeLockTime.from_sequence(144) == RelativeLockTime.from_blocks(144)
        lock = RelativeLockTime.from_sequence((1 << 22) | 5)
        assert lock == RelativeLockTime(5, LockTimeUnit.SECONDS)

    def test_value_range(self) -> None:
        with pytest.raises(TransactionError):
            RelativeLockTime.from_blocks(0x10000)
        with pytest.raises(TransactionError):
            RelativeLockTime.from_seconds(-1)

    def test_as_relative_locktime(self) -> None:
        lock = RelativeLockTime.from_seconds(512)
        assert as_relative_locktime(lock) is lock
        assert as_relative_locktime(10) == RelativeLockTime.from_blocks(10)

    def test_check_locktime(self) -> None:
        assert check_locktime(0) == 0
        assert check_locktime(0xFFFFFFFF) == 0xFFFFFFFF
        with pytest.raises(TransactionError, match="32-bit"):
            check_locktime(2**32)
