"""Transaction serialisation: legacy and segwit wire format, txid and BIP143 sighash.

Provides pure-Python Bitcoin transaction serialization and deserialization:
- OutPoint / TxInput / TxOutput value classes
- Transaction with serialize / deserialize / txid / wtxid
- VarInt encoding/decoding
- BIP143 signature hashing for segwit v0 inputs
- BIP68 relative locktime encoding
"""

from __future__ import annotations

import dataclasses
import enum
import struct
from dataclasses import dataclass, field
from io import BytesIO

from ln_contracts.errors.construction_errors import AmountError, TransactionError
from ln_contracts.utils.crypto import sha256d

MAX_MONEY = 21_000_000 * 100_000_000

# ---------------------------------------------------------------------------
# VarInt encoding / decoding
# ---------------------------------------------------------------------------


def encode_varint(n: int) -> bytes:
    """Encode an integer as a Bitcoin-style variable-length integer."""
    if n < 0xFD:
        return struct.pack("<B", n)
    if n <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", n)
    if n <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", n)
    return b"\xff" + struct.pack("<Q", n)


def read_varint(stream: BytesIO) -> int:
    """Read a Bitcoin-style variable-length integer from a byte stream."""
    first = stream.read(1)
    if len(first) == 0:
        msg = "Unexpected end of stream reading varint"
        raise ValueError(msg)
    n = first[0]
    if n < 0xFD:
        return n
    if n == 0xFD:
        return struct.unpack("<H", read_exact(stream, 2))[0]
    if n == 0xFE:
        return struct.unpack("<I", read_exact(stream, 4))[0]
    return struct.unpack("<Q", read_exact(stream, 8))[0]


def encode_bytes(data: bytes) -> bytes:
    """Length-prefix *data* with a varint."""
    return encode_varint(len(data)) + data


def read_exact(stream: BytesIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        msg = f"Unexpected end of stream: wanted {size} bytes, got {len(data)}"
        raise ValueError(msg)
    return data


def _read_bytes(stream: BytesIO) -> bytes:
    return read_exact(stream, read_varint(stream))


# ---------------------------------------------------------------------------
# Sequence / locktime constants (BIP65, BIP68, BIP112)
# ---------------------------------------------------------------------------

# Final sequence: disables both locktime and relative locktime for the input
SEQUENCE_FINAL = 0xFFFFFFFF
# Enables nLockTime without opting into replace-by-fee signalling
SEQUENCE_LOCKTIME_ENABLED = 0xFFFFFFFE

SEQUENCE_LOCKTIME_DISABLE_FLAG = 1 << 31
SEQUENCE_LOCKTIME_TYPE_FLAG = 1 << 22
SEQUENCE_LOCKTIME_MASK = 0x0000FFFF
SEQUENCE_LOCKTIME_GRANULARITY = 9  # 512-second units

# nLockTime below this is a block height, at or above a UNIX timestamp
LOCKTIME_THRESHOLD = 500_000_000


class LockTimeUnit(enum.StrEnum):
    """Unit of a BIP68 relative locktime."""

    BLOCKS = "blocks"
    SECONDS = "seconds"


@dataclass(frozen=True)
class RelativeLockTime:
    """A BIP68 relative locktime, as consumed by OP_CHECKSEQUENCEVERIFY.

    Attributes:
        value: Number of blocks, or number of 512-second intervals.
        unit: Whether *value* counts blocks or 512-second intervals.
    """

    value: int
    unit: LockTimeUnit = LockTimeUnit.BLOCKS

    def __post_init__(self) -> None:
        if not 0 <= self.value <= SEQUENCE_LOCKTIME_MASK:
            msg = f"relative locktime {self.value} outside 0..{SEQUENCE_LOCKTIME_MASK}"
            raise TransactionError(msg, template="RelativeLockTime", argument="value")

    @classmethod
    def from_blocks(cls, blocks: int) -> RelativeLockTime:
        return cls(blocks, LockTimeUnit.BLOCKS)

    @classmethod
    def from_seconds(cls, seconds: int) -> RelativeLockTime:
        """Round *seconds* up to the next whole 512-second interval."""
        if seconds < 0:
            msg = f"relative locktime seconds must be non-negative, got {seconds}"
            raise TransactionError(msg, template="RelativeLockTime", argument="seconds")
        granule = 1 << SEQUENCE_LOCKTIME_GRANULARITY
        return cls(-(-seconds // granule), LockTimeUnit.SECONDS)

    @classmethod
    def from_sequence(cls, sequence: int) -> RelativeLockTime | None:
        """Decode a sequence field; ``None`` if relative locktime is disabled."""
        if sequence & SEQUENCE_LOCKTIME_DISABLE_FLAG:
            return None
        unit = (
            LockTimeUnit.SECONDS
            if sequence & SEQUENCE_LOCKTIME_TYPE_FLAG
            else LockTimeUnit.BLOCKS
        )
        return cls(sequence & SEQUENCE_LOCKTIME_MASK, unit)

    def to_sequence(self) -> int:
        """BIP68 bit layout: type flag (bit 22) plus the 16-bit value."""
        if self.unit == LockTimeUnit.SECONDS:
            return SEQUENCE_LOCKTIME_TYPE_FLAG | self.value
        return self.value


def as_relative_locktime(delay: int | RelativeLockTime) -> RelativeLockTime:
    """Interpret a bare int as a block count."""
    if isinstance(delay, RelativeLockTime):
        return delay
    return RelativeLockTime.from_blocks(delay)


def check_locktime(locktime: int, *, template: str = "locktime") -> int:
    """Validate a 32-bit nLockTime / CLTV operand (height or timestamp)."""
    if not 0 <= locktime <= 0xFFFFFFFF:
        msg = f"locktime {locktime} is not a 32-bit unsigned value"
        raise TransactionError(msg, template=template, argument="locktime")
    return locktime


# ---------------------------------------------------------------------------
# Sighash types
# ---------------------------------------------------------------------------


class SigHash(enum.IntEnum):
    """Signature hash types."""

    ALL = 0x01
    NONE = 0x02
    SINGLE = 0x03
    ANYONECANPAY = 0x80


# ---------------------------------------------------------------------------
# OutPoint
# ---------------------------------------------------------------------------

# The null previous outpoint used in coinbase transactions
COINBASE_TXID = b"\x00" * 32


@dataclass(frozen=True)
class OutPoint:
    """Reference to a previously created output.

    Attributes:
        txid: 32-byte hash of the previous transaction (internal byte order).
        index: Index of the output in the previous transaction.
    """

    txid: bytes
    index: int

    def __post_init__(self) -> None:
        if len(self.txid) != 32:
            msg = f"txid must be 32 bytes, got {len(self.txid)}"
            raise TransactionError(msg, template="OutPoint", argument="txid")
        if not 0 <= self.index <= 0xFFFFFFFF:
            msg = f"output index {self.index} is not a 32-bit unsigned value"
            raise TransactionError(msg, template="OutPoint", argument="index")

    @classmethod
    def from_txid_hex(cls, txid_hex: str, index: int) -> OutPoint:
        """Build from a display-order (reversed) hex txid."""
        return cls(bytes.fromhex(txid_hex)[::-1], index)

    @property
    def txid_hex(self) -> str:
        """Transaction ID in display (reversed) hex."""
        return self.txid[::-1].hex()

    @property
    def is_null(self) -> bool:
        """Check if this is the coinbase null outpoint."""
        return self.txid == COINBASE_TXID and self.index == 0xFFFFFFFF

    def serialize(self) -> bytes:
        return self.txid + struct.pack("<I", self.index)

    @classmethod
    def deserialize(cls, stream: BytesIO) -> OutPoint:
        txid = read_exact(stream, 32)
        index = struct.unpack("<I", read_exact(stream, 4))[0]
        return cls(txid, index)

    def __str__(self) -> str:
        return f"{self.txid_hex}:{self.index}"


# ---------------------------------------------------------------------------
# TxInput
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TxInput:
    """A transaction input.

    Attributes:
        outpoint: The output being spent.
        sequence: Sequence number; carries BIP68 relative locktime when enabled.
        script_sig: Unlocking script (empty for native segwit spends).
        witness: Witness stack items, serialized in the segwit section.
    """

    outpoint: OutPoint
    sequence: int = SEQUENCE_FINAL
    script_sig: bytes = b""
    witness: tuple[bytes, ...] = ()

    def __post_init__(self) -> None:
        if not 0 <= self.sequence <= 0xFFFFFFFF:
            msg = f"sequence {self.sequence} is not a 32-bit unsigned value"
            raise TransactionError(msg, template="TxInput", argument="sequence")

    def with_witness(self, *items: bytes) -> TxInput:
        """Return a copy carrying *items* as its witness stack."""
        return dataclasses.replace(self, witness=tuple(items))

    def serialize(self) -> bytes:
        """Serialize the input to bytes (witness is serialized separately)."""
        result = self.outpoint.serialize()
        result += encode_bytes(self.script_sig)
        result += struct.pack("<I", self.sequence)
        return result

    @classmethod
    def deserialize(cls, stream: BytesIO) -> TxInput:
        """Deserialize a transaction input from a byte stream."""
        outpoint = OutPoint.deserialize(stream)
        script_sig = _read_bytes(stream)
        sequence = struct.unpack("<I", read_exact(stream, 4))[0]
        return cls(outpoint=outpoint, sequence=sequence, script_sig=script_sig)


# ---------------------------------------------------------------------------
# TxOutput
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TxOutput:
    """A transaction output.

    Attributes:
        value: Output value in satoshis.
        script_pubkey: Locking script (scriptPubKey).
    """

    value: int
    script_pubkey: bytes

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            msg = f"amount must be an integer number of satoshis, got {self.value!r}"
            raise AmountError(msg, template="TxOutput", argument="value")
        if not 0 <= self.value <= MAX_MONEY:
            msg = f"amount {self.value} outside 0..{MAX_MONEY} satoshis"
            raise AmountError(msg, template="TxOutput", argument="value")

    def serialize(self) -> bytes:
        """Serialize the output to bytes."""
        return struct.pack("<q", self.value) + encode_bytes(self.script_pubkey)

    @classmethod
    def deserialize(cls, stream: BytesIO) -> TxOutput:
        """Deserialize a transaction output from a byte stream."""
        value = struct.unpack("<q", read_exact(stream, 8))[0]
        script_pubkey = _read_bytes(stream)
        return cls(value=value, script_pubkey=script_pubkey)


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Transaction:
    """A Bitcoin transaction.

    Attributes:
        version: Transaction version (2 enables BIP68 relative locktimes).
        inputs: Ordered transaction inputs; at least one.
        outputs: Ordered transaction outputs; at least one.
        locktime: nLockTime (block height below 500,000,000, else a timestamp).
    """

    version: int
    inputs: tuple[TxInput, ...]
    outputs: tuple[TxOutput, ...]
    locktime: int = 0

    def __post_init__(self) -> None:
        # Accept lists from callers but store tuples
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "outputs", tuple(self.outputs))
        if not self.inputs:
            msg = "transaction has no inputs"
            raise TransactionError(msg, template="Transaction", argument="inputs")
        if not self.outputs:
            msg = "transaction has no outputs"
            raise TransactionError(msg, template="Transaction", argument="outputs")
        if not -(2**31) <= self.version < 2**31:
            msg = f"version {self.version} is not a 32-bit signed value"
            raise TransactionError(msg, template="Transaction", argument="version")
        check_locktime(self.locktime, template="Transaction")

    @property
    def has_witness(self) -> bool:
        return any(inp.witness for inp in self.inputs)

    def with_input_witness(self, index: int, *items: bytes) -> Transaction:
        """Return a copy of the transaction with input *index* carrying *items*."""
        inputs = list(self.inputs)
        inputs[index] = inputs[index].with_witness(*items)
        return dataclasses.replace(self, inputs=tuple(inputs))

    def serialize(self, *, include_witness: bool = True) -> bytes:
        """Serialize the transaction to raw bytes.

        The segwit marker/flag and witness section are emitted only when
        *include_witness* is set and at least one input has a witness.
        """
        segwit = include_witness and self.has_witness
        result = struct.pack("<i", self.version)
        if segwit:
            result += b"\x00\x01"
        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += inp.serialize()
        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += out.serialize()
        if segwit:
            for inp in self.inputs:
                result += encode_varint(len(inp.witness))
                for item in inp.witness:
                    result += encode_bytes(item)
        result += struct.pack("<I", self.locktime)
        return result

    def to_hex(self) -> str:
        """Serialize to hex string."""
        return self.serialize().hex()

    @classmethod
    def deserialize(cls, stream: BytesIO) -> Transaction:
        """Deserialize a transaction (legacy or segwit) from a byte stream."""
        version = struct.unpack("<i", read_exact(stream, 4))[0]
        n_inputs = read_varint(stream)
        segwit = False
        if n_inputs == 0:
            flag = read_exact(stream, 1)
            if flag != b"\x01":
                msg = f"unsupported segwit flag {flag.hex()}"
                raise TransactionError(msg, template="Transaction.deserialize")
            segwit = True
            n_inputs = read_varint(stream)
        inputs = [TxInput.deserialize(stream) for _ in range(n_inputs)]
        n_outputs = read_varint(stream)
        outputs = [TxOutput.deserialize(stream) for _ in range(n_outputs)]
        if segwit:
            inputs = [
                inp.with_witness(*[_read_bytes(stream) for _ in range(read_varint(stream))])
                for inp in inputs
            ]
        locktime = struct.unpack("<I", read_exact(stream, 4))[0]
        return cls(version=version, inputs=tuple(inputs), outputs=tuple(outputs), locktime=locktime)

    @classmethod
    def from_hex(cls, hex_str: str) -> Transaction:
        """Deserialize a transaction from a hex string."""
        return cls.from_bytes(bytes.fromhex(hex_str))

    @classmethod
    def from_bytes(cls, data: bytes) -> Transaction:
        """Deserialize a transaction from raw bytes, rejecting trailing data."""
        stream = BytesIO(data)
        tx = cls.deserialize(stream)
        if stream.read(1):
            msg = "trailing bytes after transaction"
            raise TransactionError(msg, template="Transaction.from_bytes")
        return tx

    def txid_bytes(self) -> bytes:
        """Transaction ID as 32 bytes (internal byte order), witness excluded."""
        return sha256d(self.serialize(include_witness=False))

    def txid(self) -> str:
        """Compute the transaction ID (double-SHA256, reversed, hex)."""
        return self.txid_bytes()[::-1].hex()

    def wtxid(self) -> str:
        """Witness transaction ID (display hex)."""
        return sha256d(self.serialize())[::-1].hex()

    def outpoint(self, index: int) -> OutPoint:
        """OutPoint referencing output *index* of this transaction."""
        if not 0 <= index < len(self.outputs):
            msg = f"output index {index} out of range (have {len(self.outputs)})"
            raise TransactionError(msg, template="Transaction.outpoint", argument="index")
        return OutPoint(self.txid_bytes(), index)

    @property
    def size(self) -> int:
        """Serialized size in bytes, witness included."""
        return len(self.serialize())

    @property
    def weight(self) -> int:
        """BIP141 weight: base size × 3 + total size."""
        return len(self.serialize(include_witness=False)) * 3 + self.size

    @property
    def vsize(self) -> int:
        """Virtual size in vbytes (weight / 4, rounded up)."""
        return (self.weight + 3) // 4

    @property
    def total_output_value(self) -> int:
        return sum(out.value for out in self.outputs)

    # -- BIP143 signature hash ---------------------------------------------

    def segwit_sighash(
        self,
        input_index: int,
        script_code: bytes,
        amount: int,
        sighash_type: int = SigHash.ALL,
    ) -> bytes:
        """Compute the BIP143 signature hash for a segwit v0 input.

        Args:
            input_index: Index of the input being signed.
            script_code: The witness script (P2WSH) or the implied P2PKH
                script (P2WPKH), without a length prefix.
            amount: Value in satoshis of the output being spent.
            sighash_type: Sighash flags; the low five bits select ALL/NONE/SINGLE.

        Returns:
            32-byte digest to be signed.
        """
        if not 0 <= input_index < len(self.inputs):
            msg = f"input index {input_index} out of range (have {len(self.inputs)})"
            raise TransactionError(msg, template="segwit_sighash", argument="input_index")
        base_type = sighash_type & 0x1F
        anyone_can_pay = bool(sighash_type & SigHash.ANYONECANPAY)
        zero = b"\x00" * 32

        hash_prevouts = zero
        if not anyone_can_pay:
            hash_prevouts = sha256d(b"".join(i.outpoint.serialize() for i in self.inputs))

        hash_sequence = zero
        if not anyone_can_pay and base_type not in (SigHash.SINGLE, SigHash.NONE):
            hash_sequence = sha256d(b"".join(struct.pack("<I", i.sequence) for i in self.inputs))

        hash_outputs = zero
        if base_type not in (SigHash.SINGLE, SigHash.NONE):
            hash_outputs = sha256d(b"".join(o.serialize() for o in self.outputs))
        elif base_type == SigHash.SINGLE and input_index < len(self.outputs):
            hash_outputs = sha256d(self.outputs[input_index].serialize())

        inp = self.inputs[input_index]
        preimage = struct.pack("<i", self.version)
        preimage += hash_prevouts
        preimage += hash_sequence
        preimage += inp.outpoint.serialize()
        preimage += encode_bytes(script_code)
        preimage += struct.pack("<q", amount)
        preimage += struct.pack("<I", inp.sequence)
        preimage += hash_outputs
        preimage += struct.pack("<I", self.locktime)
        preimage += struct.pack("<I", sighash_type)
        return sha256d(preimage)


# ---------------------------------------------------------------------------
# Coin (spendable output)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Coin:
    """An unspent output offered as a candidate input.

    Attributes:
        outpoint: Where the output lives.
        amount: Its value in satoshis.
        script_pubkey: Its locking script.
    """

    outpoint: OutPoint
    amount: int
    script_pubkey: bytes = field(default=b"")

    def __post_init__(self) -> None:
        if not 0 <= self.amount <= MAX_MONEY:
            msg = f"coin amount {self.amount} outside 0..{MAX_MONEY} satoshis"
            raise AmountError(msg, template="Coin", argument="amount")
