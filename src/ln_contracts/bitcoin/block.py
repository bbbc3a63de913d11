"""Block decoding: 80-byte headers, transaction lists and Merkle roots.

Blocks handed over by the chain-sync collaborator are decoded here so the
chain-event scanner can inspect their transactions:
- ``BlockHeader`` parse / serialize / hash
- ``Block`` parse / serialize with segwit-aware transaction decoding
- Merkle root computation and verification
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from io import BytesIO

from ln_contracts.bitcoin.transaction import Transaction, encode_varint, read_exact, read_varint
from ln_contracts.errors.construction_errors import TransactionError
from ln_contracts.utils.crypto import sha256d

BLOCK_HEADER_SIZE = 80


@dataclass(frozen=True)
class BlockHeader:
    """A Bitcoin block header.

    Attributes:
        version: Block version.
        prev_block: Hash of the previous block (internal byte order).
        merkle_root: Merkle root of the block's txids (internal byte order).
        timestamp: Block time, seconds since the epoch.
        bits: Compact difficulty target.
        nonce: Proof-of-work nonce.
    """

    version: int
    prev_block: bytes
    merkle_root: bytes
    timestamp: int
    bits: int
    nonce: int

    def serialize(self) -> bytes:
        return (
            struct.pack("<i", self.version)
            + self.prev_block
            + self.merkle_root
            + struct.pack("<III", self.timestamp, self.bits, self.nonce)
        )

    @classmethod
    def deserialize(cls, stream: BytesIO) -> BlockHeader:
        raw = read_exact(stream, BLOCK_HEADER_SIZE)
        version = struct.unpack("<i", raw[:4])[0]
        timestamp, bits, nonce = struct.unpack("<III", raw[68:80])
        return cls(version, raw[4:36], raw[36:68], timestamp, bits, nonce)

    def hash(self) -> str:
        """Block hash in display (reversed) hex."""
        return sha256d(self.serialize())[::-1].hex()


def compute_merkle_root(tx_hashes: list[bytes]) -> bytes:
    """Compute the Merkle root from a list of transaction hashes.

    Args:
        tx_hashes: List of 32-byte transaction hashes (internal byte order).

    Returns:
        The 32-byte Merkle root (internal byte order).

    Raises:
        ValueError: If the input list is empty.
    """
    if not tx_hashes:
        msg = "Cannot compute Merkle root from empty list"
        raise ValueError(msg)

    hashes = list(tx_hashes)
    while len(hashes) > 1:
        if len(hashes) % 2 != 0:
            hashes.append(hashes[-1])
        hashes = [sha256d(hashes[i] + hashes[i + 1]) for i in range(0, len(hashes), 2)]
    return hashes[0]


@dataclass(frozen=True)
class Block:
    """A decoded block: header plus its ordered transactions."""

    header: BlockHeader
    transactions: tuple[Transaction, ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "transactions", tuple(self.transactions))

    @property
    def hash(self) -> str:
        return self.header.hash()

    def serialize(self) -> bytes:
        result = self.header.serialize() + encode_varint(len(self.transactions))
        for tx in self.transactions:
            result += tx.serialize()
        return result

    @classmethod
    def from_bytes(cls, data: bytes) -> Block:
        """Decode a serialized block, rejecting trailing data."""
        stream = BytesIO(data)
        header = BlockHeader.deserialize(stream)
        count = read_varint(stream)
        transactions = tuple(Transaction.deserialize(stream) for _ in range(count))
        if stream.read(1):
            msg = "trailing bytes after block"
            raise TransactionError(msg, template="Block.from_bytes")
        return cls(header, transactions)

    @classmethod
    def from_hex(cls, hex_str: str) -> Block:
        return cls.from_bytes(bytes.fromhex(hex_str))

    def computed_merkle_root(self) -> bytes:
        return compute_merkle_root([tx.txid_bytes() for tx in self.transactions])

    def check_merkle_root(self) -> bool:
        """True if the header commits to exactly these transactions."""
        if not self.transactions:
            return False
        return self.computed_merkle_root() == self.header.merkle_root
