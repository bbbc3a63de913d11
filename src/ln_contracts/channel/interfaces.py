"""Capabilities the channel core needs from the outside world.

Key custody, the full node and header sync live outside this package; they
are reached only through these protocols.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ln_contracts.bitcoin.block import Block
    from ln_contracts.bitcoin.transaction import Transaction


@runtime_checkable
class Signer(Protocol):
    """Signs one input of a transaction with a key it holds.

    ``sign`` returns a DER-encoded ECDSA signature *without* the trailing
    sighash byte; the caller appends it.  ``public_key`` is the 33-byte
    compressed key the signature verifies against.
    """

    public_key: bytes

    def sign(
        self,
        transaction: Transaction,
        input_index: int,
        witness_script: bytes,
        amount: int,
        sighash_type: int,
    ) -> bytes: ...


@runtime_checkable
class Broadcaster(Protocol):
    """Protocol for relaying raw transactions to the network."""

    def broadcast(self, raw_transaction: bytes) -> None: ...


@runtime_checkable
class BlockSource(Protocol):
    """Protocol for the chain-sync collaborator that supplies blocks."""

    def get_block(self, height: int) -> Block: ...
    def get_best_height(self) -> int: ...
