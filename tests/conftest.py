"""Shared test fixtures for the ln-contracts test suite."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import pytest

from ln_contracts.bitcoin.block import Block, BlockHeader, compute_merkle_root
from ln_contracts.bitcoin.keys import public_key_from_secret, sign_digest
from ln_contracts.bitcoin.transaction import (
    Coin,
    OutPoint,
    Transaction,
    TxInput,
    TxOutput,
)
from ln_contracts.channel.parties import ChannelPublicKeys


class FakeSigner:
    """In-memory signer holding one secret key."""

    def __init__(self, secret: bytes) -> None:
        self.secret = secret
        self.public_key = public_key_from_secret(secret)
        self.calls: list[tuple[int, int]] = []

    def sign(
        self,
        transaction: Transaction,
        input_index: int,
        witness_script: bytes,
        amount: int,
        sighash_type: int,
    ) -> bytes:
        self.calls.append((input_index, sighash_type))
        digest = transaction.segwit_sighash(input_index, witness_script, amount, sighash_type)
        return sign_digest(self.secret, digest)


class FakeBroadcaster:
    """Collects broadcast transactions instead of relaying them."""

    def __init__(self) -> None:
        self.sent: list[bytes] = []

    def broadcast(self, raw_transaction: bytes) -> None:
        self.sent.append(raw_transaction)


class FakeBlockSource:
    """Serves blocks from a height-indexed dict."""

    def __init__(self, blocks: dict[int, Block]) -> None:
        self.blocks = blocks

    def get_block(self, height: int) -> Block:
        return self.blocks[height]

    def get_best_height(self) -> int:
        return max(self.blocks)


def _secret(n: int) -> bytes:
    return bytes([n]) * 32


@pytest.fixture
def alice_secret() -> bytes:
    return _secret(0x11)


@pytest.fixture
def bob_secret() -> bytes:
    return _secret(0x22)


@pytest.fixture
def alice_pubkey(alice_secret: bytes) -> bytes:
    return public_key_from_secret(alice_secret)


@pytest.fixture
def bob_pubkey(bob_secret: bytes) -> bytes:
    return public_key_from_secret(bob_secret)


@pytest.fixture
def alice_signer(alice_secret: bytes) -> FakeSigner:
    return FakeSigner(alice_secret)


@pytest.fixture
def bob_signer(bob_secret: bytes) -> FakeSigner:
    return FakeSigner(bob_secret)


@pytest.fixture
def broadcaster() -> FakeBroadcaster:
    return FakeBroadcaster()


@pytest.fixture
def funding_coin() -> Coin:
    """A 200,000 sat coin to fund channels from."""
    return Coin(OutPoint(b"\xaa" * 32, 0), 200_000)


@pytest.fixture
def funding_outpoint() -> OutPoint:
    return OutPoint(b"\xbb" * 32, 0)


def _party_keys(base: int) -> ChannelPublicKeys:
    return ChannelPublicKeys(
        identity_key=public_key_from_secret(_secret(base)),
        funding_key=public_key_from_secret(_secret(base + 1)),
        revocation_basepoint=public_key_from_secret(_secret(base + 2)),
        payment_basepoint=public_key_from_secret(_secret(base + 3)),
        delayed_payment_basepoint=public_key_from_secret(_secret(base + 4)),
        htlc_basepoint=public_key_from_secret(_secret(base + 5)),
    )


@pytest.fixture
def local_keys() -> ChannelPublicKeys:
    return _party_keys(0x30)


@pytest.fixture
def remote_keys() -> ChannelPublicKeys:
    return _party_keys(0x40)


@pytest.fixture
def make_block() -> Callable[[Sequence[Transaction]], Block]:
    """Build a block whose header commits to the given transactions."""

    def _make(transactions: Sequence[Transaction], nonce: int = 0) -> Block:
        merkle_root = compute_merkle_root([tx.txid_bytes() for tx in transactions])
        header = BlockHeader(
            version=0x20000000,
            prev_block=b"\x00" * 32,
            merkle_root=merkle_root,
            timestamp=1_700_000_000,
            bits=0x207FFFFF,
            nonce=nonce,
        )
        return Block(header, tuple(transactions))

    return _make


@pytest.fixture
def coinbase_like() -> Callable[[int], Transaction]:
    """An unrelated transaction paying *value* to a throwaway script."""

    def _make(value: int) -> Transaction:
        return Transaction(
            version=1,
            inputs=[TxInput(OutPoint(b"\x00" * 32, 0xFFFFFFFF), script_sig=b"\x01\x01")],
            outputs=[TxOutput(value, b"\x51")],
        )

    return _make


@pytest.fixture
def block_source() -> Callable[[dict[int, Block]], FakeBlockSource]:
    return FakeBlockSource


@pytest.fixture
def signer_for() -> Callable[[bytes], FakeSigner]:
    return FakeSigner
