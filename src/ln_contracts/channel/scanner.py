"""Chain-event scanner: funding confirmation and channel close detection.

Pure predicates over decoded blocks.  Confirmation depth, polling and
reorg handling belong to the chain-sync collaborator that supplies blocks.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ln_contracts.bitcoin.block import Block
from ln_contracts.bitcoin.transaction import OutPoint

if TYPE_CHECKING:
    from ln_contracts.channel.interfaces import BlockSource

logger = logging.getLogger(__name__)


def funding_seen(block: Block, funding_script: bytes, amount: int) -> bool:
    """True iff some output in *block* pays exactly *amount* to *funding_script*."""
    return _find_funding_output(block, funding_script, amount) is not None


def channel_closed(block: Block, funding_outpoint: OutPoint) -> bool:
    """True iff some input in *block* spends *funding_outpoint*."""
    return _find_spend(block, funding_outpoint) is not None


def _find_funding_output(block: Block, funding_script: bytes, amount: int) -> OutPoint | None:
    for tx in block.transactions:
        for index, output in enumerate(tx.outputs):
            if output.script_pubkey == funding_script and output.value == amount:
                return tx.outpoint(index)
    return None


def _find_spend(block: Block, funding_outpoint: OutPoint) -> str | None:
    for tx in block.transactions:
        for tx_input in tx.inputs:
            if tx_input.outpoint == funding_outpoint:
                return tx.txid()
    return None


# ---------------------------------------------------------------------------
# Watch / event API
# ---------------------------------------------------------------------------


class ChainEventKind(enum.StrEnum):
    FUNDING_CONFIRMED = "funding_confirmed"
    FUNDING_SPENT = "funding_spent"


@dataclass(frozen=True)
class FundingWatch:
    """What to look for: the funding output, and once known, its outpoint."""

    funding_script: bytes
    amount: int
    funding_outpoint: OutPoint | None = None


@dataclass(frozen=True)
class ChainEvent:
    """A channel-relevant occurrence in one block.

    Attributes:
        kind: Whether the funding output appeared or was spent.
        block_hash: Display-hex hash of the block it occurred in.
        outpoint: The funding outpoint.
        spending_txid: For ``FUNDING_SPENT``, the txid of the spending transaction.
    """

    kind: ChainEventKind
    block_hash: str
    outpoint: OutPoint
    spending_txid: str | None = None


def scan_block(block: Block, watch: FundingWatch) -> list[ChainEvent]:
    """Report funding confirmation and funding spend events for *watch*.

    A funding output found in *block* is also checked for a spend in the
    same block.
    """
    events: list[ChainEvent] = []
    outpoint = watch.funding_outpoint
    found = _find_funding_output(block, watch.funding_script, watch.amount)
    if found is not None and (outpoint is None or found == outpoint):
        outpoint = found
        logger.info("Funding output %s confirmed in block %s", found, block.hash)
        events.append(ChainEvent(ChainEventKind.FUNDING_CONFIRMED, block.hash, found))
    if outpoint is not None:
        spending_txid = _find_spend(block, outpoint)
        if spending_txid is not None:
            logger.info("Funding output %s spent by %s in block %s", outpoint, spending_txid, block.hash)
            events.append(
                ChainEvent(ChainEventKind.FUNDING_SPENT, block.hash, outpoint, spending_txid)
            )
    return events


def scan_heights(
    source: BlockSource,
    watch: FundingWatch,
    start_height: int,
    stop_height: int | None = None,
) -> list[tuple[int, ChainEvent]]:
    """Scan blocks ``start_height..stop_height`` (inclusive) from *source*.

    *stop_height* defaults to the source's best height.  The watch learns
    the funding outpoint from a confirmation event so later blocks are
    checked for its spend.
    """
    if stop_height is None:
        stop_height = source.get_best_height()
    results: list[tuple[int, ChainEvent]] = []
    for height in range(start_height, stop_height + 1):
        for event in scan_block(source.get_block(height), watch):
            if event.kind == ChainEventKind.FUNDING_CONFIRMED:
                watch = FundingWatch(watch.funding_script, watch.amount, event.outpoint)
            results.append((height, event))
    return results
