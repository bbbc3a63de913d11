"""PaymentChannel: one two-party channel's keys, policy and transactions.

Binds the pure templates to a pair of :class:`ChannelPublicKeys`, the
channel capacity and an explicit :class:`AppConfig`, so callers build
funding, commitment and closing transactions without restating keys and
policy at every call.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ln_contracts.bitcoin.address import script_to_address
from ln_contracts.bitcoin.script import Script
from ln_contracts.bitcoin.transaction import MAX_MONEY, Coin, OutPoint, Transaction
from ln_contracts.channel.finalize import sign_multisig_input
from ln_contracts.channel.parties import ChannelPublicKeys, CommitmentKeys, Htlc
from ln_contracts.channel.scanner import FundingWatch
from ln_contracts.channel.templates import funding_script, p2wsh_script
from ln_contracts.channel.transactions import (
    build_funding_transaction,
    build_htlc_commitment_transaction,
    build_refund_transaction,
    commitment_number_obscuring_factor,
    obscure_commitment_number,
)
from ln_contracts.config.settings import AppConfig
from ln_contracts.errors.construction_errors import AmountError, TransactionError

if TYPE_CHECKING:
    from ln_contracts.channel.interfaces import Signer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentChannel:
    """A funded (or about to be funded) channel, seen from the local party.

    Attributes:
        local: The local party's static public keys.
        remote: The remote party's static public keys.
        capacity: Channel value in satoshis, locked in the funding output.
        config: Network and channel policy.
        is_opener: Whether the local party opened (and funds) the channel.
        funding_outpoint: Set once the funding transaction exists.
    """

    local: ChannelPublicKeys
    remote: ChannelPublicKeys
    capacity: int
    config: AppConfig = field(default_factory=AppConfig)
    is_opener: bool = True
    funding_outpoint: OutPoint | None = None

    def __post_init__(self) -> None:
        if not 0 < self.capacity <= MAX_MONEY:
            msg = f"channel capacity {self.capacity} outside 1..{MAX_MONEY} satoshis"
            raise AmountError(msg, template="PaymentChannel", argument="capacity")

    # -- funding -----------------------------------------------------------

    @property
    def funding_script(self) -> Script:
        """The 2-of-2 witness script over both funding keys."""
        return funding_script(
            self.local.funding_key,
            self.remote.funding_key,
            sort_keys=self.config.channel.sort_funding_keys,
        )

    @property
    def funding_output_script(self) -> Script:
        return p2wsh_script(self.funding_script)

    @property
    def funding_address(self) -> str:
        return script_to_address(self.funding_output_script, network=self.config.network)

    def build_funding(
        self,
        coins: Sequence[Coin],
        *,
        change_script: bytes | None = None,
        fee: int = 0,
    ) -> Transaction:
        """Funding transaction locking the capacity; output 0 is the funding output."""
        return build_funding_transaction(
            coins,
            self.local.funding_key,
            self.remote.funding_key,
            self.capacity,
            change_script=change_script,
            fee=fee,
            sort_keys=self.config.channel.sort_funding_keys,
        )

    def with_funding(self, funding_tx: Transaction) -> PaymentChannel:
        """Copy of this channel bound to the funding output of *funding_tx*.

        Raises:
            TransactionError: If *funding_tx* has no matching funding output.
        """
        for index, output in enumerate(funding_tx.outputs):
            if output.script_pubkey == self.funding_output_script and output.value == self.capacity:
                outpoint = funding_tx.outpoint(index)
                logger.info("Channel funding output is %s", outpoint)
                return dataclasses.replace(self, funding_outpoint=outpoint)
        msg = f"transaction {funding_tx.txid()} has no {self.capacity} sat funding output"
        raise TransactionError(msg, template="PaymentChannel.with_funding", argument="funding_tx")

    def watch(self) -> FundingWatch:
        """Scanner watch for this channel's funding output."""
        return FundingWatch(self.funding_output_script, self.capacity, self.funding_outpoint)

    def _require_funding(self, template: str) -> OutPoint:
        if self.funding_outpoint is None:
            msg = "channel has no funding outpoint yet"
            raise TransactionError(msg, template=template, argument="funding_outpoint")
        return self.funding_outpoint

    # -- commitments -------------------------------------------------------

    @property
    def obscuring_factor(self) -> int:
        opener, accepter = (self.local, self.remote) if self.is_opener else (self.remote, self.local)
        return commitment_number_obscuring_factor(
            opener.payment_basepoint, accepter.payment_basepoint
        )

    def commitment_keys(self, per_commitment_point: bytes) -> CommitmentKeys:
        return CommitmentKeys.derive(per_commitment_point, self.local, self.remote)

    def build_commitment(
        self,
        commitment_number: int,
        per_commitment_point: bytes,
        local_amount: int,
        remote_amount: int,
        htlcs: Sequence[Htlc] = (),
    ) -> Transaction:
        """The local party's commitment transaction for one state.

        *local_amount* and *remote_amount* are balances before HTLCs are
        carved out of them; their sum may be below the capacity (the
        difference is the commitment fee).

        Raises:
            AmountError: If the balances exceed the channel capacity.
            TransactionError: If more HTLCs are pending than policy accepts.
        """
        template = "PaymentChannel.build_commitment"
        funding_outpoint = self._require_funding(template)
        if local_amount + remote_amount > self.capacity:
            msg = (
                f"balances {local_amount} + {remote_amount} sat exceed "
                f"capacity {self.capacity} sat"
            )
            raise AmountError(msg, template=template, argument="local_amount")
        if len(htlcs) > self.config.channel.max_accepted_htlcs:
            msg = f"{len(htlcs)} HTLCs exceed the limit of {self.config.channel.max_accepted_htlcs}"
            raise TransactionError(msg, template=template, argument="htlcs")
        keys = self.commitment_keys(per_commitment_point)
        return build_htlc_commitment_transaction(
            funding_outpoint,
            keys.revocation_pubkey,
            keys.remote_htlc_pubkey,
            keys.local_htlc_pubkey,
            keys.local_delayed_pubkey,
            keys.remote_payment_pubkey,
            self.config.channel.to_self_delay,
            htlcs,
            local_amount,
            remote_amount,
            obscured_commitment_number=obscure_commitment_number(
                commitment_number, self.obscuring_factor
            ),
        )

    def trimmed_outputs(self, transaction: Transaction) -> list[int]:
        """Indices of outputs below the configured dust limit."""
        limit = self.config.channel.dust_limit_satoshis
        return [i for i, output in enumerate(transaction.outputs) if output.value < limit]

    # -- closing -----------------------------------------------------------

    def build_close(self, local_balance: int, remote_balance: int) -> Transaction:
        """Cooperative close paying each party's payment basepoint."""
        template = "PaymentChannel.build_close"
        funding_outpoint = self._require_funding(template)
        if local_balance + remote_balance > self.capacity:
            msg = (
                f"balances {local_balance} + {remote_balance} sat exceed "
                f"capacity {self.capacity} sat"
            )
            raise AmountError(msg, template=template, argument="local_balance")
        return build_refund_transaction(
            funding_outpoint,
            self.local.payment_basepoint,
            self.remote.payment_basepoint,
            local_balance,
            remote_balance,
        )

    def sign_funding_spend(self, transaction: Transaction, signers: Sequence[Signer]) -> Transaction:
        """Attach the 2-of-2 witness to input 0, which spends the funding output."""
        return sign_multisig_input(transaction, 0, self.funding_script, self.capacity, signers)
