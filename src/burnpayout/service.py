"""
burnpayout/service.py

Delayed payout transaction receivers for the trade protocol.

Composes snapshot height resolution, the DPT fee model and receiver
allocation. Maker and taker call get_delayed_payout_tx_receivers with the
same selection height, input amount and trade tx fee and get the same
ordered outputs.

Usage:
    from burnpayout import DelayedPayoutTxReceiverService

    service = DelayedPayoutTxReceiverService(ledger, candidate_provider)

    # Wired to the ledger's "block parsed" notification
    service.on_height_advanced(block_height)

    selection_height = service.get_burning_man_selection_height()
    receivers = service.get_delayed_payout_tx_receivers(
        selection_height, input_amount=1_200_000, trade_tx_fee=5_000,
    )
"""

from typing import Iterable, List, Optional, Sequence, Tuple, Union
import logging

from .allocation import AllocationResult, Receiver, allocate_receivers_detailed
from .config import PayoutParams, DEFAULT_PARAMS
from .exceptions import ReceiverMismatchError, SelectionHeightMismatchError
from .fees import FeeModel
from .metrics import PayoutMetrics
from .providers import CandidateProvider, LedgerStateProvider
from .snapshot import ChainHeightTracker, resolve_snapshot_height

logger = logging.getLogger("burnpayout.service")

ReceiverLike = Union[Receiver, Tuple[int, str]]


class DelayedPayoutTxReceiverService:
    """
    Computes the outputs of the delayed payout transaction.

    The only mutable state is the chain height tracker, updated by
    on_height_advanced. Everything else is derived from the arguments and
    the (append-only) ledger view at the selection height.
    """

    def __init__(
        self,
        ledger: LedgerStateProvider,
        candidate_provider: CandidateProvider,
        params: Optional[PayoutParams] = None,
        height_tracker: Optional[ChainHeightTracker] = None,
        metrics: Optional[PayoutMetrics] = None,
    ):
        """
        Args:
            ledger: Genesis height and legacy burning man address source
            candidate_provider: Burning man candidates per height
            params: Protocol parameters (defaults to mainnet values)
            height_tracker: Shared chain height cell (a new one if omitted)
            metrics: Metrics collector (a new one if omitted)
        """
        self.ledger = ledger
        self.candidate_provider = candidate_provider
        self.params = params or DEFAULT_PARAMS
        self.height_tracker = height_tracker or ChainHeightTracker()
        self.metrics = metrics or PayoutMetrics()

    # ------------------------------------------------------------------
    # Ledger notifications
    # ------------------------------------------------------------------

    def on_height_advanced(self, new_height: int) -> None:
        """Called by the ledger once a block is fully parsed."""
        self.height_tracker.on_height_advanced(new_height)
        self.metrics.record_chain_height(new_height)

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------

    def get_burning_man_selection_height(self) -> int:
        """
        Snapshot height for burning man selection.

        We do not use the latest ledger state, but maker and taker end up on
        the same height even if their chain tips differ by a few blocks.
        """
        return resolve_snapshot_height(
            self.ledger.genesis_height(),
            self.height_tracker.current_height,
            self.params.snapshot_grid,
        )

    def compute_allocation(
        self,
        selection_height: int,
        input_amount: int,
        trade_tx_fee: int,
    ) -> AllocationResult:
        """
        Compute the DPT receivers with allocation details.

        Args:
            selection_height: Burning man selection height agreed for the trade
            input_amount: DPT input amount in satoshis
            trade_tx_fee: Trade tx fee in satoshis, used to derive the fee rate

        Returns:
            AllocationResult
        """
        if input_amount < 0:
            raise ValueError(f"input amount must not be negative, got {input_amount}")
        if trade_tx_fee < 0:
            raise ValueError(f"trade tx fee must not be negative, got {trade_tx_fee}")

        candidates = list(self.candidate_provider.candidates_at(selection_height).values())

        def fallback_address() -> str:
            return self.ledger.latest_fallback_address(selection_height)

        if not candidates:
            # No compensation requests yet (e.g. dev testing), the legacy
            # burning man receives the full input amount
            result = allocate_receivers_detailed(
                [], input_amount, 0, fallback_address, self.params.min_remainder_to_fallback,
            )
            logger.info(
                f"No burning man candidates at height {selection_height}, "
                f"paying {input_amount} sat to legacy burning man"
            )
            self.metrics.record_allocation(result)
            return result

        fee_model = FeeModel.from_reference_fee(trade_tx_fee, self.params)
        spendable = fee_model.spendable_amount(len(candidates), input_amount)

        result = allocate_receivers_detailed(
            candidates,
            spendable,
            fee_model.min_output_amount,
            fallback_address,
            self.params.min_remainder_to_fallback,
        )

        if result.remainder_to_fallback:
            logger.info(
                f"Sending remainder of {result.remainder} sat to legacy burning man "
                f"at height {selection_height}"
            )
        self.metrics.record_allocation(result)
        return result

    def get_delayed_payout_tx_receivers(
        self,
        selection_height: int,
        input_amount: int,
        trade_tx_fee: int,
    ) -> List[Receiver]:
        """
        Ordered DPT outputs for the given trade.

        Args:
            selection_height: Burning man selection height agreed for the trade
            input_amount: DPT input amount in satoshis
            trade_tx_fee: Trade tx fee in satoshis

        Returns:
            Receivers sorted by (amount, address), with an optional legacy
            burning man remainder at the end
        """
        return self.compute_allocation(selection_height, input_amount, trade_tx_fee).receivers

    # ------------------------------------------------------------------
    # Peer verification
    # ------------------------------------------------------------------

    def is_selection_height_acceptable(self, peer_selection_height: int) -> bool:
        """
        Check a peer's selection height against ours.

        Chain tips on either side of a grid boundary produce heights one
        grid apart, which is accepted.
        """
        ours = self.get_burning_man_selection_height()
        tolerance = self.params.selection_height_tolerance_grids * self.params.snapshot_grid
        return abs(ours - peer_selection_height) <= tolerance

    def require_valid_selection_height(self, peer_selection_height: int) -> None:
        if not self.is_selection_height_acceptable(peer_selection_height):
            ours = self.get_burning_man_selection_height()
            logger.warning(
                f"Peer selection height {peer_selection_height} not accepted, ours is {ours}"
            )
            self.metrics.record_verification_failure()
            raise SelectionHeightMismatchError(ours, peer_selection_height)

    def verify_delayed_payout_tx_receivers(
        self,
        selection_height: int,
        input_amount: int,
        trade_tx_fee: int,
        outputs: Sequence[ReceiverLike],
    ) -> List[Receiver]:
        """
        Recompute the receivers and compare them with a peer's DPT outputs.

        Amounts, addresses and order must all match.

        Returns:
            Our receivers

        Raises:
            ReceiverMismatchError: If the outputs differ
        """
        expected = self.get_delayed_payout_tx_receivers(selection_height, input_amount, trade_tx_fee)
        actual = _as_receivers(outputs)
        if expected != actual:
            logger.warning(
                f"DPT receivers mismatch at height {selection_height}: "
                f"expected {[r.to_tuple() for r in expected]}, got {[r.to_tuple() for r in actual]}"
            )
            self.metrics.record_verification_failure()
            raise ReceiverMismatchError(expected, actual)
        return expected


def _as_receivers(outputs: Iterable[ReceiverLike]) -> List[Receiver]:
    receivers = []
    for output in outputs:
        if isinstance(output, Receiver):
            receivers.append(output)
        else:
            amount, address = output
            receivers.append(Receiver(amount, address))
    return receivers
