"""
burnpayout - Delayed payout transaction receivers for burning man payouts

Computes how the funds of a delayed payout transaction are split among
burning man candidates. Both trade parties compute the same ordered outputs
from the same ledger view:

- Snapshot height resolution, so parties with slightly different chain tips
  select candidates at the same height
- Deterministic fee model (floor fee rate, fixed tx size model)
- Receiver allocation with dust filtering, (amount, address) ordering and
  remainder handling via the legacy burning man

Usage:
    from burnpayout import DelayedPayoutTxReceiverService

    service = DelayedPayoutTxReceiverService(ledger, candidate_provider)
    service.on_height_advanced(block_height)

    selection_height = service.get_burning_man_selection_height()
    receivers = service.get_delayed_payout_tx_receivers(
        selection_height, input_amount, trade_tx_fee,
    )
    outputs = [r.to_tuple() for r in receivers]
"""

from .allocation import (
    Receiver,
    AllocationResult,
    allocate_receivers,
    allocate_receivers_detailed,
)
from .config import (
    PayoutParams,
    DEFAULT_PARAMS,
    SNAPSHOT_GRID,
    MIN_OUTPUT_AMOUNT,
    MIN_REMAINDER_TO_FALLBACK,
    MIN_TX_FEE_RATE,
)
from .exceptions import (
    PayoutError,
    ReceiverMismatchError,
    SelectionHeightMismatchError,
)
from .fees import FeeModel
from .metrics import PayoutMetrics
from .providers import (
    BurningManCandidate,
    Candidate,
    LedgerStateProvider,
    CandidateProvider,
    StaticLedgerState,
    StaticCandidateProvider,
)
from .rounding import round_half_up
from .service import DelayedPayoutTxReceiverService
from .snapshot import ChainHeightTracker, resolve_snapshot_height

__version__ = "1.0.0"
__all__ = [
    # Service
    "DelayedPayoutTxReceiverService",
    # Snapshot
    "ChainHeightTracker",
    "resolve_snapshot_height",
    # Fees
    "FeeModel",
    # Allocation
    "Receiver",
    "AllocationResult",
    "allocate_receivers",
    "allocate_receivers_detailed",
    "round_half_up",
    # Collaborators
    "BurningManCandidate",
    "Candidate",
    "LedgerStateProvider",
    "CandidateProvider",
    "StaticLedgerState",
    "StaticCandidateProvider",
    # Config
    "PayoutParams",
    "DEFAULT_PARAMS",
    "SNAPSHOT_GRID",
    "MIN_OUTPUT_AMOUNT",
    "MIN_REMAINDER_TO_FALLBACK",
    "MIN_TX_FEE_RATE",
    # Errors
    "PayoutError",
    "ReceiverMismatchError",
    "SelectionHeightMismatchError",
    # Metrics
    "PayoutMetrics",
]
