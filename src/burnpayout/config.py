"""
burnpayout/config.py

Protocol constants and parameter set for delayed payout receiver computation.

Both trade parties must use identical values, otherwise their delayed payout
transactions differ and the cooperative signature fails. Mainnet nodes use the
defaults; the BURNPAYOUT_* environment variables exist for test networks.
"""

from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, Optional, Mapping
import os
import logging

logger = logging.getLogger("burnpayout.config")


# ============================================================================
# CONSTANTS
# ============================================================================

# Width of the block window used to quantize the selection height
SNAPSHOT_GRID = 10

# Outputs below this are dropped (1000 sat is about 2 USD @ 20k price).
# The other factor is 2x the fee cost of the output itself; the higher one wins.
MIN_OUTPUT_AMOUNT = 1000

# Leftover above this goes to the legacy burning man, otherwise it is miner fee.
# Kept high so the legacy burning man rarely receives payouts.
MIN_REMAINDER_TO_FALLBACK = 50_000

# Floor for the DPT fee rate (sat/vbyte). The DPT is published long after the
# take offer, so we prefer a high rate over a stuck transaction.
MIN_TX_FEE_RATE = 10

# Largest expected deposit tx size (246 bytes + 32 for an optional change output)
REFERENCE_TX_SIZE = 278

# DPT size model: tx without outputs, plus a fixed cost per output
BASE_TX_SIZE = 51
OUTPUT_SIZE = 32

# Peer selection heights may be this many grid steps away from ours
SELECTION_HEIGHT_TOLERANCE_GRIDS = 1

ENV_PREFIX = "BURNPAYOUT_"


@dataclass(frozen=True)
class PayoutParams:
    """Parameter set used by the fee model, allocation engine and service."""
    snapshot_grid: int = SNAPSHOT_GRID
    min_output_amount: int = MIN_OUTPUT_AMOUNT
    min_remainder_to_fallback: int = MIN_REMAINDER_TO_FALLBACK
    min_tx_fee_rate: int = MIN_TX_FEE_RATE
    reference_tx_size: int = REFERENCE_TX_SIZE
    base_tx_size: int = BASE_TX_SIZE
    output_size: int = OUTPUT_SIZE
    selection_height_tolerance_grids: int = SELECTION_HEIGHT_TOLERANCE_GRIDS

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{f.name} must be an int, got {value!r}")
            if value < 0:
                raise ValueError(f"{f.name} must not be negative, got {value}")
        if self.snapshot_grid == 0:
            raise ValueError("snapshot_grid must be positive")
        if self.reference_tx_size == 0:
            raise ValueError("reference_tx_size must be positive")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PayoutParams":
        """
        Build parameters from BURNPAYOUT_* environment variables.

        Unset variables keep their defaults, e.g. BURNPAYOUT_SNAPSHOT_GRID=5.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            PayoutParams

        Raises:
            ValueError: If a variable is set but not an integer
        """
        if environ is None:
            environ = os.environ

        overrides: Dict[str, int] = {}
        for f in fields(cls):
            key = ENV_PREFIX + f.name.upper()
            raw = environ.get(key)
            if raw is None or raw.strip() == "":
                continue
            try:
                overrides[f.name] = int(raw.strip())
            except ValueError:
                raise ValueError(f"Invalid {key}: {raw!r} is not an integer") from None
            logger.info(f"Payout parameter from env: {f.name}={overrides[f.name]}")

        return cls(**overrides)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_PARAMS = PayoutParams()
