"""
burnpayout/fees.py

Fee model for the delayed payout transaction (DPT).

Both traders need the same fee rate without syncing it. The rate is derived
from the trade tx fee, which both know, divided by the largest expected
deposit tx size. A very large taker fee tx gives a too high rate, but the DPT
is published long after the trade and a stuck DPT is worse than overpaying,
so a floor rate applies as well.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from .config import PayoutParams, DEFAULT_PARAMS
from .rounding import round_half_up

logger = logging.getLogger("burnpayout.fees")


@dataclass(frozen=True)
class FeeModel:
    """Fee rate and size model for one DPT computation."""
    fee_rate_per_vbyte: int
    params: PayoutParams = DEFAULT_PARAMS

    def __post_init__(self):
        if self.fee_rate_per_vbyte < 0:
            raise ValueError(f"fee rate must not be negative, got {self.fee_rate_per_vbyte}")

    @classmethod
    def from_reference_fee(
        cls,
        reference_fee: int,
        params: Optional[PayoutParams] = None,
    ) -> "FeeModel":
        """
        Derive the fee model from the trade tx fee.

        Args:
            reference_fee: Fee of the originating trade tx in satoshis
            params: Protocol parameters (defaults to mainnet values)

        Returns:
            FeeModel
        """
        params = params or DEFAULT_PARAMS
        if reference_fee < 0:
            raise ValueError(f"reference fee must not be negative, got {reference_fee}")

        rate = max(
            params.min_tx_fee_rate,
            round_half_up(reference_fee / params.reference_tx_size),
        )
        return cls(fee_rate_per_vbyte=rate, params=params)

    @property
    def min_output_amount(self) -> int:
        """Smallest output worth keeping: at least twice its own fee cost."""
        return max(
            self.params.min_output_amount,
            self.fee_rate_per_vbyte * self.params.output_size * 2,
        )

    def tx_size(self, num_outputs: int) -> int:
        if num_outputs < 0:
            raise ValueError(f"num_outputs must not be negative, got {num_outputs}")
        return self.params.base_tx_size + num_outputs * self.params.output_size

    def miner_fee(self, num_outputs: int) -> int:
        return self.fee_rate_per_vbyte * self.tx_size(num_outputs)

    def spendable_amount(self, num_outputs: int, input_amount: int) -> int:
        """
        Amount left for receivers after reserving the miner fee.

        Args:
            num_outputs: Expected number of DPT outputs
            input_amount: DPT input amount in satoshis

        Returns:
            input_amount minus the miner fee

        Raises:
            ValueError: If input_amount is negative or cannot cover the fee
        """
        if input_amount < 0:
            raise ValueError(f"input amount must not be negative, got {input_amount}")

        fee = self.miner_fee(num_outputs)
        spendable = input_amount - fee
        if spendable < 0:
            raise ValueError(
                f"input amount {input_amount} does not cover miner fee {fee} "
                f"for {num_outputs} outputs"
            )

        logger.debug(
            f"DPT fee: {self.fee_rate_per_vbyte} sat/vbyte x {self.tx_size(num_outputs)} vbytes "
            f"= {fee} sat, spendable {spendable} sat"
        )
        return spendable
