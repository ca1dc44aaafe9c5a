"""
burnpayout/allocation.py

Receiver allocation for the delayed payout transaction.

Turns burning man candidates and their burn output shares into concrete
outputs. Maker and taker run this independently and must produce identical
lists, so every step is deterministic:

1. Candidates without an address are skipped
2. amount = round_half_up(share * spendable_amount)
3. Outputs below min_output_amount are dropped (left for the miner)
4. Sort by (amount, address)
5. If rounding pushed the total above spendable_amount, the largest
   output gives up the excess, or is dropped as dust if that would take
   it below min_output_amount
6. A remainder above the fallback threshold goes to the legacy burning
   man, appended at the end; a smaller remainder becomes miner fee

Without candidates the whole amount goes to the legacy burning man.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Tuple
import logging
import math

from .config import MIN_REMAINDER_TO_FALLBACK
from .providers import BurningManCandidate
from .rounding import round_half_up

logger = logging.getLogger("burnpayout.allocation")


@dataclass(frozen=True)
class Receiver:
    """One DPT output."""
    amount: int  # Satoshis
    address: str

    def to_tuple(self) -> Tuple[int, str]:
        return (self.amount, self.address)

    def to_dict(self) -> dict:
        return {"amount": self.amount, "address": self.address}


@dataclass
class AllocationResult:
    """Receivers plus what happened to the amounts that did not make it."""
    receivers: List[Receiver] = field(default_factory=list)
    spendable_amount: int = 0
    skipped_without_address: int = 0
    dropped_as_dust: int = 0
    remainder: int = 0
    remainder_to_fallback: bool = False
    used_fallback_only: bool = False
    rounding_excess: int = 0

    @property
    def total_output_amount(self) -> int:
        return sum(r.amount for r in self.receivers)

    @property
    def burned_as_fee(self) -> int:
        """Part of the spendable amount left to the miner."""
        return self.spendable_amount - self.total_output_amount

    def to_dict(self) -> dict:
        return {
            "receivers": [r.to_dict() for r in self.receivers],
            "spendable_amount": self.spendable_amount,
            "skipped_without_address": self.skipped_without_address,
            "dropped_as_dust": self.dropped_as_dust,
            "remainder": self.remainder,
            "remainder_to_fallback": self.remainder_to_fallback,
            "used_fallback_only": self.used_fallback_only,
            "rounding_excess": self.rounding_excess,
            "burned_as_fee": self.burned_as_fee,
        }


def _require_fallback_address(resolver: Callable[[], str]) -> str:
    address = resolver()
    if not address:
        raise ValueError("fallback address resolver returned no address")
    return address


def _validate_share(candidate: BurningManCandidate) -> float:
    share = candidate.effective_burn_output_share
    if isinstance(share, bool) or not isinstance(share, (int, float)):
        raise ValueError(f"burn output share must be a number, got {share!r}")
    if math.isnan(share) or share < 0 or share > 1:
        raise ValueError(f"burn output share must be within [0, 1], got {share}")
    return float(share)


def allocate_receivers_detailed(
    candidates: Iterable[BurningManCandidate],
    spendable_amount: int,
    min_output_amount: int,
    fallback_address_resolver: Callable[[], str],
    min_remainder_to_fallback: int = MIN_REMAINDER_TO_FALLBACK,
) -> AllocationResult:
    """
    Compute the DPT receivers and the allocation bookkeeping.

    Args:
        candidates: Burning man candidates at the selection height
        spendable_amount: Amount available after the miner fee reservation
        min_output_amount: Outputs below this are dropped
        fallback_address_resolver: Returns the legacy burning man address;
            only called if that address is needed
        min_remainder_to_fallback: Remainders above this go to the fallback address

    Returns:
        AllocationResult with the ordered receivers
    """
    if spendable_amount < 0:
        raise ValueError(f"spendable amount must not be negative, got {spendable_amount}")
    if min_output_amount < 0:
        raise ValueError(f"min output amount must not be negative, got {min_output_amount}")

    candidates = list(candidates)
    result = AllocationResult(spendable_amount=spendable_amount)

    if not candidates:
        # No contributors yet (e.g. dev testing), all goes to the legacy burning man
        address = _require_fallback_address(fallback_address_resolver)
        result.receivers = [Receiver(spendable_amount, address)]
        result.used_fallback_only = True
        return result

    receivers: List[Receiver] = []
    for candidate in candidates:
        share = _validate_share(candidate)
        address = candidate.most_recent_address
        if not address:
            result.skipped_without_address += 1
            continue
        amount = round_half_up(share * spendable_amount)
        if amount < min_output_amount:
            result.dropped_as_dust += 1
            continue
        receivers.append(Receiver(amount, address))

    receivers.sort(key=lambda r: (r.amount, r.address))

    total = sum(r.amount for r in receivers)
    if total > spendable_amount:
        # Shares summing to 1 can still round up past the spendable amount.
        # The largest output absorbs the excess.
        # If that would take it below the min amount it is dropped as dust
        # and the next largest one is tried.
        excess = total - spendable_amount
        # Each output rounds up by at most half a satoshi
        if excess > len(receivers):
            raise ValueError(
                f"receivers exceed spendable amount by {excess} sat; "
                f"burn output shares must not sum to more than 1"
            )
        result.rounding_excess = excess

        while receivers and total > spendable_amount:
            largest = receivers.pop()
            over = total - spendable_amount
            if largest.amount - over >= min_output_amount:
                receivers.append(Receiver(largest.amount - over, largest.address))
                receivers.sort(key=lambda r: (r.amount, r.address))
                total = spendable_amount
                logger.debug(f"Trimmed rounding excess of {over} sat from {largest.address}")
            else:
                total -= largest.amount
                result.dropped_as_dust += 1
                logger.debug(
                    f"Dropped {largest.address} as dust while trimming rounding excess of {over} sat"
                )

    if total < spendable_amount:
        remainder = spendable_amount - total
        result.remainder = remainder
        if remainder > min_remainder_to_fallback:
            receivers.append(Receiver(remainder, _require_fallback_address(fallback_address_resolver)))
            result.remainder_to_fallback = True

    result.receivers = receivers

    logger.debug(
        f"Allocated {len(receivers)} receivers from {len(candidates)} candidates "
        f"(no address: {result.skipped_without_address}, dust: {result.dropped_as_dust}, "
        f"remainder: {result.remainder} sat)"
    )
    return result


def allocate_receivers(
    candidates: Iterable[BurningManCandidate],
    spendable_amount: int,
    min_output_amount: int,
    fallback_address_resolver: Callable[[], str],
    min_remainder_to_fallback: int = MIN_REMAINDER_TO_FALLBACK,
) -> List[Receiver]:
    """Compute the ordered DPT receivers. See allocate_receivers_detailed."""
    return allocate_receivers_detailed(
        candidates,
        spendable_amount,
        min_output_amount,
        fallback_address_resolver,
        min_remainder_to_fallback,
    ).receivers
