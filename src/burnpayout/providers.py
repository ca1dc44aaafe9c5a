"""
burnpayout/providers.py

Interfaces to the collaborators that own ledger state and candidate data.

The receiver computation never reads the ledger itself. It asks a
LedgerStateProvider for the genesis height and the legacy burning man
address, and a CandidateProvider for the burning man candidates at a
snapshot height. The static implementations back tests and dev setups
that have no real ledger.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Mapping, Optional
import logging

logger = logging.getLogger("burnpayout.providers")


# ============================================================================
# CANDIDATES
# ============================================================================

class BurningManCandidate(ABC):
    """A contributor entitled to a share of the DPT outputs."""

    @property
    @abstractmethod
    def most_recent_address(self) -> Optional[str]:
        """Latest payout address, or None if the contributor never registered one."""
        pass

    @property
    @abstractmethod
    def effective_burn_output_share(self) -> float:
        """Fraction of the distributable amount in [0, 1], already capped."""
        pass


@dataclass(frozen=True)
class Candidate(BurningManCandidate):
    """Plain candidate value."""
    name: str
    effective_burn_output_share: float = 0.0
    most_recent_address: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "effective_burn_output_share": self.effective_burn_output_share,
            "most_recent_address": self.most_recent_address,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Candidate":
        return cls(
            name=data["name"],
            effective_burn_output_share=float(data.get("effective_burn_output_share", 0.0)),
            most_recent_address=data.get("most_recent_address"),
        )


# ============================================================================
# PROVIDER INTERFACES
# ============================================================================

class LedgerStateProvider(ABC):
    """Read access to the ledger state the receivers are computed from."""

    @abstractmethod
    def genesis_height(self) -> int:
        pass

    @abstractmethod
    def latest_fallback_address(self, snapshot_height: int) -> str:
        """Legacy burning man address valid at snapshot_height."""
        pass


class CandidateProvider(ABC):
    """Source of burning man candidates per snapshot height."""

    @abstractmethod
    def candidates_at(self, snapshot_height: int) -> Mapping[str, BurningManCandidate]:
        """Candidates by name. The result for a height never changes."""
        pass


# ============================================================================
# IN-MEMORY IMPLEMENTATIONS
# ============================================================================

class StaticLedgerState(LedgerStateProvider):
    """
    Ledger state with a fixed genesis and a history of legacy addresses.

    Example:
        ledger = StaticLedgerState(genesis=100, fallback_addresses={100: "addr1", 500: "addr2"})
        ledger.latest_fallback_address(499)  # "addr1"
    """

    def __init__(self, genesis: int, fallback_addresses: Mapping[int, str]):
        if genesis < 0:
            raise ValueError(f"genesis must not be negative, got {genesis}")
        if not fallback_addresses:
            raise ValueError("at least one fallback address is required")
        self._genesis = genesis
        self._fallback_addresses = dict(sorted(fallback_addresses.items()))

    def genesis_height(self) -> int:
        return self._genesis

    def latest_fallback_address(self, snapshot_height: int) -> str:
        address = None
        for height, candidate_address in self._fallback_addresses.items():
            if height > snapshot_height:
                break
            address = candidate_address
        if address is None:
            # Before the first change, the first known address applies
            address = next(iter(self._fallback_addresses.values()))
        return address


class StaticCandidateProvider(CandidateProvider):
    """
    Candidates keyed by the height from which they apply.

    candidates_at(h) returns the set registered at the highest height <= h.
    """

    def __init__(self, candidates_by_height: Optional[Mapping[int, Mapping[str, BurningManCandidate]]] = None):
        self._by_height: Dict[int, Dict[str, BurningManCandidate]] = {}
        for height, candidates in (candidates_by_height or {}).items():
            self.set_candidates(height, candidates)

    def set_candidates(self, from_height: int, candidates: Mapping[str, BurningManCandidate]):
        """Register the candidate set valid from from_height on."""
        if from_height in self._by_height:
            raise ValueError(f"candidates for height {from_height} already set")
        self._by_height[from_height] = dict(candidates)
        logger.debug(f"Registered {len(candidates)} candidates from height {from_height}")

    def candidates_at(self, snapshot_height: int) -> Mapping[str, BurningManCandidate]:
        best = None
        for height in sorted(self._by_height):
            if height > snapshot_height:
                break
            best = height
        if best is None:
            return {}
        return dict(self._by_height[best])
