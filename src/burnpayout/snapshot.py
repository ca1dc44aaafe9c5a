"""
burnpayout/snapshot.py

Snapshot height resolution for burning man selection.

Maker and taker may see slightly different chain tips. Both quantize their
height onto a grid and step one grid back, so they land on the same snapshot
height as long as they are in the same window:

    139 -> 120, 140 -> 130, 141 -> 130   (genesis 0, grid 10)

The snapshot is never earlier than genesis + 2 * grid, to avoid selecting from
a nearly empty ledger state.

Usage:
    from burnpayout.snapshot import ChainHeightTracker, resolve_snapshot_height

    tracker = ChainHeightTracker()
    tracker.on_height_advanced(141)
    height = resolve_snapshot_height(genesis_height, tracker.current_height)
"""

from typing import Optional
import logging
import threading

from .config import SNAPSHOT_GRID

logger = logging.getLogger("burnpayout.snapshot")


def resolve_snapshot_height(
    genesis_height: int,
    current_height: int,
    grid: int = SNAPSHOT_GRID,
) -> int:
    """
    Map a chain height to the agreed snapshot height.

    Args:
        genesis_height: Height of the ledger genesis block
        current_height: Latest observed chain height
        grid: Window size in blocks

    Returns:
        Snapshot height, always a grid multiple minus one grid

    Raises:
        ValueError: If grid is not positive or a height is negative
    """
    if grid <= 0:
        raise ValueError(f"grid must be positive, got {grid}")
    if genesis_height < 0 or current_height < 0:
        raise ValueError(
            f"heights must not be negative (genesis={genesis_height}, current={current_height})"
        )

    base = max(genesis_height + 3 * grid, current_height)
    return (base // grid) * grid - grid


class ChainHeightTracker:
    """
    Latest observed chain height.

    Written only by the ledger progress notification (on_height_advanced),
    read by anyone resolving a snapshot height. Last writer wins; a lower
    height than before (reorg) is accepted as well.
    """

    def __init__(self, initial_height: int = 0):
        if initial_height < 0:
            raise ValueError(f"initial_height must not be negative, got {initial_height}")
        self._height = initial_height
        self._updates = 0
        self._lock = threading.Lock()

    @property
    def current_height(self) -> int:
        with self._lock:
            return self._height

    @property
    def update_count(self) -> int:
        """Number of height notifications received."""
        with self._lock:
            return self._updates

    def on_height_advanced(self, new_height: int) -> Optional[int]:
        """
        Record a new chain height.

        Args:
            new_height: Height of the block that finished parsing

        Returns:
            The previous height
        """
        if new_height < 0:
            raise ValueError(f"chain height must not be negative, got {new_height}")

        with self._lock:
            previous = self._height
            self._height = new_height
            self._updates += 1

        if new_height < previous:
            logger.debug(f"Chain height went back from {previous} to {new_height}")
        else:
            logger.debug(f"Chain height now {new_height}")
        return previous
