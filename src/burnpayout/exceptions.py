"""
burnpayout/exceptions.py

Errors raised when a peer's view of the delayed payout disagrees with ours.

Bad arguments (negative amounts, shares outside [0, 1], non-positive grid)
raise ValueError directly and are not part of this hierarchy.
"""

from typing import Any, List


class PayoutError(Exception):
    """Base class for delayed payout receiver errors."""
    pass


class ReceiverMismatchError(PayoutError):
    """Peer's delayed payout outputs differ from the ones we computed."""

    def __init__(self, expected: List[Any], actual: List[Any]):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Delayed payout receivers do not match: expected {len(expected)} outputs, "
            f"got {len(actual)}"
        )


class SelectionHeightMismatchError(PayoutError):
    """Peer's burning man selection height is too far from ours."""

    def __init__(self, ours: int, theirs: int):
        self.ours = ours
        self.theirs = theirs
        super().__init__(
            f"Burning man selection height {theirs} not accepted (ours: {ours})"
        )
