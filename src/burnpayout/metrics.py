"""
burnpayout/metrics.py

Prometheus metrics for delayed payout receiver computation.

Counts how often payouts fall back to the legacy burning man, how much is
left to the miner, and how often a peer's outputs fail verification.

Usage:
    from burnpayout.metrics import PayoutMetrics

    metrics = PayoutMetrics()
    service = DelayedPayoutTxReceiverService(ledger, candidates, metrics=metrics)

    prometheus_output = metrics.collect()
"""

from typing import Any, Dict, TYPE_CHECKING
from threading import Lock
import time
import logging

if TYPE_CHECKING:
    from .allocation import AllocationResult

logger = logging.getLogger("burnpayout.metrics")


class PayoutMetrics:
    """Thread-safe counters for payout computations."""

    # Metric definitions
    METRICS = {
        "burnpayout_computations_total": {
            "type": "counter",
            "help": "Total number of DPT receiver computations",
        },
        "burnpayout_fallback_only_total": {
            "type": "counter",
            "help": "Computations without candidates, paid fully to the legacy burning man",
        },
        "burnpayout_remainder_to_fallback_total": {
            "type": "counter",
            "help": "Computations that sent a remainder to the legacy burning man",
        },
        "burnpayout_remainder_burned_sats_total": {
            "type": "counter",
            "help": "Satoshis left to the miner on top of the reserved fee",
        },
        "burnpayout_skipped_without_address_total": {
            "type": "counter",
            "help": "Candidates skipped because they have no payout address",
        },
        "burnpayout_dropped_as_dust_total": {
            "type": "counter",
            "help": "Candidate outputs dropped below the min output amount",
        },
        "burnpayout_verification_failures_total": {
            "type": "counter",
            "help": "Peer DPT outputs or selection heights that failed verification",
        },
        "burnpayout_last_receiver_count": {
            "type": "gauge",
            "help": "Number of receivers in the last computation",
        },
        "burnpayout_chain_height": {
            "type": "gauge",
            "help": "Latest observed chain height",
        },
    }

    def __init__(self):
        self._lock = Lock()
        self._start_time = time.time()
        self.reset_counters()

    def record_allocation(self, result: "AllocationResult") -> None:
        """Record the outcome of one receiver computation."""
        with self._lock:
            self._computations += 1
            self._last_receiver_count = len(result.receivers)
            self._skipped_without_address += result.skipped_without_address
            self._dropped_as_dust += result.dropped_as_dust
            if result.used_fallback_only:
                self._fallback_only += 1
            if result.remainder_to_fallback:
                self._remainder_to_fallback += 1
            else:
                self._remainder_burned_sats += result.remainder

    def record_verification_failure(self) -> None:
        with self._lock:
            self._verification_failures += 1

    def record_chain_height(self, height: int) -> None:
        with self._lock:
            self._chain_height = height

    def collect(self) -> str:
        """
        Collect all metrics and return in Prometheus format.

        Returns:
            Prometheus-formatted metrics string
        """
        lines = []

        def add_metric(name: str, value: float):
            metric_def = self.METRICS.get(name, {})
            lines.append(f"# HELP {name} {metric_def.get('help', '')}")
            lines.append(f"# TYPE {name} {metric_def.get('type', 'gauge')}")
            lines.append(f"{name} {value}")

        stats = self.get_stats()
        add_metric("burnpayout_computations_total", stats["computations"])
        add_metric("burnpayout_fallback_only_total", stats["fallback_only"])
        add_metric("burnpayout_remainder_to_fallback_total", stats["remainder_to_fallback"])
        add_metric("burnpayout_remainder_burned_sats_total", stats["remainder_burned_sats"])
        add_metric("burnpayout_skipped_without_address_total", stats["skipped_without_address"])
        add_metric("burnpayout_dropped_as_dust_total", stats["dropped_as_dust"])
        add_metric("burnpayout_verification_failures_total", stats["verification_failures"])
        add_metric("burnpayout_last_receiver_count", stats["last_receiver_count"])
        add_metric("burnpayout_chain_height", stats["chain_height"])

        return "\n".join(lines) + "\n"

    def get_stats(self) -> Dict[str, Any]:
        """Metrics as a dictionary (for JSON APIs and tests)."""
        with self._lock:
            return {
                "computations": self._computations,
                "fallback_only": self._fallback_only,
                "remainder_to_fallback": self._remainder_to_fallback,
                "remainder_burned_sats": self._remainder_burned_sats,
                "skipped_without_address": self._skipped_without_address,
                "dropped_as_dust": self._dropped_as_dust,
                "verification_failures": self._verification_failures,
                "last_receiver_count": self._last_receiver_count,
                "chain_height": self._chain_height,
                "uptime_seconds": time.time() - self._start_time,
            }

    def reset_counters(self) -> None:
        """Reset all counters (useful for testing)."""
        with self._lock:
            self._computations = 0
            self._fallback_only = 0
            self._remainder_to_fallback = 0
            self._remainder_burned_sats = 0
            self._skipped_without_address = 0
            self._dropped_as_dust = 0
            self._verification_failures = 0
            self._last_receiver_count = 0
            self._chain_height = 0
