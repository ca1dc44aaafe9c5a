"""
Tests for burnpayout/service.py

Tests DelayedPayoutTxReceiverService end to end with in-memory and mock
collaborators, including peer verification.
"""

from unittest.mock import Mock

import pytest

from burnpayout import (
    Candidate,
    ChainHeightTracker,
    DelayedPayoutTxReceiverService,
    PayoutMetrics,
    PayoutParams,
    Receiver,
    ReceiverMismatchError,
    SelectionHeightMismatchError,
    StaticCandidateProvider,
    StaticLedgerState,
)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def ledger():
    """Ledger with genesis 0 and a legacy address change at height 200."""
    return StaticLedgerState(genesis=0, fallback_addresses={0: "legacy1", 200: "legacy2"})


@pytest.fixture
def two_candidates():
    return {
        "alice": Candidate("alice", 0.6, "addrA"),
        "bob": Candidate("bob", 0.4, "addrB"),
    }


@pytest.fixture
def service(ledger, two_candidates):
    provider = StaticCandidateProvider({0: two_candidates})
    return DelayedPayoutTxReceiverService(ledger, provider)


@pytest.fixture
def empty_service(ledger):
    return DelayedPayoutTxReceiverService(ledger, StaticCandidateProvider())


# ============================================================================
# SELECTION HEIGHT TESTS
# ============================================================================

class TestSelectionHeight:
    """Tests for get_burning_man_selection_height."""

    def test_before_any_block(self, service):
        """Test a fresh node uses the genesis lower bound."""
        assert service.get_burning_man_selection_height() == 20

    @pytest.mark.parametrize("height,expected", [(139, 120), (140, 130), (141, 130)])
    def test_follows_chain_height(self, service, height, expected):
        """Test selection height follows height notifications."""
        service.on_height_advanced(height)
        assert service.get_burning_man_selection_height() == expected

    def test_uses_ledger_genesis(self, two_candidates):
        """Test the genesis height comes from the ledger."""
        ledger = StaticLedgerState(genesis=1000, fallback_addresses={1000: "legacy"})
        service = DelayedPayoutTxReceiverService(ledger, StaticCandidateProvider())
        service.on_height_advanced(1005)
        assert service.get_burning_man_selection_height() == 1020

    def test_shared_tracker(self, ledger):
        """Test services sharing a tracker see the same height."""
        tracker = ChainHeightTracker()
        first = DelayedPayoutTxReceiverService(ledger, StaticCandidateProvider(), height_tracker=tracker)
        second = DelayedPayoutTxReceiverService(ledger, StaticCandidateProvider(), height_tracker=tracker)
        first.on_height_advanced(555)
        assert second.get_burning_man_selection_height() == 540

    def test_custom_grid(self, ledger):
        """Test the grid comes from the parameters."""
        service = DelayedPayoutTxReceiverService(
            ledger, StaticCandidateProvider(), params=PayoutParams(snapshot_grid=5),
        )
        service.on_height_advanced(143)
        assert service.get_burning_man_selection_height() == 135


# ============================================================================
# RECEIVER TESTS
# ============================================================================

class TestDelayedPayoutTxReceivers:
    """Tests for get_delayed_payout_tx_receivers."""

    def test_no_candidates_pays_legacy(self, empty_service):
        """Test the full input amount goes to the legacy burning man."""
        receivers = empty_service.get_delayed_payout_tx_receivers(130, 500000, 5000)
        assert receivers == [Receiver(500000, "legacy1")]

    def test_two_candidates(self, service):
        """Test shares are applied to the spendable amount."""
        # 2 outputs at 10 sat/vbyte: 10 * (51 + 64) = 1150 sat fee
        receivers = service.get_delayed_payout_tx_receivers(130, 101150, 0)
        assert [r.to_tuple() for r in receivers] == [(40000, "addrB"), (60000, "addrA")]

    def test_deterministic(self, service):
        """Test identical calls return identical lists."""
        first = service.get_delayed_payout_tx_receivers(130, 1_234_567, 7_000)
        second = service.get_delayed_payout_tx_receivers(130, 1_234_567, 7_000)
        assert first == second

    def test_maker_and_taker_agree(self, ledger, two_candidates):
        """Test two independent services produce the same outputs."""
        maker = DelayedPayoutTxReceiverService(ledger, StaticCandidateProvider({0: two_candidates}))
        reversed_candidates = dict(reversed(list(two_candidates.items())))
        taker = DelayedPayoutTxReceiverService(ledger, StaticCandidateProvider({0: reversed_candidates}))
        maker.on_height_advanced(143)
        taker.on_height_advanced(147)

        height = maker.get_burning_man_selection_height()
        assert height == taker.get_burning_man_selection_height()
        assert (maker.get_delayed_payout_tx_receivers(height, 2_000_000, 10_000)
                == taker.get_delayed_payout_tx_receivers(height, 2_000_000, 10_000))

    def test_remainder_to_legacy_at_height(self, ledger):
        """Test the remainder uses the legacy address valid at the selection height."""
        provider = StaticCandidateProvider({0: {
            "alice": Candidate("alice", 0.5, "addrA"),
            "bob": Candidate("bob", 0.2, "addrB"),
            "carol": Candidate("carol", 0.3, None),
        }})
        service = DelayedPayoutTxReceiverService(ledger, provider)

        # 3 outputs at 10 sat/vbyte: 10 * (51 + 96) = 1470 sat fee
        early = service.get_delayed_payout_tx_receivers(130, 1_001_470, 0)
        assert [r.to_tuple() for r in early] == [
            (200000, "addrB"),
            (500000, "addrA"),
            (300000, "legacy1"),
        ]
        late = service.get_delayed_payout_tx_receivers(250, 1_001_470, 0)
        assert late[-1] == Receiver(300000, "legacy2")

    def test_even_split_near_min_output(self, ledger):
        """Test outputs rounded up past the spendable amount do not fail."""
        provider = StaticCandidateProvider({0: {
            "alice": Candidate("alice", 0.5, "addrA"),
            "bob": Candidate("bob", 0.5, "addrB"),
        }})
        service = DelayedPayoutTxReceiverService(ledger, provider)
        # 3149 - 1150 fee = 1999 spendable, both shares round up to 1000
        receivers = service.get_delayed_payout_tx_receivers(130, 3149, 0)
        assert receivers == [Receiver(1000, "addrA")]

    def test_fee_rate_from_trade_fee(self, ledger, two_candidates):
        """Test the trade tx fee drives the miner fee reservation."""
        service = DelayedPayoutTxReceiverService(ledger, StaticCandidateProvider({0: two_candidates}))
        # 5560 / 278 = 20 sat/vbyte, fee 20 * 115 = 2300
        result = service.compute_allocation(130, 102300, 5560)
        assert result.spendable_amount == 100000
        assert [r.amount for r in result.receivers] == [40000, 60000]

    def test_mock_collaborators(self):
        """Test collaborators are queried with the selection height."""
        ledger = Mock()
        ledger.genesis_height.return_value = 0
        ledger.latest_fallback_address.return_value = "legacyX"
        provider = Mock()
        provider.candidates_at.return_value = {}

        service = DelayedPayoutTxReceiverService(ledger, provider)
        receivers = service.get_delayed_payout_tx_receivers(420, 300000, 0)

        provider.candidates_at.assert_called_once_with(420)
        ledger.latest_fallback_address.assert_called_once_with(420)
        assert receivers == [Receiver(300000, "legacyX")]

    def test_legacy_not_queried_without_remainder(self, two_candidates):
        """Test the legacy address is only looked up when needed."""
        ledger = Mock()
        provider = Mock()
        provider.candidates_at.return_value = two_candidates
        service = DelayedPayoutTxReceiverService(ledger, provider)
        service.get_delayed_payout_tx_receivers(130, 101150, 0)
        ledger.latest_fallback_address.assert_not_called()

    def test_negative_input_rejected(self, service):
        """Test negative input amount fails fast."""
        with pytest.raises(ValueError):
            service.get_delayed_payout_tx_receivers(130, -1, 0)

    def test_negative_trade_fee_rejected(self, service):
        """Test negative trade fee fails fast."""
        with pytest.raises(ValueError):
            service.get_delayed_payout_tx_receivers(130, 100000, -1)


# ============================================================================
# VERIFICATION TESTS
# ============================================================================

class TestPeerVerification:
    """Tests for peer selection height and DPT output verification."""

    def test_matching_outputs_accepted(self, service):
        """Test identical outputs pass verification."""
        receivers = service.verify_delayed_payout_tx_receivers(
            130, 101150, 0, [(40000, "addrB"), (60000, "addrA")],
        )
        assert len(receivers) == 2

    def test_receiver_objects_accepted(self, service):
        """Test Receiver instances can be passed as outputs."""
        outputs = service.get_delayed_payout_tx_receivers(130, 101150, 0)
        assert service.verify_delayed_payout_tx_receivers(130, 101150, 0, outputs) == outputs

    def test_reordered_outputs_rejected(self, service):
        """Test a different order fails verification."""
        with pytest.raises(ReceiverMismatchError) as exc_info:
            service.verify_delayed_payout_tx_receivers(
                130, 101150, 0, [(60000, "addrA"), (40000, "addrB")],
            )
        assert exc_info.value.expected == [Receiver(40000, "addrB"), Receiver(60000, "addrA")]
        assert service.metrics.get_stats()["verification_failures"] == 1

    def test_changed_amount_rejected(self, service):
        """Test a different amount fails verification."""
        with pytest.raises(ReceiverMismatchError):
            service.verify_delayed_payout_tx_receivers(
                130, 101150, 0, [(40001, "addrB"), (60000, "addrA")],
            )

    @pytest.mark.parametrize("peer_height,accepted", [
        (130, True),
        (120, True),
        (140, True),
        (110, False),
        (150, False),
    ])
    def test_selection_height_tolerance(self, service, peer_height, accepted):
        """Test peer heights one grid away are accepted."""
        service.on_height_advanced(141)
        assert service.is_selection_height_acceptable(peer_height) is accepted

    def test_require_valid_selection_height(self, service):
        """Test out of tolerance heights raise."""
        service.on_height_advanced(141)
        service.require_valid_selection_height(120)
        with pytest.raises(SelectionHeightMismatchError) as exc_info:
            service.require_valid_selection_height(100)
        assert exc_info.value.ours == 130
        assert exc_info.value.theirs == 100


# ============================================================================
# METRICS INTEGRATION TESTS
# ============================================================================

class TestServiceMetrics:
    """Tests that the service records metrics."""

    def test_records_computations(self, ledger):
        """Test fallback and remainder counters."""
        metrics = PayoutMetrics()
        provider = StaticCandidateProvider({100: {"alice": Candidate("alice", 0.5, "addrA")}})
        service = DelayedPayoutTxReceiverService(ledger, provider, metrics=metrics)

        service.get_delayed_payout_tx_receivers(50, 500000, 0)
        service.get_delayed_payout_tx_receivers(130, 1_000_830, 0)
        service.on_height_advanced(141)

        stats = metrics.get_stats()
        assert stats["computations"] == 2
        assert stats["fallback_only"] == 1
        assert stats["remainder_to_fallback"] == 1
        assert stats["last_receiver_count"] == 2
        assert stats["chain_height"] == 141
