"""Tests for loop detection and chain budgets."""

import pytest

from crewdispatch.config import ChainConfig
from crewdispatch.services.chain_tracker import ChainTracker, detect_cycle


class TestDetectCycle:
    @pytest.mark.parametrize(
        "trail, expected",
        [
            ("ABABAB", True),
            ("ABCABC", True),
            ("ABCAB", False),
            ("ABABA", False),
            ("ABCDEF", False),
            ("ABCDAB", False),
            ("XYZABAB", False),
            ("XABCABC", True),
        ],
    )
    def test_examples(self, trail, expected):
        assert detect_cycle(list(trail)) is expected

    def test_short_trail_never_loops(self):
        assert detect_cycle(list("ABAB")) is False

    def test_period_two_needs_three_repeats(self):
        assert detect_cycle(list("CDABAB")) is False
        assert detect_cycle(list("ABABAB")) is True

    def test_custom_thresholds(self):
        assert detect_cycle(list("ABAB"), min_trail=4, period_two_repeats=2) is True


class TestChainTracker:
    def test_new_chain_uses_config(self):
        tracker = ChainTracker(ChainConfig(max_budget=5, path_window=4))
        chain = tracker.new_chain("lead")
        assert chain.max_budget == 5
        assert chain.window == 4
        assert list(chain.recent_path) == ["lead"]

    def test_detect_loop(self):
        tracker = ChainTracker()
        chain = tracker.new_chain("A")
        for wid in "BABA":
            chain = chain.advance(wid)
        # Path A B A B A, next B
        assert tracker.detect_loop(chain, "B") is True
        assert tracker.detect_loop(chain, "C") is False

    def test_budget_exhausted(self):
        tracker = ChainTracker(ChainConfig(max_budget=1))
        chain = tracker.new_chain("A")
        assert not tracker.budget_exhausted(chain)
        assert tracker.budget_exhausted(chain.advance("B"))

    def test_budget_notice_claimed_once(self):
        tracker = ChainTracker()
        assert tracker.claim_budget_notice("c1") is True
        assert tracker.claim_budget_notice("c1") is False
        assert tracker.claim_budget_notice("c2") is True
