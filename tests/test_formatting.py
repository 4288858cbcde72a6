"""
Tests for display helpers and the sweep summary.
"""

import pytest

from dust_sweeper.formatting import SweepSummary, format_amount, format_sol, shorten_address
from dust_sweeper.models import SwapResult


def test_shorten_address():
    assert shorten_address("So11111111111111111111111111111111111111112") == "So11...1112"
    assert shorten_address("abcdefghij", chars=2) == "ab...ij"


@pytest.mark.parametrize("amount,decimals,expected", [
    (0, 6, "0"),
    (0.0000001, 6, "<0.000001"),
    (1.5, 6, "1.5"),
    (1234567.891, 2, "1,234,567.89"),
    (0.005, 6, "0.005"),
    (2.0, 6, "2"),
])
def test_format_amount(amount, decimals, expected):
    assert format_amount(amount, decimals) == expected


def test_format_sol():
    assert format_sol(5_000_000) == "0.005"
    assert format_sol(1) == "<0.000001"
    assert format_sol(1_234_567_891) == "1.234567891"


class TestSweepSummary:

    def test_from_results(self):
        results = [
            SwapResult(mint="a", success=True, signature="s1", amount_out=0.005),
            SwapResult(mint="b", success=False, error="Failed to get quote"),
            SwapResult(mint="c", success=True, signature="s2", amount_out=0.01),
        ]

        summary = SweepSummary.from_results(results)

        assert summary.succeeded == 2
        assert summary.failed == 1
        assert summary.total_sol_received == pytest.approx(0.015)
        assert summary.progress_pct == 100.0

    def test_progress_against_selection(self):
        results = [SwapResult(mint="a", success=True, amount_out=1.0)]

        summary = SweepSummary.from_results(results, total=4)

        assert summary.progress_pct == 25.0
        assert "1 swapped, 0 failed" in str(summary)

    def test_empty(self):
        summary = SweepSummary.from_results([])

        assert summary.total_sol_received == 0
        assert summary.progress_pct == 100.0
