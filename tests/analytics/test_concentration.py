"""Tests for snapshot-level concentration and activity metrics."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

import pytest

from richlist_tracker.analytics.concentration import (
    StatisticsError,
    build_concentration_metrics,
    compute_gini_coefficient,
    compute_hhi,
    compute_net_flow,
    compute_whale_activity_index,
)


@dataclass(frozen=True)
class Entry:
    rank: int
    balance: float
    rank_change: int | None = None
    balance_change: float | None = None


class TestGiniCoefficient:
    def test_equal_balances_is_zero(self) -> None:
        assert compute_gini_coefficient([50.0, 50.0, 50.0, 50.0]) == pytest.approx(0.0)

    def test_single_holder_owns_everything(self) -> None:
        # (n - 1) / n
        assert compute_gini_coefficient([100.0, 0.0, 0.0, 0.0]) == pytest.approx(0.75)

    def test_empty_and_zero_mean(self) -> None:
        assert compute_gini_coefficient([]) == 0.0
        assert compute_gini_coefficient([0.0, 0.0]) == 0.0

    def test_stays_below_one(self) -> None:
        gini = compute_gini_coefficient([1_000_000.0, 5.0, 3.0, 1.0, 0.5])
        assert 0.0 <= gini < 1.0


class TestHHI:
    def test_equal_split(self) -> None:
        assert compute_hhi([25.0, 25.0, 25.0, 25.0]) == pytest.approx(2500.0)

    def test_single_holder(self) -> None:
        assert compute_hhi([42.0]) == pytest.approx(10000.0)

    def test_uneven_split_is_above_equal_bound(self) -> None:
        hhi = compute_hhi([70.0, 20.0, 10.0])
        assert 10000.0 / 3 < hhi <= 10000.0
        assert hhi == pytest.approx(70.0**2 + 20.0**2 + 10.0**2)

    def test_empty(self) -> None:
        assert compute_hhi([]) == 0.0


class TestNetFlow:
    def test_splits_inflow_and_outflow(self) -> None:
        flow = compute_net_flow(
            [
                Entry(rank=1, balance=100.0, balance_change=30.0),
                Entry(rank=2, balance=90.0, balance_change=-10.0),
                Entry(rank=3, balance=80.0, balance_change=0.0),
                Entry(rank=4, balance=70.0, balance_change=None),
            ]
        )
        assert flow.total_inflow == pytest.approx(30.0)
        assert flow.total_outflow == pytest.approx(10.0)
        assert flow.net_flow == pytest.approx(20.0)
        assert flow.active_wallets == 2


class TestWhaleActivityIndex:
    def test_weighted_components(self) -> None:
        entries = [
            Entry(rank=1, balance=100.0, rank_change=1, balance_change=10.0),
            Entry(rank=2, balance=100.0, rank_change=-1, balance_change=-10.0),
        ]
        # movement 10% * 0.5 + shuffle 1 * 0.3 + churn 100% * 0.2
        assert compute_whale_activity_index(entries, 1, 1) == pytest.approx(25.3)

    def test_quiet_snapshot_is_zero(self) -> None:
        entries = [Entry(rank=1, balance=100.0), Entry(rank=2, balance=50.0)]
        assert compute_whale_activity_index(entries, 0, 0) == 0.0

    def test_empty(self) -> None:
        assert compute_whale_activity_index([], 3, 3) == 0.0


class TestBuildConcentrationMetrics:
    def test_builds_full_record(self) -> None:
        entries = [
            Entry(rank=2, balance=25.0, rank_change=0, balance_change=5.0),
            Entry(rank=1, balance=75.0, rank_change=0, balance_change=-5.0),
        ]
        metrics = build_concentration_metrics(
            entries,
            snapshot_id=7,
            chain="mainchain",
            snapshot_date=date(2026, 10, 18),
            time_slot="12:05",
            new_entry_count=0,
            dropout_count=0,
        )
        assert metrics.snapshot_id == 7
        assert metrics.total_balance == 100.0
        assert metrics.top10_pct == 100.0
        assert metrics.hhi == pytest.approx(75.0**2 + 25.0**2)
        assert metrics.net_flow == 0.0
        assert metrics.active_wallets == 2
        # +5 on 20 is +25%, -5 on 80 is -6.25%
        assert metrics.avg_balance_change_pct == pytest.approx(9.38)

    def test_empty_snapshot_raises(self) -> None:
        with pytest.raises(StatisticsError):
            build_concentration_metrics(
                [],
                snapshot_id=1,
                chain="mainchain",
                snapshot_date=date(2026, 10, 18),
                time_slot="12:05",
                new_entry_count=0,
                dropout_count=0,
            )
