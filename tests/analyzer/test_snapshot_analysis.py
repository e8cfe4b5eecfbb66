"""Tests for cross-snapshot analysis."""

from __future__ import annotations

import pytest

from richlist_tracker.analytics.models import BalanceMove, BalanceTrend
from richlist_tracker.analyzer import AnalyzerConfig, HistoryPoint, PriorEntry, analyze
from richlist_tracker.ingestor.models import RankedHolder


def holders(*pairs: tuple[str, float]) -> list[RankedHolder]:
    return [RankedHolder(address=address, balance=balance) for address, balance in pairs]


class TestAnalyzeDeltas:
    def test_balance_increase_starts_positive_streak(self) -> None:
        result = analyze(
            holders(("addr1", 120.0)),
            [PriorEntry(address="addr1", rank=1, balance=100.0)],
        )

        entry = result.entries[0]
        assert entry.rank == 1
        assert entry.prev_rank == 1
        assert entry.rank_change == 0
        assert entry.balance_change == pytest.approx(20.0)
        assert entry.balance_streak == 1
        assert entry.rank_streak == 0
        assert result.new_entries == []
        assert result.dropouts == []

    def test_unchanged_entry_resets_streaks(self) -> None:
        result = analyze(
            holders(("addr1", 100.0)),
            [PriorEntry(address="addr1", rank=1, balance=100.0, rank_streak=4, balance_streak=-2)],
        )

        entry = result.entries[0]
        assert entry.rank_change == 0
        assert entry.balance_change == 0.0
        assert entry.rank_streak == 0
        assert entry.balance_streak == 0

    def test_rank_improvement_is_positive(self) -> None:
        result = analyze(
            holders(("b", 300.0), ("a", 200.0)),
            [
                PriorEntry(address="a", rank=1, balance=250.0, balance_streak=-1),
                PriorEntry(address="b", rank=2, balance=150.0, rank_streak=2, balance_streak=3),
            ],
        )

        b, a = result.entries
        assert b.rank_change == 1
        assert b.rank_streak == 3
        assert b.balance_streak == 4
        assert a.rank_change == -1
        assert a.rank_streak == -1
        assert a.balance_streak == -2

    def test_ranks_follow_list_order(self) -> None:
        result = analyze(holders(("x", 3.0), ("y", 2.0), ("z", 1.0)), [])
        assert [e.rank for e in result.entries] == [1, 2, 3]
        assert result.total_balance == 6.0


class TestAnalyzeChurn:
    def test_new_entries_and_dropouts(self) -> None:
        result = analyze(
            holders(("a", 10.0), ("c", 8.0), ("d", 5.0)),
            [
                PriorEntry(address="a", rank=1, balance=10.0),
                PriorEntry(address="b", rank=2, balance=9.0),
                PriorEntry(address="e", rank=3, balance=7.0),
            ],
        )

        assert result.new_entries == ["c", "d"]
        assert result.dropouts == ["b", "e"]
        assert result.new_entry_count == 2
        assert result.dropout_count == 2
        new_entry = result.entries[1]
        assert new_entry.prev_rank is None
        assert new_entry.rank_change is None
        assert new_entry.balance_change is None
        assert new_entry.rank_streak == 0

    def test_first_snapshot_has_no_new_entries(self) -> None:
        result = analyze(holders(("a", 10.0), ("b", 5.0)), [])

        assert result.new_entries == []
        assert result.dropouts == []
        assert result.biggest_gainer is None
        assert result.biggest_loser is None


class TestAnalyzeMovers:
    def test_biggest_gainer_and_loser(self) -> None:
        result = analyze(
            holders(("a", 150.0), ("b", 120.0), ("c", 40.0)),
            [
                PriorEntry(address="a", rank=1, balance=100.0),
                PriorEntry(address="b", rank=2, balance=110.0),
                PriorEntry(address="c", rank=3, balance=90.0),
            ],
        )

        assert result.biggest_gainer == BalanceMove(address="a", change=50.0)
        assert result.biggest_loser == BalanceMove(address="c", change=-50.0)

    def test_no_positive_change_means_no_gainer(self) -> None:
        result = analyze(
            holders(("a", 90.0)),
            [PriorEntry(address="a", rank=1, balance=100.0)],
        )
        assert result.biggest_gainer is None
        assert result.biggest_loser == BalanceMove(address="a", change=-10.0)


class TestAnalyzeHistory:
    def test_without_history_volatility_and_trend_unset(self) -> None:
        result = analyze(holders(("a", 100.0)), [PriorEntry(address="a", rank=2, balance=90.0)])

        assert result.entries[0].rank_volatility is None
        assert result.entries[0].balance_trend is None

    def test_history_seeds_volatility_and_trend(self) -> None:
        history = {
            "a": [
                HistoryPoint(rank=3, balance=100.0),
                HistoryPoint(rank=2, balance=110.0),
                HistoryPoint(rank=1, balance=120.0),
            ]
        }
        result = analyze(
            holders(("z", 500.0), ("a", 130.0)),
            [PriorEntry(address="a", rank=1, balance=120.0)],
            history,
        )

        entry = result.entries[1]
        # ranks 3, 2, 1, 2
        assert entry.rank_volatility == 0.71
        assert entry.balance_trend == BalanceTrend.ACCUMULATING
        assert result.entries[0].rank_volatility is None

    def test_windows_are_bounded(self) -> None:
        history = {"a": [HistoryPoint(rank=50, balance=1.0)] + [HistoryPoint(rank=1, balance=100.0)] * 5}
        config = AnalyzerConfig(volatility_window=3, trend_window=3)
        result = analyze(holders(("a", 100.0)), [PriorEntry(address="a", rank=1, balance=100.0)], history, config)

        assert result.entries[0].rank_volatility == 0.0
        assert result.entries[0].balance_trend == BalanceTrend.HOLDING


class TestAnalyzeIsPure:
    def test_same_inputs_same_output(self) -> None:
        current = holders(("a", 10.0), ("b", 8.0))
        previous = [PriorEntry(address="b", rank=1, balance=9.0, rank_streak=1)]
        history = {"b": [HistoryPoint(rank=1, balance=9.0)]}

        assert analyze(current, previous, history) == analyze(current, previous, history)
        assert previous == [PriorEntry(address="b", rank=1, balance=9.0, rank_streak=1)]
