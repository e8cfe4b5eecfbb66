"""Data models for the snapshot analyzer."""

from __future__ import annotations

from dataclasses import dataclass, field

from richlist_tracker.analytics.behavior import TrendConfig
from richlist_tracker.analytics.models import BalanceMove, BalanceTrend


@dataclass(frozen=True)
class PriorEntry:
    """An entry of the immediately preceding snapshot."""

    address: str
    rank: int
    balance: float
    rank_streak: int | None = None
    balance_streak: int | None = None


@dataclass(frozen=True)
class HistoryPoint:
    """One past observation of an address, oldest first in a window."""

    rank: int
    balance: float
    rank_streak: int | None = None
    balance_streak: int | None = None


@dataclass(frozen=True)
class AnalyzerConfig:
    """Window sizes for the per-address statistics.

    Attributes:
        volatility_window: Ranks (current included) used for rank volatility.
        trend_window: Balances (current included) used for the balance trend.
        trend: Slope thresholds for the trend classifier.
    """

    volatility_window: int = 30
    trend_window: int = 15
    trend: TrendConfig = field(default_factory=TrendConfig)


@dataclass(frozen=True)
class AnalyzedEntry:
    """A ranked entry enriched with deltas against the previous snapshot.

    ``prev_rank``, ``rank_change`` and ``balance_change`` are None for
    addresses absent from the previous snapshot. ``rank_volatility`` and
    ``balance_trend`` are None when no history was supplied for the address.
    """

    rank: int
    address: str
    balance: float
    percentage: float
    prev_rank: int | None = None
    rank_change: int | None = None
    balance_change: float | None = None
    rank_streak: int = 0
    balance_streak: int = 0
    rank_volatility: float | None = None
    balance_trend: BalanceTrend | None = None


@dataclass(frozen=True)
class AnalysisResult:
    """Output of one analyzer run."""

    entries: list[AnalyzedEntry]
    new_entries: list[str]
    dropouts: list[str]
    biggest_gainer: BalanceMove | None
    biggest_loser: BalanceMove | None
    total_balance: float

    @property
    def new_entry_count(self) -> int:
        return len(self.new_entries)

    @property
    def dropout_count(self) -> int:
        return len(self.dropouts)
