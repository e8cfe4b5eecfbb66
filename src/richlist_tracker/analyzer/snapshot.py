"""Cross-snapshot analysis of a freshly fetched ranked list.

``analyze`` is a pure function: the caller reads the previous snapshot and
per-address history from the store and hands them over as plain values.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from richlist_tracker.analytics.behavior import (
    compute_balance_trend,
    compute_rank_volatility,
    next_streak,
)
from richlist_tracker.analytics.models import BalanceMove
from richlist_tracker.analyzer.models import (
    AnalysisResult,
    AnalyzedEntry,
    AnalyzerConfig,
    HistoryPoint,
    PriorEntry,
)
from richlist_tracker.ingestor.models import RankedHolder


def analyze(
    holders: Sequence[RankedHolder],
    previous_entries: Sequence[PriorEntry],
    address_history: Mapping[str, Sequence[HistoryPoint]] | None = None,
    config: AnalyzerConfig | None = None,
) -> AnalysisResult:
    """Compute per-address deltas, streaks and snapshot-level aggregates.

    Args:
        holders: Current ranked list; rank is the 1-based position.
        previous_entries: Entries of the preceding snapshot of the same chain.
        address_history: Optional chronological window per address, used to
            seed rank volatility and balance trend.
        config: Window sizes and trend thresholds.

    Returns:
        AnalysisResult with enriched entries in rank order.
    """
    cfg = config or AnalyzerConfig()
    previous = {e.address: e for e in previous_entries}
    has_previous = bool(previous)

    entries: list[AnalyzedEntry] = []
    new_entries: list[str] = []
    gainer: BalanceMove | None = None
    loser: BalanceMove | None = None

    for rank, holder in enumerate(holders, start=1):
        prior = previous.get(holder.address)
        if prior is None:
            if has_previous:
                new_entries.append(holder.address)
            prev_rank = None
            rank_change = None
            balance_change = None
            rank_streak = 0
            balance_streak = 0
        else:
            prev_rank = prior.rank
            rank_change = prior.rank - rank
            balance_change = holder.balance - prior.balance
            rank_streak = next_streak(rank_change, prior.rank_streak)
            balance_streak = next_streak(balance_change, prior.balance_streak)

            if balance_change > 0 and (gainer is None or balance_change > gainer.change):
                gainer = BalanceMove(address=holder.address, change=balance_change)
            if balance_change < 0 and (loser is None or balance_change < loser.change):
                loser = BalanceMove(address=holder.address, change=balance_change)

        rank_volatility = None
        balance_trend = None
        history = address_history.get(holder.address) if address_history else None
        if history:
            ranks = [p.rank for p in history] + [rank]
            balances = [p.balance for p in history] + [holder.balance]
            rank_volatility = compute_rank_volatility(ranks[-cfg.volatility_window :])
            balance_trend = compute_balance_trend(balances[-cfg.trend_window :], cfg.trend)

        entries.append(
            AnalyzedEntry(
                rank=rank,
                address=holder.address,
                balance=holder.balance,
                percentage=holder.percentage,
                prev_rank=prev_rank,
                rank_change=rank_change,
                balance_change=balance_change,
                rank_streak=rank_streak,
                balance_streak=balance_streak,
                rank_volatility=rank_volatility,
                balance_trend=balance_trend,
            )
        )

    current = {h.address for h in holders}
    dropouts = [e.address for e in previous_entries if e.address not in current]

    return AnalysisResult(
        entries=entries,
        new_entries=new_entries,
        dropouts=dropouts,
        biggest_gainer=gainer,
        biggest_loser=loser,
        total_balance=sum(h.balance for h in holders),
    )
