"""Week-level roll-up of concentration metrics and top movers."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timedelta
from typing import Protocol

from richlist_tracker.analytics.models import BalanceMove, WeeklySummary


class MetricsPoint(Protocol):
    @property
    def gini_coefficient(self) -> float | None: ...

    @property
    def total_balance(self) -> float | None: ...

    @property
    def net_flow(self) -> float | None: ...

    @property
    def whale_activity_index(self) -> float | None: ...

    @property
    def new_entry_count(self) -> int | None: ...

    @property
    def dropout_count(self) -> int | None: ...

    @property
    def avg_rank_change(self) -> float | None: ...


class AddressBalance(Protocol):
    @property
    def address(self) -> str: ...

    @property
    def balance(self) -> float: ...


def previous_week_bounds(now: datetime | date) -> tuple[date, date]:
    """Monday and Sunday of the week ending on the most recent Sunday (today if Sunday)."""
    today = now.date() if isinstance(now, datetime) else now
    days_since_sunday = (today.weekday() + 1) % 7
    week_end = today - timedelta(days=days_since_sunday)
    return week_end - timedelta(days=6), week_end


def compute_movers(
    start_entries: Sequence[AddressBalance],
    end_entries: Sequence[AddressBalance],
) -> tuple[list[BalanceMove], list[BalanceMove]]:
    """Gainers and losers among addresses present at both ends of a range.

    Returns:
        ``(gainers, losers)``; gainers by descending change, losers by
        ascending change. Zero changes are in neither list.
    """
    start = {e.address: e.balance for e in start_entries}
    moves = [
        BalanceMove(address=e.address, change=e.balance - start[e.address])
        for e in end_entries
        if e.address in start
    ]
    gainers = sorted((m for m in moves if m.change > 0), key=lambda m: (-m.change, m.address))
    losers = sorted((m for m in moves if m.change < 0), key=lambda m: (m.change, m.address))
    return gainers, losers


def summarize_week(
    chain: str,
    week_start: date,
    week_end: date,
    metrics: Sequence[MetricsPoint],
    *,
    gainers: Sequence[BalanceMove] = (),
    losers: Sequence[BalanceMove] = (),
) -> WeeklySummary | None:
    """Roll a week's chronologically ordered metrics into one record.

    Returns None when the week has no metrics.
    """
    if not metrics:
        return None
    first, last = metrics[0], metrics[-1]
    count = len(metrics)

    gini_start = first.gini_coefficient or 0.0
    gini_end = last.gini_coefficient or 0.0
    return WeeklySummary(
        chain=chain,
        week_start=week_start,
        week_end=week_end,
        gini_start=gini_start,
        gini_end=gini_end,
        gini_change=gini_end - gini_start,
        total_balance_start=first.total_balance or 0.0,
        total_balance_end=last.total_balance or 0.0,
        net_flow_total=round(sum(m.net_flow or 0.0 for m in metrics), 2),
        avg_whale_activity_index=round(sum(m.whale_activity_index or 0.0 for m in metrics) / count, 2),
        total_new_entries=sum(m.new_entry_count or 0 for m in metrics),
        total_dropouts=sum(m.dropout_count or 0 for m in metrics),
        avg_rank_volatility=round(sum(m.avg_rank_change or 0.0 for m in metrics) / count, 2),
        snapshot_count=count,
        top_accumulator=gainers[0] if gainers else None,
        top_distributor=losers[0] if losers else None,
    )
