"""Snapshot-level wealth distribution and activity metrics.

All functions here are pure: they take one snapshot's entries (already
enriched with rank/balance deltas) and return scalars or small records.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

import numpy as np

from richlist_tracker.analytics.models import ConcentrationSnapshot, NetFlow, RankedBalance

TOP_K_SHARES: tuple[int, ...] = (10, 20, 50)

WAI_BALANCE_WEIGHT = 0.5
WAI_RANK_WEIGHT = 0.3
WAI_CHURN_WEIGHT = 0.2
WAI_RANK_SHUFFLE_CAP = 100.0


class StatisticsError(Exception):
    """Raised when snapshot metrics cannot be computed from the given input."""


def compute_gini_coefficient(balances: Sequence[float]) -> float:
    """Gini coefficient of a balance distribution.

    0 means every holder has the same balance; values approach 1 as a
    single holder owns everything.
    """
    if len(balances) == 0:
        return 0.0
    values = np.asarray(balances, dtype=float)
    n = values.size
    mean = float(values.mean())
    if mean == 0:
        return 0.0
    abs_diffs = float(np.abs(values[:, None] - values[None, :]).sum())
    return abs_diffs / (2 * n * n * mean)


def compute_hhi(balances: Sequence[float]) -> float:
    """Herfindahl-Hirschman Index over percentage shares.

    Ranges from ``10000 / n`` for an equal split to 10000 for a single holder.
    """
    if len(balances) == 0:
        return 0.0
    values = np.asarray(balances, dtype=float)
    total = float(values.sum())
    if total == 0:
        return 0.0
    shares = values / total * 100.0
    return float(np.square(shares).sum())


def compute_net_flow(entries: Sequence[RankedBalance]) -> NetFlow:
    """Inflow, outflow and active-wallet count across entries with a known delta."""
    total_inflow = 0.0
    total_outflow = 0.0
    active_wallets = 0
    for entry in entries:
        change = entry.balance_change
        if change is None or change == 0:
            continue
        active_wallets += 1
        if change > 0:
            total_inflow += change
        else:
            total_outflow += abs(change)
    return NetFlow(
        net_flow=total_inflow - total_outflow,
        total_inflow=total_inflow,
        total_outflow=total_outflow,
        active_wallets=active_wallets,
    )


def compute_whale_activity_index(
    entries: Sequence[RankedBalance],
    new_entry_count: int,
    dropout_count: int,
) -> float:
    """Composite of balance movement, rank shuffling and entry/exit churn.

    Roughly 0-100; rounded to two decimals.
    """
    n = len(entries)
    if n == 0:
        return 0.0
    total_balance = sum(e.balance for e in entries)
    if total_balance == 0:
        return 0.0

    abs_balance_change = sum(abs(e.balance_change or 0.0) for e in entries)
    balance_movement = abs_balance_change / total_balance * 100.0

    abs_rank_change = sum(abs(e.rank_change or 0) for e in entries)
    rank_shuffle = min(abs_rank_change / n, WAI_RANK_SHUFFLE_CAP)

    churn = (new_entry_count + dropout_count) / n * 100.0

    wai = (
        balance_movement * WAI_BALANCE_WEIGHT
        + rank_shuffle * WAI_RANK_WEIGHT
        + churn * WAI_CHURN_WEIGHT
    )
    return round(wai, 2)


def _top_share(balances: list[float], k: int, total: float) -> float:
    if total <= 0:
        return 0.0
    return round(sum(balances[:k]) / total * 100.0, 2)


def _avg_abs_rank_change(entries: Sequence[RankedBalance]) -> float:
    changes = [abs(e.rank_change) for e in entries if e.rank_change is not None]
    if not changes:
        return 0.0
    return sum(changes) / len(changes)


def _avg_balance_change_pct(entries: Sequence[RankedBalance]) -> float:
    # Relative to the previous balance, which is reconstructed from the delta.
    pcts: list[float] = []
    for entry in entries:
        if entry.balance_change is None or entry.balance <= 0:
            continue
        previous = entry.balance - entry.balance_change
        pct = entry.balance_change / previous * 100.0 if previous > 0 else 0.0
        if np.isfinite(pct):
            pcts.append(pct)
    if not pcts:
        return 0.0
    return sum(pcts) / len(pcts)


def build_concentration_metrics(
    entries: Sequence[RankedBalance],
    *,
    snapshot_id: int,
    chain: str,
    snapshot_date: date,
    time_slot: str,
    new_entry_count: int,
    dropout_count: int,
) -> ConcentrationSnapshot:
    """Compute every snapshot-level metric for one snapshot's entries.

    Raises:
        StatisticsError: If the snapshot has no entries.
    """
    if not entries:
        raise StatisticsError(f"Snapshot {snapshot_id} has no entries")

    ordered = sorted(entries, key=lambda e: e.rank)
    balances = [e.balance for e in ordered]
    total_balance = sum(balances)
    flow = compute_net_flow(ordered)
    top10, top20, top50 = (_top_share(balances, k, total_balance) for k in TOP_K_SHARES)

    return ConcentrationSnapshot(
        snapshot_id=snapshot_id,
        chain=chain,
        date=snapshot_date,
        time_slot=time_slot,
        gini_coefficient=compute_gini_coefficient(balances),
        hhi=compute_hhi(balances),
        top10_pct=top10,
        top20_pct=top20,
        top50_pct=top50,
        net_flow=round(flow.net_flow, 2),
        total_inflow=round(flow.total_inflow, 2),
        total_outflow=round(flow.total_outflow, 2),
        whale_activity_index=compute_whale_activity_index(ordered, new_entry_count, dropout_count),
        active_wallets=flow.active_wallets,
        avg_rank_change=round(_avg_abs_rank_change(ordered), 2),
        avg_balance_change_pct=round(_avg_balance_change_pct(ordered), 2),
        new_entry_count=new_entry_count,
        dropout_count=dropout_count,
        total_balance=round(total_balance, 2),
    )
