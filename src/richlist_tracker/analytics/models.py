"""Data models for the analytics module."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Protocol


class BalanceTrend(str, Enum):
    """Direction of an address's balance over a window of observations."""

    ACCUMULATING = "accumulating"
    DISTRIBUTING = "distributing"
    HOLDING = "holding"
    ERRATIC = "erratic"


class RankedBalance(Protocol):
    """Anything carrying one ranked entry's balance and its deltas."""

    @property
    def rank(self) -> int: ...

    @property
    def balance(self) -> float: ...

    @property
    def rank_change(self) -> int | None: ...

    @property
    def balance_change(self) -> float | None: ...


@dataclass(frozen=True)
class NetFlow:
    """Aggregate balance movement across one snapshot.

    Attributes:
        net_flow: ``total_inflow - total_outflow``.
        total_inflow: Sum of positive balance deltas.
        total_outflow: Sum of absolute negative balance deltas.
        active_wallets: Entries with a known, non-zero delta.
    """

    net_flow: float
    total_inflow: float
    total_outflow: float
    active_wallets: int


@dataclass(frozen=True)
class ConcentrationSnapshot:
    """Snapshot-level concentration and activity metrics."""

    snapshot_id: int
    chain: str
    date: date
    time_slot: str
    gini_coefficient: float
    hhi: float
    top10_pct: float
    top20_pct: float
    top50_pct: float
    net_flow: float
    total_inflow: float
    total_outflow: float
    whale_activity_index: float
    active_wallets: int
    avg_rank_change: float
    avg_balance_change_pct: float
    new_entry_count: int
    dropout_count: int
    total_balance: float


@dataclass(frozen=True)
class Appearance:
    """One observation of an address inside a snapshot."""

    snapshot_id: int
    date: date
    rank: int
    balance: float


@dataclass(frozen=True)
class DormancyInfo:
    """Longest absence of an address inside its observed span.

    ``last_seen_date`` and ``re_entry_date`` are only set when the gap
    qualifies as dormancy.
    """

    address: str
    dormant: bool
    gap_snapshots: int
    appearances: int
    first_seen: date | None
    last_seen: date | None
    last_seen_date: date | None = None
    re_entry_date: date | None = None
    gap_days: int = 0


@dataclass(frozen=True)
class GhostWallet:
    """A short-lived top-holder that has since left the ranked list."""

    address: str
    total_appearances: int
    first_seen: date
    last_seen: date
    first_snapshot_id: int
    last_snapshot_id: int
    avg_balance: float
    peak_balance: float
    best_rank: int
    worst_rank: int
    ghost_score: float


@dataclass(frozen=True)
class BalanceMove:
    """Balance change of one address between two points in time."""

    address: str
    change: float


@dataclass(frozen=True)
class WalletCorrelation:
    """Pearson correlation of two addresses' balance-change series."""

    address_a: str
    address_b: str
    correlation: float
    data_points: int


@dataclass(frozen=True)
class WeeklySummary:
    """Aggregate of one chain's concentration metrics over a Monday-Sunday week."""

    chain: str
    week_start: date
    week_end: date
    gini_start: float
    gini_end: float
    gini_change: float
    total_balance_start: float
    total_balance_end: float
    net_flow_total: float
    avg_whale_activity_index: float
    total_new_entries: int
    total_dropouts: int
    avg_rank_volatility: float
    snapshot_count: int
    top_accumulator: BalanceMove | None = None
    top_distributor: BalanceMove | None = None
