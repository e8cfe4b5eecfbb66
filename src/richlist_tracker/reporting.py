"""Periodic and on-demand reports built from stored snapshots.

The service reads from the store, hands plain sequences to the pure
analytics functions, and persists the summaries that have a table.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from richlist_tracker.analytics.correlation import compute_wallet_correlations
from richlist_tracker.analytics.models import (
    BalanceMove,
    DormancyInfo,
    GhostWallet,
    WalletCorrelation,
    WeeklySummary,
)
from richlist_tracker.analytics.wallets import (
    DEFAULT_DORMANCY_MIN_GAP,
    DEFAULT_GHOST_MAX_APPEARANCES,
    REPORT_LIMIT,
    find_dormant_wallets,
    find_ghost_wallets,
)
from richlist_tracker.analytics.weekly import compute_movers, previous_week_bounds, summarize_week
from richlist_tracker.storage.store import SnapshotStore

logger = logging.getLogger(__name__)

DEFAULT_CORRELATION_TOP_N = 20
DEFAULT_CORRELATION_WINDOW = 288
DEFAULT_CORRELATION_PERIOD = "24h"


class ReportingService:
    """Weekly summaries, wallet correlations and wallet-pattern reports."""

    def __init__(
        self,
        store: SnapshotStore,
        *,
        dormancy_min_gap: int = DEFAULT_DORMANCY_MIN_GAP,
        ghost_max_appearances: int = DEFAULT_GHOST_MAX_APPEARANCES,
        correlation_top_n: int = DEFAULT_CORRELATION_TOP_N,
        correlation_window: int = DEFAULT_CORRELATION_WINDOW,
        correlation_period: str = DEFAULT_CORRELATION_PERIOD,
    ) -> None:
        self._store = store
        self._dormancy_min_gap = dormancy_min_gap
        self._ghost_max_appearances = ghost_max_appearances
        self._correlation_top_n = correlation_top_n
        self._correlation_window = correlation_window
        self._correlation_period = correlation_period

    async def generate_weekly_summary(
        self,
        chain: str,
        now: datetime | None = None,
    ) -> WeeklySummary | None:
        """Summarize the Monday-Sunday week ending on the most recent Sunday.

        Returns None (and writes nothing) when the week has no metrics.
        """
        week_start, week_end = previous_week_bounds(now or datetime.now(UTC))
        metrics = await self._store.get_concentration_by_date_range(chain, week_start, week_end)
        if not metrics:
            logger.info("No metrics for %s week %s..%s; skipping weekly summary", chain, week_start, week_end)
            return None

        gainers: list[BalanceMove] = []
        losers: list[BalanceMove] = []
        snapshots = await self._store.get_snapshots_in_date_range(chain, week_start, week_end)
        if len(snapshots) >= 2 and snapshots[0].id is not None and snapshots[-1].id is not None:
            start_entries = await self._store.get_entries_by_snapshot_id(snapshots[0].id)
            end_entries = await self._store.get_entries_by_snapshot_id(snapshots[-1].id)
            gainers, losers = compute_movers(start_entries, end_entries)

        summary = summarize_week(chain, week_start, week_end, metrics, gainers=gainers, losers=losers)
        if summary is None:
            return None
        await self._store.upsert_weekly_summary(summary)
        logger.info(
            "Weekly summary for %s %s..%s: %d snapshots, gini %.4f -> %.4f",
            chain,
            week_start,
            week_end,
            summary.snapshot_count,
            summary.gini_start,
            summary.gini_end,
        )
        return summary

    async def compute_correlations(self, chain: str) -> list[WalletCorrelation]:
        """Correlate balance changes among the latest snapshot's top holders."""
        latest = await self._store.get_latest_snapshot(chain)
        if latest is None or latest.id is None:
            logger.info("No snapshots for %s; skipping correlations", chain)
            return []

        latest_entries = await self._store.get_entries_by_snapshot_id(latest.id)
        addresses = [e.address for e in sorted(latest_entries, key=lambda e: e.rank)][
            : self._correlation_top_n
        ]
        snapshot_ids = (await self._store.list_snapshot_ids(chain))[-self._correlation_window :]
        tracked = set(addresses)

        changes: dict[str, dict[int, float]] = {}
        for entry in await self._store.get_entries_for_snapshots(snapshot_ids):
            if entry.address in tracked and entry.balance_change is not None:
                changes.setdefault(entry.address, {})[entry.snapshot_id] = entry.balance_change

        correlations = compute_wallet_correlations(changes, addresses)
        await self._store.upsert_wallet_correlations(chain, self._correlation_period, correlations)
        logger.info(
            "Stored %d wallet correlations for %s over %d snapshots",
            len(correlations),
            chain,
            len(snapshot_ids),
        )
        return correlations

    async def dormant_wallets(self, chain: str, *, limit: int = REPORT_LIMIT) -> list[DormancyInfo]:
        appearances = await self._store.get_address_appearances(chain)
        snapshot_ids = await self._store.list_snapshot_ids(chain)
        return find_dormant_wallets(
            appearances,
            snapshot_ids,
            min_gap=self._dormancy_min_gap,
            limit=limit,
        )

    async def ghost_wallets(
        self,
        chain: str,
        *,
        max_appearances: int | None = None,
        limit: int = REPORT_LIMIT,
    ) -> list[GhostWallet]:
        latest = await self._store.get_latest_snapshot(chain)
        if latest is None or latest.id is None:
            return []
        latest_entries = await self._store.get_entries_by_snapshot_id(latest.id)
        appearances = await self._store.get_address_appearances(chain)
        return find_ghost_wallets(
            appearances,
            latest_snapshot_id=latest.id,
            latest_addresses=[e.address for e in latest_entries],
            max_appearances=(
                self._ghost_max_appearances if max_appearances is None else max_appearances
            ),
            limit=limit,
        )

    async def run_weekly_summaries(self, chains: Sequence[str], now: datetime | None = None) -> int:
        """Weekly summary for every chain; returns how many were written."""
        written = 0
        for chain in chains:
            try:
                if await self.generate_weekly_summary(chain, now) is not None:
                    written += 1
            except Exception as e:
                logger.warning("Weekly summary failed for %s: %s", chain, e)
        return written

    async def run_correlations(self, chains: Sequence[str]) -> int:
        """Correlation job for every chain; returns the number of stored pairs."""
        stored = 0
        for chain in chains:
            try:
                stored += len(await self.compute_correlations(chain))
            except Exception as e:
                logger.warning("Wallet correlation job failed for %s: %s", chain, e)
        return stored
