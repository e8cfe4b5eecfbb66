"""Recompute derived data for historical snapshots.

Snapshots of a chain are always replayed in ascending id order since
deltas and streaks only make sense against the immediately preceding
snapshot. Independent chains run concurrently. Per-snapshot failures are
counted and logged; they never abort a run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from richlist_tracker.analytics.concentration import build_concentration_metrics
from richlist_tracker.analyzer import AnalyzerConfig, HistoryPoint, PriorEntry, analyze
from richlist_tracker.ingestor.models import RankedHolder
from richlist_tracker.storage.repos import EntryAnalyticsUpdate, SnapshotEntryDTO
from richlist_tracker.storage.store import SnapshotStore

logger = logging.getLogger(__name__)

PROGRESS_LOG_EVERY = 50
ENTRY_PROGRESS_LOG_EVERY = 500


@dataclass
class BackfillReport:
    """Counters for one backfill pass."""

    processed: int = 0
    skipped: int = 0
    errors: int = 0


def _churn_counts(
    entries: Sequence[SnapshotEntryDTO],
    previous_entries: Sequence[SnapshotEntryDTO],
) -> tuple[int, int]:
    if not previous_entries:
        return 0, 0
    current = {e.address for e in entries}
    previous = {e.address for e in previous_entries}
    return len(current - previous), len(previous - current)


class BackfillRunner:
    """Replays stored snapshots to fill in totals, entry analytics and metrics."""

    def __init__(
        self,
        store: SnapshotStore,
        *,
        analyzer_config: AnalyzerConfig | None = None,
        history_window: int = 30,
    ) -> None:
        self._store = store
        self._analyzer_config = analyzer_config or AnalyzerConfig()
        self._history_window = history_window

    async def backfill_snapshot_totals(self, chain: str) -> BackfillReport:
        """Set the aggregate total on snapshots that never had one."""
        report = BackfillReport()
        for snapshot in await self._store.list_snapshots(chain):
            if snapshot.id is None:
                raise RuntimeError(f"Stored snapshot for {chain} has no id")
            if snapshot.total_balance is not None:
                report.skipped += 1
                continue
            try:
                entries = await self._store.get_entries_by_snapshot_id(snapshot.id)
                total = sum(e.balance for e in entries)
                if await self._store.backfill_snapshot_total(snapshot.id, total):
                    report.processed += 1
                else:
                    report.skipped += 1
            except Exception as e:
                report.errors += 1
                logger.warning("Total backfill failed for snapshot %s: %s", snapshot.id, e)
        logger.info(
            "Snapshot totals backfill for %s: %d processed, %d skipped, %d errors",
            chain,
            report.processed,
            report.skipped,
            report.errors,
        )
        return report

    async def backfill_entry_analytics(self, chain: str) -> BackfillReport:
        """Recompute deltas, streaks, volatility and trend for every entry.

        ``processed`` counts entries; ``errors`` counts snapshots.
        """
        report = BackfillReport()
        snapshot_ids = await self._store.list_snapshot_ids(chain)
        logger.info("Entry analytics backfill for %s: %d snapshots", chain, len(snapshot_ids))

        history: dict[str, list[HistoryPoint]] = {}
        previous: list[PriorEntry] = []
        for snapshot_id in snapshot_ids:
            try:
                entries = await self._store.get_entries_by_snapshot_id(snapshot_id)
                holders = [
                    RankedHolder(address=e.address, balance=e.balance, percentage=e.percentage)
                    for e in entries
                ]
                result = analyze(holders, previous, history, self._analyzer_config)
            except Exception as e:
                report.errors += 1
                logger.warning("Entry analytics backfill could not analyze snapshot %s: %s", snapshot_id, e)
                previous = []
                continue

            # The next snapshot diffs against this one even if the write below fails.
            previous = [
                PriorEntry(
                    address=a.address,
                    rank=a.rank,
                    balance=a.balance,
                    rank_streak=a.rank_streak,
                    balance_streak=a.balance_streak,
                )
                for a in result.entries
            ]
            for a in result.entries:
                window = history.setdefault(a.address, [])
                window.append(
                    HistoryPoint(
                        rank=a.rank,
                        balance=a.balance,
                        rank_streak=a.rank_streak,
                        balance_streak=a.balance_streak,
                    )
                )
                if len(window) > self._history_window:
                    del window[0]

            updates = [
                EntryAnalyticsUpdate(
                    entry_id=stored.id,
                    prev_rank=analyzed.prev_rank,
                    rank_change=analyzed.rank_change,
                    balance_change=analyzed.balance_change,
                    rank_streak=analyzed.rank_streak,
                    balance_streak=analyzed.balance_streak,
                    rank_volatility=analyzed.rank_volatility,
                    balance_trend=analyzed.balance_trend.value if analyzed.balance_trend else None,
                )
                for stored, analyzed in zip(entries, result.entries, strict=True)
                if stored.id is not None
            ]
            try:
                await self._store.update_entry_analytics(updates)
            except Exception as e:
                report.errors += 1
                logger.warning("Entry analytics backfill failed for snapshot %s: %s", snapshot_id, e)
                continue

            before = report.processed
            report.processed += len(updates)
            if report.processed // ENTRY_PROGRESS_LOG_EVERY > before // ENTRY_PROGRESS_LOG_EVERY:
                logger.info("Entry analytics backfill for %s: %d entries so far", chain, report.processed)

        logger.info(
            "Entry analytics backfill for %s complete: %d entries, %d errors",
            chain,
            report.processed,
            report.errors,
        )
        return report

    async def backfill_concentration_metrics(self, chain: str) -> BackfillReport:
        """Compute metrics for every snapshot lacking them."""
        report = BackfillReport()
        snapshots = await self._store.list_snapshots(chain)
        logger.info("Metrics backfill for %s: %d snapshots", chain, len(snapshots))

        previous_entries: list[SnapshotEntryDTO] = []
        for snapshot in snapshots:
            if snapshot.id is None:
                raise RuntimeError(f"Stored snapshot for {chain} has no id")
            try:
                entries = await self._store.get_entries_by_snapshot_id(snapshot.id)
            except Exception as e:
                report.errors += 1
                logger.warning("Metrics backfill could not read snapshot %s: %s", snapshot.id, e)
                previous_entries = []
                continue

            try:
                if not entries or await self._store.has_concentration_metrics(snapshot.id):
                    report.skipped += 1
                else:
                    new_count, dropout_count = _churn_counts(entries, previous_entries)
                    metrics = build_concentration_metrics(
                        entries,
                        snapshot_id=snapshot.id,
                        chain=snapshot.chain,
                        snapshot_date=snapshot.date,
                        time_slot=snapshot.time_slot,
                        new_entry_count=new_count,
                        dropout_count=dropout_count,
                    )
                    await self._store.insert_concentration_metrics(metrics)
                    report.processed += 1
                    if report.processed % PROGRESS_LOG_EVERY == 0:
                        logger.info(
                            "Metrics backfill for %s: %d processed, %d skipped",
                            chain,
                            report.processed,
                            report.skipped,
                        )
            except Exception as e:
                report.errors += 1
                logger.warning("Metrics backfill failed for snapshot %s: %s", snapshot.id, e)
            previous_entries = entries

        logger.info(
            "Metrics backfill for %s complete: %d processed, %d skipped, %d errors",
            chain,
            report.processed,
            report.skipped,
            report.errors,
        )
        return report

    async def backfill_chain(self, chain: str) -> dict[str, BackfillReport]:
        """Totals, then entry analytics, then metrics (which read the entry deltas)."""
        return {
            "totals": await self.backfill_snapshot_totals(chain),
            "entries": await self.backfill_entry_analytics(chain),
            "metrics": await self.backfill_concentration_metrics(chain),
        }

    async def backfill_all(self, chains: Sequence[str]) -> dict[str, dict[str, BackfillReport]]:
        results = await asyncio.gather(*(self.backfill_chain(chain) for chain in chains))
        return dict(zip(chains, results, strict=True))
