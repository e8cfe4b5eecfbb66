"""Pytest configuration and fixtures."""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from datetime import date

import pytest

from richlist_tracker.analytics.models import (
    Appearance,
    ConcentrationSnapshot,
    WalletCorrelation,
    WeeklySummary,
)
from richlist_tracker.storage.repos import (
    ConcentrationMetricsDTO,
    DailySummaryDTO,
    EntryAnalyticsUpdate,
    SnapshotDTO,
    SnapshotEntryDTO,
)
from richlist_tracker.storage.store import SnapshotConflictError


class InMemorySnapshotStore:
    """Dict-backed SnapshotStore for scheduler, backfill and reporting tests."""

    def __init__(self) -> None:
        self.snapshots: list[SnapshotDTO] = []
        self.entries: dict[int, list[SnapshotEntryDTO]] = {}
        self.metrics: dict[int, ConcentrationMetricsDTO] = {}
        self.daily: dict[tuple[str, date], DailySummaryDTO] = {}
        self.weekly: dict[tuple[str, date], WeeklySummary] = {}
        self.correlations: dict[tuple[str, str], list[WalletCorrelation]] = {}
        self._next_snapshot_id = 1
        self._next_entry_id = 1

    def _chain_snapshots(self, chain: str) -> list[SnapshotDTO]:
        return sorted((s for s in self.snapshots if s.chain == chain), key=lambda s: s.id or 0)

    async def get_latest_snapshot(self, chain: str) -> SnapshotDTO | None:
        snapshots = self._chain_snapshots(chain)
        return snapshots[-1] if snapshots else None

    async def get_snapshot_by_slot(
        self, chain: str, snapshot_date: date, time_slot: str
    ) -> SnapshotDTO | None:
        for s in self.snapshots:
            if (s.chain, s.date, s.time_slot) == (chain, snapshot_date, time_slot):
                return s
        return None

    async def get_previous_snapshot(self, chain: str, snapshot_id: int) -> SnapshotDTO | None:
        earlier = [s for s in self._chain_snapshots(chain) if (s.id or 0) < snapshot_id]
        return earlier[-1] if earlier else None

    async def get_entries_by_snapshot_id(self, snapshot_id: int) -> list[SnapshotEntryDTO]:
        return sorted(self.entries.get(snapshot_id, []), key=lambda e: e.rank)

    async def get_recent_address_entries(
        self, address: str, window: int, *, chain: str | None = None
    ) -> list[SnapshotEntryDTO]:
        ids = {s.id for s in self.snapshots if chain is None or s.chain == chain}
        rows = [
            e
            for sid in sorted(self.entries)
            if sid in ids
            for e in self.entries[sid]
            if e.address == address
        ]
        return rows[-window:]

    async def insert_snapshot(
        self, snapshot: SnapshotDTO, entries: Sequence[SnapshotEntryDTO] = ()
    ) -> SnapshotDTO:
        if await self.get_snapshot_by_slot(snapshot.chain, snapshot.date, snapshot.time_slot):
            raise SnapshotConflictError(snapshot.chain, snapshot.date, snapshot.time_slot)
        created = dataclasses.replace(snapshot, id=self._next_snapshot_id)
        self._next_snapshot_id += 1
        self.snapshots.append(created)
        self.entries[created.id] = []
        await self.insert_snapshot_entries(
            [dataclasses.replace(e, snapshot_id=created.id) for e in entries]
        )
        return created

    async def insert_snapshot_entries(self, entries: Sequence[SnapshotEntryDTO]) -> int:
        for entry in entries:
            stored = dataclasses.replace(entry, id=self._next_entry_id)
            self._next_entry_id += 1
            self.entries.setdefault(entry.snapshot_id, []).append(stored)
        return len(entries)

    async def insert_concentration_metrics(
        self, metrics: ConcentrationSnapshot
    ) -> ConcentrationMetricsDTO:
        dto = ConcentrationMetricsDTO.from_metrics(metrics)
        self.metrics[metrics.snapshot_id] = dto
        return dto

    async def get_concentration_by_date_range(
        self, chain: str, start: date, end: date
    ) -> list[ConcentrationMetricsDTO]:
        return sorted(
            (m for m in self.metrics.values() if m.chain == chain and start <= m.date <= end),
            key=lambda m: m.snapshot_id,
        )

    async def count_snapshots(self, chain: str) -> int:
        return len(self._chain_snapshots(chain))

    async def list_snapshots(self, chain: str) -> list[SnapshotDTO]:
        return self._chain_snapshots(chain)

    async def list_snapshot_ids(self, chain: str) -> list[int]:
        return [s.id for s in self._chain_snapshots(chain) if s.id is not None]

    async def has_concentration_metrics(self, snapshot_id: int) -> bool:
        return snapshot_id in self.metrics

    async def update_entry_analytics(self, updates: Sequence[EntryAnalyticsUpdate]) -> int:
        by_id = {u.entry_id: u for u in updates}
        for sid, rows in self.entries.items():
            self.entries[sid] = [
                dataclasses.replace(
                    e,
                    prev_rank=by_id[e.id].prev_rank,
                    rank_change=by_id[e.id].rank_change,
                    balance_change=by_id[e.id].balance_change,
                    rank_streak=by_id[e.id].rank_streak,
                    balance_streak=by_id[e.id].balance_streak,
                    rank_volatility=by_id[e.id].rank_volatility,
                    balance_trend=by_id[e.id].balance_trend,
                )
                if e.id in by_id
                else e
                for e in rows
            ]
        return len(updates)

    async def backfill_snapshot_total(self, snapshot_id: int, total_balance: float) -> bool:
        for i, s in enumerate(self.snapshots):
            if s.id == snapshot_id and s.total_balance is None:
                self.snapshots[i] = dataclasses.replace(s, total_balance=total_balance)
                return True
        return False

    async def get_snapshots_in_date_range(
        self, chain: str, start: date, end: date
    ) -> list[SnapshotDTO]:
        return [s for s in self._chain_snapshots(chain) if start <= s.date <= end]

    async def get_entries_for_snapshots(self, snapshot_ids: Sequence[int]) -> list[SnapshotEntryDTO]:
        return [e for sid in sorted(snapshot_ids) for e in await self.get_entries_by_snapshot_id(sid)]

    async def get_address_appearances(self, chain: str) -> dict[str, list[Appearance]]:
        grouped: dict[str, list[Appearance]] = {}
        for s in self._chain_snapshots(chain):
            for e in self.entries.get(s.id or 0, []):
                grouped.setdefault(e.address, []).append(
                    Appearance(snapshot_id=s.id or 0, date=s.date, rank=e.rank, balance=e.balance)
                )
        return grouped

    async def upsert_daily_summary(self, summary: DailySummaryDTO) -> DailySummaryDTO:
        self.daily[(summary.chain, summary.date)] = summary
        return summary

    async def upsert_weekly_summary(self, summary: WeeklySummary) -> WeeklySummary:
        self.weekly[(summary.chain, summary.week_start)] = summary
        return summary

    async def upsert_wallet_correlations(
        self, chain: str, period: str, correlations: Sequence[WalletCorrelation]
    ) -> int:
        self.correlations[(chain, period)] = list(correlations)
        return len(correlations)


@pytest.fixture
def memory_store() -> InMemorySnapshotStore:
    """Empty in-memory snapshot store."""
    return InMemorySnapshotStore()
