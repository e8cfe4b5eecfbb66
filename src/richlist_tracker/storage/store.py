"""Snapshot store consumed by the scheduler, backfill and reporting jobs.

``SnapshotStore`` is the read/write contract the core depends on;
``DatabaseSnapshotStore`` implements it by composing the session-scoped
repositories, one transaction per call.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence
from datetime import date
from typing import Protocol

from sqlalchemy.exc import IntegrityError

from richlist_tracker.analytics.models import (
    Appearance,
    ConcentrationSnapshot,
    WalletCorrelation,
    WeeklySummary,
)
from richlist_tracker.storage.database import DatabaseManager
from richlist_tracker.storage.repos import (
    ConcentrationMetricsDTO,
    ConcentrationMetricsRepository,
    DailySummaryDTO,
    DailySummaryRepository,
    EntryAnalyticsUpdate,
    SnapshotDTO,
    SnapshotEntryDTO,
    SnapshotEntryRepository,
    SnapshotRepository,
    WalletCorrelationRepository,
    WeeklySummaryRepository,
)

logger = logging.getLogger(__name__)


class SnapshotConflictError(Exception):
    """Raised when a snapshot already exists for (chain, date, time_slot)."""

    def __init__(self, chain: str, snapshot_date: date, time_slot: str) -> None:
        super().__init__(f"Snapshot already exists for {chain} {snapshot_date} {time_slot}")
        self.chain = chain
        self.date = snapshot_date
        self.time_slot = time_slot


class SnapshotStore(Protocol):
    """Persistence operations the snapshot core relies on."""

    async def get_latest_snapshot(self, chain: str) -> SnapshotDTO | None: ...

    async def get_snapshot_by_slot(
        self, chain: str, snapshot_date: date, time_slot: str
    ) -> SnapshotDTO | None: ...

    async def get_previous_snapshot(self, chain: str, snapshot_id: int) -> SnapshotDTO | None: ...

    async def get_entries_by_snapshot_id(self, snapshot_id: int) -> list[SnapshotEntryDTO]: ...

    async def get_recent_address_entries(
        self, address: str, window: int, *, chain: str | None = None
    ) -> list[SnapshotEntryDTO]: ...

    async def insert_snapshot(
        self, snapshot: SnapshotDTO, entries: Sequence[SnapshotEntryDTO] = ()
    ) -> SnapshotDTO: ...

    async def insert_snapshot_entries(self, entries: Sequence[SnapshotEntryDTO]) -> int: ...

    async def insert_concentration_metrics(
        self, metrics: ConcentrationSnapshot
    ) -> ConcentrationMetricsDTO: ...

    async def get_concentration_by_date_range(
        self, chain: str, start: date, end: date
    ) -> list[ConcentrationMetricsDTO]: ...

    async def count_snapshots(self, chain: str) -> int: ...

    async def list_snapshots(self, chain: str) -> list[SnapshotDTO]: ...

    async def list_snapshot_ids(self, chain: str) -> list[int]: ...

    async def has_concentration_metrics(self, snapshot_id: int) -> bool: ...

    async def update_entry_analytics(self, updates: Sequence[EntryAnalyticsUpdate]) -> int: ...

    async def backfill_snapshot_total(self, snapshot_id: int, total_balance: float) -> bool: ...

    async def get_snapshots_in_date_range(
        self, chain: str, start: date, end: date
    ) -> list[SnapshotDTO]: ...

    async def get_entries_for_snapshots(self, snapshot_ids: Sequence[int]) -> list[SnapshotEntryDTO]: ...

    async def get_address_appearances(self, chain: str) -> dict[str, list[Appearance]]: ...

    async def upsert_daily_summary(self, summary: DailySummaryDTO) -> DailySummaryDTO: ...

    async def upsert_weekly_summary(self, summary: WeeklySummary) -> WeeklySummary: ...

    async def upsert_wallet_correlations(
        self, chain: str, period: str, correlations: Sequence[WalletCorrelation]
    ) -> int: ...


class DatabaseSnapshotStore:
    """SQLAlchemy-backed ``SnapshotStore``."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get_latest_snapshot(self, chain: str) -> SnapshotDTO | None:
        async with self._db.get_async_session() as session:
            return await SnapshotRepository(session).get_latest(chain)

    async def get_snapshot_by_slot(
        self, chain: str, snapshot_date: date, time_slot: str
    ) -> SnapshotDTO | None:
        async with self._db.get_async_session() as session:
            return await SnapshotRepository(session).get_by_slot(chain, snapshot_date, time_slot)

    async def get_previous_snapshot(self, chain: str, snapshot_id: int) -> SnapshotDTO | None:
        async with self._db.get_async_session() as session:
            return await SnapshotRepository(session).get_previous(chain, snapshot_id)

    async def get_entries_by_snapshot_id(self, snapshot_id: int) -> list[SnapshotEntryDTO]:
        async with self._db.get_async_session() as session:
            return await SnapshotEntryRepository(session).list_by_snapshot(snapshot_id)

    async def get_recent_address_entries(
        self, address: str, window: int, *, chain: str | None = None
    ) -> list[SnapshotEntryDTO]:
        async with self._db.get_async_session() as session:
            return await SnapshotEntryRepository(session).list_recent_for_address(
                address, window, chain=chain
            )

    async def insert_snapshot(
        self, snapshot: SnapshotDTO, entries: Sequence[SnapshotEntryDTO] = ()
    ) -> SnapshotDTO:
        """Insert a snapshot and its entries in one transaction.

        The entries' ``snapshot_id`` is assigned here.

        Raises:
            SnapshotConflictError: If (chain, date, time_slot) is already taken.
        """
        async with self._db.get_async_session() as session:
            try:
                created = await SnapshotRepository(session).insert(snapshot)
            except IntegrityError as e:
                raise SnapshotConflictError(snapshot.chain, snapshot.date, snapshot.time_slot) from e
            if created.id is None:
                raise RuntimeError("Snapshot insert did not return an id")
            if entries:
                await SnapshotEntryRepository(session).insert_many(
                    [dataclasses.replace(e, snapshot_id=created.id) for e in entries]
                )
        logger.debug("Inserted snapshot %s with %d entries", created.id, len(entries))
        return created

    async def insert_snapshot_entries(self, entries: Sequence[SnapshotEntryDTO]) -> int:
        async with self._db.get_async_session() as session:
            return await SnapshotEntryRepository(session).insert_many(entries)

    async def insert_concentration_metrics(
        self, metrics: ConcentrationSnapshot
    ) -> ConcentrationMetricsDTO:
        async with self._db.get_async_session() as session:
            return await ConcentrationMetricsRepository(session).insert(
                ConcentrationMetricsDTO.from_metrics(metrics)
            )

    async def get_concentration_by_date_range(
        self, chain: str, start: date, end: date
    ) -> list[ConcentrationMetricsDTO]:
        async with self._db.get_async_session() as session:
            return await ConcentrationMetricsRepository(session).list_by_date_range(chain, start, end)

    async def count_snapshots(self, chain: str) -> int:
        async with self._db.get_async_session() as session:
            return await SnapshotRepository(session).count(chain)

    async def list_snapshots(self, chain: str) -> list[SnapshotDTO]:
        async with self._db.get_async_session() as session:
            return await SnapshotRepository(session).list_for_chain(chain)

    async def list_snapshot_ids(self, chain: str) -> list[int]:
        async with self._db.get_async_session() as session:
            return await SnapshotRepository(session).list_ids(chain)

    async def has_concentration_metrics(self, snapshot_id: int) -> bool:
        async with self._db.get_async_session() as session:
            return await ConcentrationMetricsRepository(session).exists(snapshot_id)

    async def update_entry_analytics(self, updates: Sequence[EntryAnalyticsUpdate]) -> int:
        async with self._db.get_async_session() as session:
            return await SnapshotEntryRepository(session).update_analytics(updates)

    async def backfill_snapshot_total(self, snapshot_id: int, total_balance: float) -> bool:
        async with self._db.get_async_session() as session:
            return await SnapshotRepository(session).set_total_if_unset(snapshot_id, total_balance)

    async def get_snapshots_in_date_range(
        self, chain: str, start: date, end: date
    ) -> list[SnapshotDTO]:
        async with self._db.get_async_session() as session:
            return await SnapshotRepository(session).list_in_date_range(chain, start, end)

    async def get_entries_for_snapshots(self, snapshot_ids: Sequence[int]) -> list[SnapshotEntryDTO]:
        async with self._db.get_async_session() as session:
            return await SnapshotEntryRepository(session).list_for_snapshots(snapshot_ids)

    async def get_address_appearances(self, chain: str) -> dict[str, list[Appearance]]:
        async with self._db.get_async_session() as session:
            return await SnapshotEntryRepository(session).list_appearances(chain)

    async def upsert_daily_summary(self, summary: DailySummaryDTO) -> DailySummaryDTO:
        async with self._db.get_async_session() as session:
            return await DailySummaryRepository(session).upsert(summary)

    async def upsert_weekly_summary(self, summary: WeeklySummary) -> WeeklySummary:
        async with self._db.get_async_session() as session:
            return await WeeklySummaryRepository(session).upsert(summary)

    async def upsert_wallet_correlations(
        self, chain: str, period: str, correlations: Sequence[WalletCorrelation]
    ) -> int:
        async with self._db.get_async_session() as session:
            return await WalletCorrelationRepository(session).upsert_many(chain, period, correlations)
