"""Repository pattern implementations for data access.

This module provides clean data access abstractions for snapshots, their
ranked entries, concentration metrics, and the daily/weekly/correlation
summaries derived from them.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from richlist_tracker.analytics.models import (
    Appearance,
    ConcentrationSnapshot,
    WalletCorrelation,
    WeeklySummary,
)
from richlist_tracker.storage.models import (
    ConcentrationMetricsModel,
    DailySummaryModel,
    SnapshotEntryModel,
    SnapshotModel,
    WalletCorrelationModel,
    WeeklySummaryModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def _insert_for(session: AsyncSession, model: type[Any]) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT clauses."""
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


@dataclass
class SnapshotDTO:
    """Data transfer object for snapshots."""

    chain: str
    date: date
    time_slot: str
    captured_at: datetime
    total_balance: float | None = None
    entry_count: int = 0
    id: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: SnapshotModel) -> SnapshotDTO:
        return cls(
            id=model.id,
            chain=model.chain,
            date=model.date,
            time_slot=model.time_slot,
            captured_at=model.captured_at,
            total_balance=model.total_balance,
            entry_count=model.entry_count,
            created_at=model.created_at,
        )


@dataclass
class SnapshotEntryDTO:
    """Data transfer object for snapshot entries."""

    snapshot_id: int
    rank: int
    address: str
    balance: float
    percentage: float = 0.0
    prev_rank: int | None = None
    rank_change: int | None = None
    balance_change: float | None = None
    rank_streak: int | None = None
    balance_streak: int | None = None
    rank_volatility: float | None = None
    balance_trend: str | None = None
    id: int | None = None

    @classmethod
    def from_model(cls, model: SnapshotEntryModel) -> SnapshotEntryDTO:
        return cls(
            id=model.id,
            snapshot_id=model.snapshot_id,
            rank=model.rank,
            address=model.address,
            balance=model.balance,
            percentage=model.percentage,
            prev_rank=model.prev_rank,
            rank_change=model.rank_change,
            balance_change=model.balance_change,
            rank_streak=model.rank_streak,
            balance_streak=model.balance_streak,
            rank_volatility=model.rank_volatility,
            balance_trend=model.balance_trend,
        )


@dataclass
class EntryAnalyticsUpdate:
    """Recomputed analysis fields for one existing entry."""

    entry_id: int
    prev_rank: int | None
    rank_change: int | None
    balance_change: float | None
    rank_streak: int
    balance_streak: int
    rank_volatility: float | None = None
    balance_trend: str | None = None


@dataclass
class ConcentrationMetricsDTO:
    """Data transfer object for concentration metrics."""

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
    id: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_metrics(cls, metrics: ConcentrationSnapshot) -> ConcentrationMetricsDTO:
        return cls(
            snapshot_id=metrics.snapshot_id,
            chain=metrics.chain,
            date=metrics.date,
            time_slot=metrics.time_slot,
            gini_coefficient=metrics.gini_coefficient,
            hhi=metrics.hhi,
            top10_pct=metrics.top10_pct,
            top20_pct=metrics.top20_pct,
            top50_pct=metrics.top50_pct,
            net_flow=metrics.net_flow,
            total_inflow=metrics.total_inflow,
            total_outflow=metrics.total_outflow,
            whale_activity_index=metrics.whale_activity_index,
            active_wallets=metrics.active_wallets,
            avg_rank_change=metrics.avg_rank_change,
            avg_balance_change_pct=metrics.avg_balance_change_pct,
            new_entry_count=metrics.new_entry_count,
            dropout_count=metrics.dropout_count,
            total_balance=metrics.total_balance,
        )

    @classmethod
    def from_model(cls, model: ConcentrationMetricsModel) -> ConcentrationMetricsDTO:
        return cls(
            id=model.id,
            snapshot_id=model.snapshot_id,
            chain=model.chain,
            date=model.date,
            time_slot=model.time_slot,
            gini_coefficient=model.gini_coefficient,
            hhi=model.hhi,
            top10_pct=model.top10_pct,
            top20_pct=model.top20_pct,
            top50_pct=model.top50_pct,
            net_flow=model.net_flow,
            total_inflow=model.total_inflow,
            total_outflow=model.total_outflow,
            whale_activity_index=model.whale_activity_index,
            active_wallets=model.active_wallets,
            avg_rank_change=model.avg_rank_change,
            avg_balance_change_pct=model.avg_balance_change_pct,
            new_entry_count=model.new_entry_count,
            dropout_count=model.dropout_count,
            total_balance=model.total_balance,
            created_at=model.created_at,
        )


@dataclass
class DailySummaryDTO:
    """Data transfer object for the per-day churn summary."""

    chain: str
    date: date
    snapshot_id: int
    new_entries: list[str] = field(default_factory=list)
    dropouts: list[str] = field(default_factory=list)
    biggest_gainer_address: str | None = None
    biggest_gainer_change: float | None = None
    biggest_loser_address: str | None = None
    biggest_loser_change: float | None = None

    @classmethod
    def from_model(cls, model: DailySummaryModel) -> DailySummaryDTO:
        return cls(
            chain=model.chain,
            date=model.date,
            snapshot_id=model.snapshot_id,
            new_entries=list(model.new_entries or []),
            dropouts=list(model.dropouts or []),
            biggest_gainer_address=model.biggest_gainer_address,
            biggest_gainer_change=model.biggest_gainer_change,
            biggest_loser_address=model.biggest_loser_address,
            biggest_loser_change=model.biggest_loser_change,
        )


class SnapshotRepository:
    """Repository for snapshot headers."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, snapshot_id: int) -> SnapshotDTO | None:
        model = await self.session.get(SnapshotModel, snapshot_id)
        return SnapshotDTO.from_model(model) if model else None

    async def get_latest(self, chain: str) -> SnapshotDTO | None:
        result = await self.session.execute(
            select(SnapshotModel)
            .where(SnapshotModel.chain == chain)
            .order_by(SnapshotModel.id.desc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return SnapshotDTO.from_model(model) if model else None

    async def get_by_slot(self, chain: str, snapshot_date: date, time_slot: str) -> SnapshotDTO | None:
        result = await self.session.execute(
            select(SnapshotModel).where(
                (SnapshotModel.chain == chain)
                & (SnapshotModel.date == snapshot_date)
                & (SnapshotModel.time_slot == time_slot)
            )
        )
        model = result.scalar_one_or_none()
        return SnapshotDTO.from_model(model) if model else None

    async def get_previous(self, chain: str, snapshot_id: int) -> SnapshotDTO | None:
        """The snapshot of ``chain`` immediately preceding ``snapshot_id``."""
        result = await self.session.execute(
            select(SnapshotModel)
            .where((SnapshotModel.chain == chain) & (SnapshotModel.id < snapshot_id))
            .order_by(SnapshotModel.id.desc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return SnapshotDTO.from_model(model) if model else None

    async def insert(self, dto: SnapshotDTO) -> SnapshotDTO:
        """Insert a snapshot header.

        Raises:
            sqlalchemy.exc.IntegrityError: On a duplicate (chain, date, time_slot).
        """
        model = SnapshotModel(
            chain=dto.chain,
            date=dto.date,
            time_slot=dto.time_slot,
            captured_at=dto.captured_at,
            total_balance=dto.total_balance,
            entry_count=dto.entry_count,
        )
        self.session.add(model)
        await self.session.flush()
        return SnapshotDTO.from_model(model)

    async def count(self, chain: str) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(SnapshotModel).where(SnapshotModel.chain == chain)
        )
        return int(result.scalar_one())

    async def list_for_chain(self, chain: str) -> list[SnapshotDTO]:
        result = await self.session.execute(
            select(SnapshotModel).where(SnapshotModel.chain == chain).order_by(SnapshotModel.id.asc())
        )
        return [SnapshotDTO.from_model(m) for m in result.scalars().all()]

    async def list_ids(self, chain: str) -> list[int]:
        result = await self.session.execute(
            select(SnapshotModel.id).where(SnapshotModel.chain == chain).order_by(SnapshotModel.id.asc())
        )
        return [row[0] for row in result.all()]

    async def list_in_date_range(self, chain: str, start: date, end: date) -> list[SnapshotDTO]:
        result = await self.session.execute(
            select(SnapshotModel)
            .where(
                (SnapshotModel.chain == chain)
                & (SnapshotModel.date >= start)
                & (SnapshotModel.date <= end)
            )
            .order_by(SnapshotModel.id.asc())
        )
        return [SnapshotDTO.from_model(m) for m in result.scalars().all()]

    async def set_total_if_unset(self, snapshot_id: int, total_balance: float) -> bool:
        """Backfill the aggregate total once. Returns True if a row changed."""
        result = await self.session.execute(
            update(SnapshotModel)
            .where((SnapshotModel.id == snapshot_id) & (SnapshotModel.total_balance.is_(None)))
            .values(total_balance=total_balance)
        )
        await self.session.flush()
        return bool(result.rowcount)


class SnapshotEntryRepository:
    """Repository for ranked snapshot entries."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: SnapshotEntryDTO) -> SnapshotEntryDTO:
        await self.insert_many([dto])
        return dto

    async def insert_many(self, dtos: Sequence[SnapshotEntryDTO]) -> int:
        if not dtos:
            return 0
        self.session.add_all(
            [
                SnapshotEntryModel(
                    snapshot_id=dto.snapshot_id,
                    rank=dto.rank,
                    address=dto.address,
                    balance=dto.balance,
                    percentage=dto.percentage,
                    prev_rank=dto.prev_rank,
                    rank_change=dto.rank_change,
                    balance_change=dto.balance_change,
                    rank_streak=dto.rank_streak,
                    balance_streak=dto.balance_streak,
                    rank_volatility=dto.rank_volatility,
                    balance_trend=dto.balance_trend,
                )
                for dto in dtos
            ]
        )
        await self.session.flush()
        return len(dtos)

    async def list_by_snapshot(self, snapshot_id: int) -> list[SnapshotEntryDTO]:
        result = await self.session.execute(
            select(SnapshotEntryModel)
            .where(SnapshotEntryModel.snapshot_id == snapshot_id)
            .order_by(SnapshotEntryModel.rank.asc())
        )
        return [SnapshotEntryDTO.from_model(m) for m in result.scalars().all()]

    async def list_for_snapshots(self, snapshot_ids: Sequence[int]) -> list[SnapshotEntryDTO]:
        if not snapshot_ids:
            return []
        result = await self.session.execute(
            select(SnapshotEntryModel)
            .where(SnapshotEntryModel.snapshot_id.in_(list(snapshot_ids)))
            .order_by(SnapshotEntryModel.snapshot_id.asc(), SnapshotEntryModel.rank.asc())
        )
        return [SnapshotEntryDTO.from_model(m) for m in result.scalars().all()]

    async def list_recent_for_address(
        self,
        address: str,
        window: int,
        *,
        chain: str | None = None,
    ) -> list[SnapshotEntryDTO]:
        """The address's last ``window`` entries, oldest first."""
        stmt = select(SnapshotEntryModel).where(SnapshotEntryModel.address == address)
        if chain is not None:
            stmt = stmt.join(SnapshotModel, SnapshotModel.id == SnapshotEntryModel.snapshot_id).where(
                SnapshotModel.chain == chain
            )
        stmt = stmt.order_by(SnapshotEntryModel.snapshot_id.desc()).limit(window)
        result = await self.session.execute(stmt)
        rows = [SnapshotEntryDTO.from_model(m) for m in result.scalars().all()]
        rows.reverse()
        return rows

    async def update_analytics(self, updates: Sequence[EntryAnalyticsUpdate]) -> int:
        for upd in updates:
            await self.session.execute(
                update(SnapshotEntryModel)
                .where(SnapshotEntryModel.id == upd.entry_id)
                .values(
                    prev_rank=upd.prev_rank,
                    rank_change=upd.rank_change,
                    balance_change=upd.balance_change,
                    rank_streak=upd.rank_streak,
                    balance_streak=upd.balance_streak,
                    rank_volatility=upd.rank_volatility,
                    balance_trend=upd.balance_trend,
                )
            )
        await self.session.flush()
        return len(updates)

    async def list_appearances(self, chain: str) -> dict[str, list[Appearance]]:
        """Every observation of every address on ``chain``, grouped and ordered by snapshot."""
        result = await self.session.execute(
            select(
                SnapshotEntryModel.address,
                SnapshotEntryModel.snapshot_id,
                SnapshotModel.date,
                SnapshotEntryModel.rank,
                SnapshotEntryModel.balance,
            )
            .join(SnapshotModel, SnapshotModel.id == SnapshotEntryModel.snapshot_id)
            .where(SnapshotModel.chain == chain)
            .order_by(SnapshotEntryModel.address.asc(), SnapshotEntryModel.snapshot_id.asc())
        )
        grouped: dict[str, list[Appearance]] = {}
        for address, snapshot_id, snapshot_date, rank, balance in result.all():
            grouped.setdefault(address, []).append(
                Appearance(snapshot_id=snapshot_id, date=snapshot_date, rank=rank, balance=balance)
            )
        return grouped


class ConcentrationMetricsRepository:
    """Repository for snapshot-level concentration metrics."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: ConcentrationMetricsDTO) -> ConcentrationMetricsDTO:
        model = ConcentrationMetricsModel(
            snapshot_id=dto.snapshot_id,
            chain=dto.chain,
            date=dto.date,
            time_slot=dto.time_slot,
            gini_coefficient=dto.gini_coefficient,
            hhi=dto.hhi,
            top10_pct=dto.top10_pct,
            top20_pct=dto.top20_pct,
            top50_pct=dto.top50_pct,
            net_flow=dto.net_flow,
            total_inflow=dto.total_inflow,
            total_outflow=dto.total_outflow,
            whale_activity_index=dto.whale_activity_index,
            active_wallets=dto.active_wallets,
            avg_rank_change=dto.avg_rank_change,
            avg_balance_change_pct=dto.avg_balance_change_pct,
            new_entry_count=dto.new_entry_count,
            dropout_count=dto.dropout_count,
            total_balance=dto.total_balance,
        )
        self.session.add(model)
        await self.session.flush()
        return ConcentrationMetricsDTO.from_model(model)

    async def get_by_snapshot_id(self, snapshot_id: int) -> ConcentrationMetricsDTO | None:
        result = await self.session.execute(
            select(ConcentrationMetricsModel).where(ConcentrationMetricsModel.snapshot_id == snapshot_id)
        )
        model = result.scalar_one_or_none()
        return ConcentrationMetricsDTO.from_model(model) if model else None

    async def exists(self, snapshot_id: int) -> bool:
        result = await self.session.execute(
            select(ConcentrationMetricsModel.id)
            .where(ConcentrationMetricsModel.snapshot_id == snapshot_id)
            .limit(1)
        )
        return result.first() is not None

    async def list_by_date_range(self, chain: str, start: date, end: date) -> list[ConcentrationMetricsDTO]:
        result = await self.session.execute(
            select(ConcentrationMetricsModel)
            .where(
                (ConcentrationMetricsModel.chain == chain)
                & (ConcentrationMetricsModel.date >= start)
                & (ConcentrationMetricsModel.date <= end)
            )
            .order_by(ConcentrationMetricsModel.snapshot_id.asc())
        )
        return [ConcentrationMetricsDTO.from_model(m) for m in result.scalars().all()]


class DailySummaryRepository:
    """Repository for per-day churn summaries."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(self, dto: DailySummaryDTO) -> DailySummaryDTO:
        """Upsert by (chain, date); the latest snapshot of the day wins."""
        now = datetime.now(UTC)
        values = {
            "chain": dto.chain,
            "date": dto.date,
            "snapshot_id": dto.snapshot_id,
            "new_entries": list(dto.new_entries),
            "dropouts": list(dto.dropouts),
            "biggest_gainer_address": dto.biggest_gainer_address,
            "biggest_gainer_change": dto.biggest_gainer_change,
            "biggest_loser_address": dto.biggest_loser_address,
            "biggest_loser_change": dto.biggest_loser_change,
        }
        stmt = _insert_for(self.session, DailySummaryModel).values(**values, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["chain", "date"],
            set_={
                "snapshot_id": stmt.excluded.snapshot_id,
                "new_entries": stmt.excluded.new_entries,
                "dropouts": stmt.excluded.dropouts,
                "biggest_gainer_address": stmt.excluded.biggest_gainer_address,
                "biggest_gainer_change": stmt.excluded.biggest_gainer_change,
                "biggest_loser_address": stmt.excluded.biggest_loser_address,
                "biggest_loser_change": stmt.excluded.biggest_loser_change,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return dto

    async def get(self, chain: str, summary_date: date) -> DailySummaryDTO | None:
        result = await self.session.execute(
            select(DailySummaryModel).where(
                (DailySummaryModel.chain == chain) & (DailySummaryModel.date == summary_date)
            )
        )
        model = result.scalar_one_or_none()
        return DailySummaryDTO.from_model(model) if model else None


class WeeklySummaryRepository:
    """Repository for weekly roll-ups."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(self, summary: WeeklySummary) -> WeeklySummary:
        """Upsert by (chain, week_start)."""
        now = datetime.now(UTC)
        accumulator = summary.top_accumulator
        distributor = summary.top_distributor
        values = {
            "chain": summary.chain,
            "week_start": summary.week_start,
            "week_end": summary.week_end,
            "gini_start": summary.gini_start,
            "gini_end": summary.gini_end,
            "gini_change": summary.gini_change,
            "total_balance_start": summary.total_balance_start,
            "total_balance_end": summary.total_balance_end,
            "net_flow_total": summary.net_flow_total,
            "avg_whale_activity_index": summary.avg_whale_activity_index,
            "total_new_entries": summary.total_new_entries,
            "total_dropouts": summary.total_dropouts,
            "avg_rank_volatility": summary.avg_rank_volatility,
            "snapshot_count": summary.snapshot_count,
            "top_accumulator_address": accumulator.address if accumulator else None,
            "top_accumulator_change": accumulator.change if accumulator else None,
            "top_distributor_address": distributor.address if distributor else None,
            "top_distributor_change": distributor.change if distributor else None,
        }
        stmt = _insert_for(self.session, WeeklySummaryModel).values(**values, created_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["chain", "week_start"],
            set_={key: getattr(stmt.excluded, key) for key in values if key not in ("chain", "week_start")},
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return summary

    async def get(self, chain: str, week_start: date) -> WeeklySummaryModel | None:
        result = await self.session.execute(
            select(WeeklySummaryModel).where(
                (WeeklySummaryModel.chain == chain) & (WeeklySummaryModel.week_start == week_start)
            )
        )
        return result.scalar_one_or_none()


class WalletCorrelationRepository:
    """Repository for pairwise wallet correlations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_many(
        self,
        chain: str,
        period: str,
        correlations: Sequence[WalletCorrelation],
    ) -> int:
        if not correlations:
            return 0
        now = datetime.now(UTC)
        rows = [
            {
                "chain": chain,
                "address_a": c.address_a,
                "address_b": c.address_b,
                "correlation": c.correlation,
                "data_points": c.data_points,
                "period": period,
                "computed_at": now,
            }
            for c in correlations
        ]
        stmt = _insert_for(self.session, WalletCorrelationModel).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["chain", "address_a", "address_b", "period"],
            set_={
                "correlation": stmt.excluded.correlation,
                "data_points": stmt.excluded.data_points,
                "computed_at": stmt.excluded.computed_at,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return len(rows)

    async def list_for_period(self, chain: str, period: str) -> list[WalletCorrelation]:
        result = await self.session.execute(
            select(WalletCorrelationModel)
            .where((WalletCorrelationModel.chain == chain) & (WalletCorrelationModel.period == period))
            .order_by(WalletCorrelationModel.correlation.desc())
        )
        return [
            WalletCorrelation(
                address_a=m.address_a,
                address_b=m.address_b,
                correlation=m.correlation,
                data_points=m.data_points,
            )
            for m in result.scalars().all()
        ]
