"""SQLAlchemy models for persistent storage.

This module defines the database schema for ranked-list snapshots, their
entries, and the metrics and summaries derived from them.
"""

from __future__ import annotations

from datetime import UTC, date, datetime

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class SnapshotModel(Base):
    """One capture of a chain's ranked holder list at one time slot."""

    __tablename__ = "snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain: Mapped[str] = mapped_column(String(32), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    time_slot: Mapped[str] = mapped_column(String(5), nullable=False)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_balance: Mapped[float | None] = mapped_column(Float, nullable=True)
    entry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("chain", "date", "time_slot", name="uq_snapshots_chain_date_slot"),
        Index("idx_snapshots_chain_id", "chain", "id"),
    )


class SnapshotEntryModel(Base):
    """One ranked address within a snapshot, with its analysis fields."""

    __tablename__ = "snapshot_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    snapshot_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("snapshots.id", ondelete="CASCADE"), nullable=False
    )
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    address: Mapped[str] = mapped_column(String(64), nullable=False)
    balance: Mapped[float] = mapped_column(Float, nullable=False)
    percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    prev_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rank_change: Mapped[int | None] = mapped_column(Integer, nullable=True)
    balance_change: Mapped[float | None] = mapped_column(Float, nullable=True)
    rank_streak: Mapped[int | None] = mapped_column(Integer, nullable=True)
    balance_streak: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rank_volatility: Mapped[float | None] = mapped_column(Float, nullable=True)
    balance_trend: Mapped[str | None] = mapped_column(String(16), nullable=True)

    __table_args__ = (
        UniqueConstraint("snapshot_id", "address", name="uq_snapshot_entries_snapshot_address"),
        Index("idx_snapshot_entries_address", "address"),
        Index("idx_snapshot_entries_snapshot_rank", "snapshot_id", "rank"),
    )


class ConcentrationMetricsModel(Base):
    """Snapshot-level concentration and activity metrics."""

    __tablename__ = "concentration_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    snapshot_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("snapshots.id", ondelete="CASCADE"), nullable=False
    )
    chain: Mapped[str] = mapped_column(String(32), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    time_slot: Mapped[str] = mapped_column(String(5), nullable=False)

    gini_coefficient: Mapped[float] = mapped_column(Float, nullable=False)
    hhi: Mapped[float] = mapped_column(Float, nullable=False)
    top10_pct: Mapped[float] = mapped_column(Float, nullable=False)
    top20_pct: Mapped[float] = mapped_column(Float, nullable=False)
    top50_pct: Mapped[float] = mapped_column(Float, nullable=False)
    net_flow: Mapped[float] = mapped_column(Float, nullable=False)
    total_inflow: Mapped[float] = mapped_column(Float, nullable=False)
    total_outflow: Mapped[float] = mapped_column(Float, nullable=False)
    whale_activity_index: Mapped[float] = mapped_column(Float, nullable=False)
    active_wallets: Mapped[int] = mapped_column(Integer, nullable=False)
    avg_rank_change: Mapped[float] = mapped_column(Float, nullable=False)
    avg_balance_change_pct: Mapped[float] = mapped_column(Float, nullable=False)
    new_entry_count: Mapped[int] = mapped_column(Integer, nullable=False)
    dropout_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_balance: Mapped[float] = mapped_column(Float, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("snapshot_id", name="uq_concentration_metrics_snapshot"),
        Index("idx_concentration_metrics_chain_date", "chain", "date"),
    )


class DailySummaryModel(Base):
    """Latest per-day churn and movers for a chain."""

    __tablename__ = "daily_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain: Mapped[str] = mapped_column(String(32), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    snapshot_id: Mapped[int] = mapped_column(Integer, nullable=False)
    new_entries: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    dropouts: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    biggest_gainer_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    biggest_gainer_change: Mapped[float | None] = mapped_column(Float, nullable=True)
    biggest_loser_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    biggest_loser_change: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (UniqueConstraint("chain", "date", name="uq_daily_summaries_chain_date"),)


class WeeklySummaryModel(Base):
    """Week-level roll-up of concentration metrics."""

    __tablename__ = "weekly_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain: Mapped[str] = mapped_column(String(32), nullable=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    week_end: Mapped[date] = mapped_column(Date, nullable=False)
    gini_start: Mapped[float] = mapped_column(Float, nullable=False)
    gini_end: Mapped[float] = mapped_column(Float, nullable=False)
    gini_change: Mapped[float] = mapped_column(Float, nullable=False)
    total_balance_start: Mapped[float] = mapped_column(Float, nullable=False)
    total_balance_end: Mapped[float] = mapped_column(Float, nullable=False)
    net_flow_total: Mapped[float] = mapped_column(Float, nullable=False)
    avg_whale_activity_index: Mapped[float] = mapped_column(Float, nullable=False)
    total_new_entries: Mapped[int] = mapped_column(Integer, nullable=False)
    total_dropouts: Mapped[int] = mapped_column(Integer, nullable=False)
    avg_rank_volatility: Mapped[float] = mapped_column(Float, nullable=False)
    snapshot_count: Mapped[int] = mapped_column(Integer, nullable=False)
    top_accumulator_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    top_accumulator_change: Mapped[float | None] = mapped_column(Float, nullable=True)
    top_distributor_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    top_distributor_change: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("chain", "week_start", name="uq_weekly_summaries_chain_week"),
    )


class WalletCorrelationModel(Base):
    """Pairwise balance-change correlation between two top holders."""

    __tablename__ = "wallet_correlations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain: Mapped[str] = mapped_column(String(32), nullable=False)
    address_a: Mapped[str] = mapped_column(String(64), nullable=False)
    address_b: Mapped[str] = mapped_column(String(64), nullable=False)
    correlation: Mapped[float] = mapped_column(Float, nullable=False)
    data_points: Mapped[int] = mapped_column(Integer, nullable=False)
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint(
            "chain",
            "address_a",
            "address_b",
            "period",
            name="uq_wallet_correlations_pair_period",
        ),
        Index("idx_wallet_correlations_chain_period", "chain", "period"),
    )
