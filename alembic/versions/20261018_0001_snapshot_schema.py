"""Snapshot, entry, metrics and summary tables.

Revision ID: 001_snapshot_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_snapshot_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain", sa.String(32), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time_slot", sa.String(5), nullable=False),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_balance", sa.Float(), nullable=True),
        sa.Column("entry_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain", "date", "time_slot", name="uq_snapshots_chain_date_slot"),
    )
    op.create_index("idx_snapshots_chain_id", "snapshots", ["chain", "id"])

    op.create_table(
        "snapshot_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("snapshot_id", sa.Integer(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("address", sa.String(64), nullable=False),
        sa.Column("balance", sa.Float(), nullable=False),
        sa.Column("percentage", sa.Float(), nullable=False),
        sa.Column("prev_rank", sa.Integer(), nullable=True),
        sa.Column("rank_change", sa.Integer(), nullable=True),
        sa.Column("balance_change", sa.Float(), nullable=True),
        sa.Column("rank_streak", sa.Integer(), nullable=True),
        sa.Column("balance_streak", sa.Integer(), nullable=True),
        sa.Column("rank_volatility", sa.Float(), nullable=True),
        sa.Column("balance_trend", sa.String(16), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["snapshot_id"], ["snapshots.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("snapshot_id", "address", name="uq_snapshot_entries_snapshot_address"),
    )
    op.create_index("idx_snapshot_entries_address", "snapshot_entries", ["address"])
    op.create_index("idx_snapshot_entries_snapshot_rank", "snapshot_entries", ["snapshot_id", "rank"])

    op.create_table(
        "concentration_metrics",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("snapshot_id", sa.Integer(), nullable=False),
        sa.Column("chain", sa.String(32), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time_slot", sa.String(5), nullable=False),
        sa.Column("gini_coefficient", sa.Float(), nullable=False),
        sa.Column("hhi", sa.Float(), nullable=False),
        sa.Column("top10_pct", sa.Float(), nullable=False),
        sa.Column("top20_pct", sa.Float(), nullable=False),
        sa.Column("top50_pct", sa.Float(), nullable=False),
        sa.Column("net_flow", sa.Float(), nullable=False),
        sa.Column("total_inflow", sa.Float(), nullable=False),
        sa.Column("total_outflow", sa.Float(), nullable=False),
        sa.Column("whale_activity_index", sa.Float(), nullable=False),
        sa.Column("active_wallets", sa.Integer(), nullable=False),
        sa.Column("avg_rank_change", sa.Float(), nullable=False),
        sa.Column("avg_balance_change_pct", sa.Float(), nullable=False),
        sa.Column("new_entry_count", sa.Integer(), nullable=False),
        sa.Column("dropout_count", sa.Integer(), nullable=False),
        sa.Column("total_balance", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["snapshot_id"], ["snapshots.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("snapshot_id", name="uq_concentration_metrics_snapshot"),
    )
    op.create_index("idx_concentration_metrics_chain_date", "concentration_metrics", ["chain", "date"])

    op.create_table(
        "daily_summaries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain", sa.String(32), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("snapshot_id", sa.Integer(), nullable=False),
        sa.Column("new_entries", sa.JSON(), nullable=False),
        sa.Column("dropouts", sa.JSON(), nullable=False),
        sa.Column("biggest_gainer_address", sa.String(64), nullable=True),
        sa.Column("biggest_gainer_change", sa.Float(), nullable=True),
        sa.Column("biggest_loser_address", sa.String(64), nullable=True),
        sa.Column("biggest_loser_change", sa.Float(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain", "date", name="uq_daily_summaries_chain_date"),
    )

    op.create_table(
        "weekly_summaries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain", sa.String(32), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("week_end", sa.Date(), nullable=False),
        sa.Column("gini_start", sa.Float(), nullable=False),
        sa.Column("gini_end", sa.Float(), nullable=False),
        sa.Column("gini_change", sa.Float(), nullable=False),
        sa.Column("total_balance_start", sa.Float(), nullable=False),
        sa.Column("total_balance_end", sa.Float(), nullable=False),
        sa.Column("net_flow_total", sa.Float(), nullable=False),
        sa.Column("avg_whale_activity_index", sa.Float(), nullable=False),
        sa.Column("total_new_entries", sa.Integer(), nullable=False),
        sa.Column("total_dropouts", sa.Integer(), nullable=False),
        sa.Column("avg_rank_volatility", sa.Float(), nullable=False),
        sa.Column("snapshot_count", sa.Integer(), nullable=False),
        sa.Column("top_accumulator_address", sa.String(64), nullable=True),
        sa.Column("top_accumulator_change", sa.Float(), nullable=True),
        sa.Column("top_distributor_address", sa.String(64), nullable=True),
        sa.Column("top_distributor_change", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain", "week_start", name="uq_weekly_summaries_chain_week"),
    )

    op.create_table(
        "wallet_correlations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain", sa.String(32), nullable=False),
        sa.Column("address_a", sa.String(64), nullable=False),
        sa.Column("address_b", sa.String(64), nullable=False),
        sa.Column("correlation", sa.Float(), nullable=False),
        sa.Column("data_points", sa.Integer(), nullable=False),
        sa.Column("period", sa.String(16), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "chain", "address_a", "address_b", "period", name="uq_wallet_correlations_pair_period"
        ),
    )
    op.create_index(
        "idx_wallet_correlations_chain_period", "wallet_correlations", ["chain", "period"]
    )


def downgrade() -> None:
    op.drop_index("idx_wallet_correlations_chain_period", table_name="wallet_correlations")
    op.drop_table("wallet_correlations")

    op.drop_table("weekly_summaries")
    op.drop_table("daily_summaries")

    op.drop_index("idx_concentration_metrics_chain_date", table_name="concentration_metrics")
    op.drop_table("concentration_metrics")

    op.drop_index("idx_snapshot_entries_snapshot_rank", table_name="snapshot_entries")
    op.drop_index("idx_snapshot_entries_address", table_name="snapshot_entries")
    op.drop_table("snapshot_entries")

    op.drop_index("idx_snapshots_chain_id", table_name="snapshots")
    op.drop_table("snapshots")
