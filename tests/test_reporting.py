"""Tests for weekly summaries, wallet correlations and wallet-pattern reports."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import pytest

from richlist_tracker.analytics.models import BalanceMove
from richlist_tracker.ingestor.models import RankedHolder
from richlist_tracker.reporting import ReportingService
from richlist_tracker.scheduler.controller import SnapshotController
from richlist_tracker.storage.repos import SnapshotDTO, SnapshotEntryDTO


class QueueSource:
    def __init__(self, batches: list[list[tuple[str, float]]]) -> None:
        self._batches = list(batches)

    async def fetch_ranked_list(self, chain: str) -> list[RankedHolder]:
        return [RankedHolder(address=a, balance=b) for a, b in self._batches.pop(0)]


async def capture(store, chain: str, times: list[datetime], batches: list[list[tuple[str, float]]]) -> None:
    now = [times[0]]
    controller = SnapshotController(store, QueueSource(batches), clock=lambda: now[0])
    for moment in times:
        now[0] = moment
        await controller.attempt_snapshot(chain)


async def seed_raw(store, chain: str, rows_per_snapshot: list[list[str]]) -> None:
    for i, addresses in enumerate(rows_per_snapshot):
        await store.insert_snapshot(
            SnapshotDTO(
                chain=chain,
                date=date(2026, 10, 1) + timedelta(days=i),
                time_slot="00:00",
                captured_at=datetime(2026, 10, 1, tzinfo=UTC) + timedelta(days=i),
            ),
            [
                SnapshotEntryDTO(snapshot_id=0, rank=rank, address=address, balance=100_000.0 / rank)
                for rank, address in enumerate(addresses, start=1)
            ],
        )


class TestWeeklySummary:
    @pytest.mark.asyncio
    async def test_summarizes_previous_week(self, memory_store) -> None:
        await capture(
            memory_store,
            "mainchain",
            [datetime(2026, 10, 13, 8, 0, tzinfo=UTC), datetime(2026, 10, 17, 8, 0, tzinfo=UTC)],
            [[("0xaaa", 100.0), ("0xbbb", 50.0)], [("0xaaa", 130.0), ("0xbbb", 40.0)]],
        )
        reporting = ReportingService(memory_store)

        summary = await reporting.generate_weekly_summary(
            "mainchain", datetime(2026, 10, 19, 0, 5, tzinfo=UTC)
        )

        assert summary is not None
        assert summary.week_start == date(2026, 10, 12)
        assert summary.week_end == date(2026, 10, 18)
        assert summary.snapshot_count == 2
        assert summary.total_balance_start == 150.0
        assert summary.total_balance_end == 170.0
        assert summary.net_flow_total == 20.0
        assert summary.top_accumulator == BalanceMove("0xaaa", 30.0)
        assert summary.top_distributor == BalanceMove("0xbbb", -10.0)
        assert memory_store.weekly[("mainchain", date(2026, 10, 12))] == summary

    @pytest.mark.asyncio
    async def test_empty_week_writes_nothing(self, memory_store) -> None:
        reporting = ReportingService(memory_store)

        assert await reporting.generate_weekly_summary("mainchain", datetime(2026, 10, 19, tzinfo=UTC)) is None
        assert memory_store.weekly == {}

    @pytest.mark.asyncio
    async def test_run_weekly_summaries_isolates_chain_failures(self, memory_store) -> None:
        async def broken(chain, start, end):
            raise RuntimeError("database is locked")

        memory_store.get_concentration_by_date_range = broken
        reporting = ReportingService(memory_store)

        assert await reporting.run_weekly_summaries(["mainchain", "sidechain"]) == 0


class TestCorrelations:
    @pytest.mark.asyncio
    async def test_correlates_top_holders(self, memory_store) -> None:
        a = [100.0, 110.0, 115.0, 130.0, 131.0, 150.0, 160.0]
        start = datetime(2026, 10, 18, 0, 0, tzinfo=UTC)
        await capture(
            memory_store,
            "mainchain",
            [start + timedelta(minutes=5 * i) for i in range(len(a))],
            [[("0xaaa", bal), ("0xbbb", bal - 50.0), ("0xccc", 10.0 - i)] for i, bal in enumerate(a)],
        )
        reporting = ReportingService(memory_store, correlation_top_n=3, correlation_period="1h")

        correlations = await reporting.compute_correlations("mainchain")

        assert len(correlations) == 1
        pair = correlations[0]
        assert (pair.address_a, pair.address_b) == ("0xaaa", "0xbbb")
        assert pair.correlation == 1.0
        assert pair.data_points == 6
        assert memory_store.correlations[("mainchain", "1h")] == correlations

    @pytest.mark.asyncio
    async def test_window_limits_snapshots(self, memory_store) -> None:
        a = [100.0, 110.0, 115.0, 130.0, 131.0, 150.0, 160.0]
        start = datetime(2026, 10, 18, 0, 0, tzinfo=UTC)
        await capture(
            memory_store,
            "mainchain",
            [start + timedelta(minutes=5 * i) for i in range(len(a))],
            [[("0xaaa", bal), ("0xbbb", bal - 50.0)] for bal in a],
        )
        reporting = ReportingService(memory_store, correlation_window=4)

        assert await reporting.compute_correlations("mainchain") == []

    @pytest.mark.asyncio
    async def test_no_snapshots(self, memory_store) -> None:
        assert await ReportingService(memory_store).compute_correlations("mainchain") == []


class TestWalletPatterns:
    @pytest.mark.asyncio
    async def test_dormant_wallets(self, memory_store) -> None:
        await seed_raw(
            memory_store,
            "mainchain",
            [["0xwhale", "0xsleepy"], ["0xwhale"], ["0xwhale"], ["0xwhale"], ["0xwhale", "0xsleepy"]],
        )
        reporting = ReportingService(memory_store, dormancy_min_gap=3)

        dormant = await reporting.dormant_wallets("mainchain")

        assert [d.address for d in dormant] == ["0xsleepy"]
        assert dormant[0].gap_snapshots == 3
        assert dormant[0].last_seen_date == date(2026, 10, 1)
        assert dormant[0].re_entry_date == date(2026, 10, 5)
        assert dormant[0].gap_days == 4

    @pytest.mark.asyncio
    async def test_ghost_wallets(self, memory_store) -> None:
        await seed_raw(
            memory_store,
            "mainchain",
            [["0xwhale"], ["0xwhale", "0xghost"], ["0xwhale"], ["0xwhale"]],
        )
        reporting = ReportingService(memory_store)

        ghosts = await reporting.ghost_wallets("mainchain")

        assert [g.address for g in ghosts] == ["0xghost"]
        # rank 2 balance is 50,000
        assert ghosts[0].ghost_score == pytest.approx(50_000.0 / 10_000 * 3)

    @pytest.mark.asyncio
    async def test_ghost_max_appearances_override(self, memory_store) -> None:
        await seed_raw(
            memory_store,
            "mainchain",
            [["0xwhale", "0xbrief"], ["0xwhale", "0xbrief"], ["0xwhale"]],
        )
        reporting = ReportingService(memory_store)

        assert await reporting.ghost_wallets("mainchain", max_appearances=1) == []
        assert len(await reporting.ghost_wallets("mainchain", max_appearances=2)) == 1

    @pytest.mark.asyncio
    async def test_zero_max_appearances_is_not_the_default(self, memory_store) -> None:
        await seed_raw(
            memory_store,
            "mainchain",
            [["0xwhale"], ["0xwhale", "0xghost"], ["0xwhale"], ["0xwhale"]],
        )
        reporting = ReportingService(memory_store)

        assert len(await reporting.ghost_wallets("mainchain")) == 1
        assert await reporting.ghost_wallets("mainchain", max_appearances=0) == []

    @pytest.mark.asyncio
    async def test_empty_chain(self, memory_store) -> None:
        assert await ReportingService(memory_store).ghost_wallets("mainchain") == []
        assert await ReportingService(memory_store).dormant_wallets("mainchain") == []
