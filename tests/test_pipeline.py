"""Tests for the main pipeline orchestrator."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from richlist_tracker.config import Settings
from richlist_tracker.ingestor.models import RankedHolder
from richlist_tracker.pipeline import (
    Pipeline,
    PipelineState,
    build_analyzer_config,
    build_backoff_policy,
    seconds_until_next_slot,
    seconds_until_weekly_run,
)
from richlist_tracker.scheduler.controller import AttemptOutcome

NOW = datetime(2026, 10, 18, 12, 3, tzinfo=UTC)


@pytest.fixture
def mock_settings():
    """Create mock settings for testing."""
    database = MagicMock()
    database.url = "sqlite+aiosqlite:///:memory:"

    chain = MagicMock()
    chain.chains = ("mainchain",)
    chain.source_urls = {"mainchain": "https://richlist.example/api"}
    chain.offset_for.return_value = 0

    fetch = MagicMock()
    fetch.timeout_seconds = 1.0
    fetch.max_attempts = 1
    fetch.retry_delay_seconds = 0.0

    scheduler = MagicMock()
    scheduler.slot_minutes = 5
    scheduler.failure_threshold = 3
    scheduler.backoff_base_minutes = 15.0
    scheduler.backoff_max_minutes = 120.0
    scheduler.backoff_step_failures = 3

    analytics = MagicMock()
    analytics.history_window = 30
    analytics.volatility_window = 30
    analytics.trend_window = 15
    analytics.trend_slope_pct = 0.05
    analytics.erratic_slope_pct = 0.1
    analytics.erratic_max_r_squared = 0.3
    analytics.dormancy_min_gap = 144
    analytics.ghost_max_appearances = 3
    analytics.correlation_top_n = 20
    analytics.correlation_window = 288
    analytics.correlation_period = "24h"
    analytics.correlation_interval_seconds = 3600

    settings = MagicMock(spec=Settings)
    settings.database = database
    settings.chain = chain
    settings.fetch = fetch
    settings.scheduler = scheduler
    settings.analytics = analytics
    return settings


class StaticSource:
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def fetch_ranked_list(self, chain: str) -> list[RankedHolder]:
        self.calls.append(chain)
        return [RankedHolder(address="0xaaa", balance=100.0), RankedHolder(address="0xbbb", balance=40.0)]


@pytest.fixture
def source() -> StaticSource:
    return StaticSource()


@pytest.fixture
def pipeline(mock_settings, memory_store, source) -> Pipeline:
    return Pipeline(mock_settings, store=memory_store, source=source, clock=lambda: NOW)


async def wait_for_snapshots(store, count: int) -> None:
    for _ in range(200):
        if len(store.snapshots) >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"expected {count} snapshots, found {len(store.snapshots)}")


class TestSlotHelpers:
    def test_next_slot(self) -> None:
        assert seconds_until_next_slot(NOW, 5) == pytest.approx(120.0)

    def test_next_slot_with_offset(self) -> None:
        assert seconds_until_next_slot(NOW, 5, 30) == pytest.approx(150.0)
        assert seconds_until_next_slot(datetime(2026, 10, 18, 12, 5, 10, tzinfo=UTC), 5, 30) == pytest.approx(20.0)

    def test_on_boundary_waits_full_slot(self) -> None:
        assert seconds_until_next_slot(datetime(2026, 10, 18, 12, 5, tzinfo=UTC), 5) == pytest.approx(300.0)

    def test_weekly_run(self) -> None:
        # 2026-10-18 is a Sunday
        assert seconds_until_weekly_run(NOW) == pytest.approx(11 * 3600 + 56 * 60)
        assert seconds_until_weekly_run(datetime(2026, 10, 18, 23, 59, 30, tzinfo=UTC)) == pytest.approx(
            7 * 86400 - 30
        )
        assert seconds_until_weekly_run(datetime(2026, 10, 19, 0, 0, tzinfo=UTC)) == pytest.approx(
            6 * 86400 + 23 * 3600 + 59 * 60
        )


class TestBuilders:
    def test_analyzer_config_from_settings(self, mock_settings) -> None:
        mock_settings.analytics.trend_window = 9
        config = build_analyzer_config(mock_settings)

        assert config.trend_window == 9
        assert config.trend.erratic_max_r_squared == 0.3

    def test_backoff_policy_from_settings(self, mock_settings) -> None:
        mock_settings.scheduler.failure_threshold = 5
        assert build_backoff_policy(mock_settings).failure_threshold == 5


class TestPipelineState:
    """Tests for pipeline state management."""

    def test_initial_state_is_stopped(self, pipeline: Pipeline) -> None:
        """Pipeline should start in stopped state."""
        assert pipeline.state == PipelineState.STOPPED
        assert pipeline.is_running is False
        assert pipeline.controller is None

    @pytest.mark.asyncio
    async def test_start_and_stop(self, pipeline: Pipeline) -> None:
        await pipeline.start()
        assert pipeline.state == PipelineState.RUNNING
        assert pipeline.is_running
        assert pipeline.stats.started_at is not None

        await pipeline.stop()
        assert pipeline.state == PipelineState.STOPPED
        assert pipeline.controller is None

    @pytest.mark.asyncio
    async def test_start_twice_raises(self, pipeline: Pipeline) -> None:
        await pipeline.start()
        try:
            with pytest.raises(RuntimeError):
                await pipeline.start()
        finally:
            await pipeline.stop()

    @pytest.mark.asyncio
    async def test_stop_when_stopped_is_noop(self, pipeline: Pipeline) -> None:
        await pipeline.stop()
        assert pipeline.state == PipelineState.STOPPED

    @pytest.mark.asyncio
    async def test_failed_start_sets_error_state(self, mock_settings, memory_store) -> None:
        mock_settings.validate_requirements.side_effect = ValueError("No RICHLIST_SOURCE_URLS entry")
        pipeline = Pipeline(mock_settings, store=memory_store, clock=lambda: NOW)

        with pytest.raises(ValueError):
            await pipeline.start()

        assert pipeline.state == PipelineState.ERROR
        assert pipeline.stats.last_error == "No RICHLIST_SOURCE_URLS entry"

    @pytest.mark.asyncio
    async def test_loop_helpers_require_started_pipeline(self, pipeline: Pipeline) -> None:
        with pytest.raises(RuntimeError, match="Stop event"):
            await pipeline._wait_or_stop(0)
        with pytest.raises(RuntimeError, match="Snapshot controller"):
            await pipeline._scheduled_attempt("mainchain")

    @pytest.mark.asyncio
    async def test_context_manager(self, pipeline: Pipeline) -> None:
        async with pipeline as running:
            assert running.is_running
        assert pipeline.state == PipelineState.STOPPED


class TestPipelineSnapshots:
    @pytest.mark.asyncio
    async def test_initial_snapshot_when_store_empty(self, pipeline: Pipeline, memory_store, source) -> None:
        async with pipeline:
            await wait_for_snapshots(memory_store, 1)

        assert source.calls == ["mainchain"]
        assert memory_store.snapshots[0].time_slot == "12:00"
        assert pipeline.stats.snapshots_created == 1

    @pytest.mark.asyncio
    async def test_manual_snapshot(self, pipeline: Pipeline, memory_store) -> None:
        async with pipeline:
            await wait_for_snapshots(memory_store, 1)
            attempt = await pipeline.trigger_manual_snapshot("mainchain")

        assert attempt.outcome is AttemptOutcome.CREATED
        assert attempt.snapshot.time_slot == "12:03"
        assert pipeline.stats.snapshots_created == 2

    @pytest.mark.asyncio
    async def test_manual_snapshot_requires_running_pipeline(self, pipeline: Pipeline) -> None:
        with pytest.raises(RuntimeError):
            await pipeline.trigger_manual_snapshot("mainchain")
