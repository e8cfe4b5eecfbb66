"""Main pipeline orchestrator for the Richlist Tracker.

This module provides the Pipeline class that wires together the fetch
source, snapshot store, snapshot controller and reporting service, and
drives their periodic background tasks.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from richlist_tracker.analytics.behavior import TrendConfig
from richlist_tracker.analyzer import AnalyzerConfig
from richlist_tracker.config import Settings, get_settings
from richlist_tracker.ingestor.fetcher import FetchSource, RetryingFetchSource
from richlist_tracker.ingestor.richlist_client import HttpRichListSource
from richlist_tracker.reporting import ReportingService
from richlist_tracker.scheduler.backfill import BackfillRunner
from richlist_tracker.scheduler.backoff import BackoffPolicy
from richlist_tracker.scheduler.controller import (
    AttemptOutcome,
    SnapshotAttempt,
    SnapshotController,
    TriggerKind,
)
from richlist_tracker.storage.database import DatabaseManager
from richlist_tracker.storage.store import DatabaseSnapshotStore, SnapshotStore

logger = logging.getLogger(__name__)

WEEKLY_SUMMARY_WEEKDAY = 6  # Sunday
WEEKLY_SUMMARY_TIME = (23, 59)


def seconds_until_next_slot(now: datetime, slot_minutes: int, offset_seconds: int = 0) -> float:
    """Seconds from ``now`` to the next slot boundary shifted by ``offset_seconds``."""
    slot = slot_minutes * 60
    epoch = now.timestamp()
    target = epoch - (epoch % slot) + offset_seconds % slot
    if target <= epoch:
        target += slot
    return target - epoch


def seconds_until_weekly_run(now: datetime) -> float:
    """Seconds from ``now`` to the next Sunday 23:59 UTC."""
    now = now.astimezone(UTC) if now.tzinfo is not None else now.replace(tzinfo=UTC)
    hour, minute = WEEKLY_SUMMARY_TIME
    days_ahead = (WEEKLY_SUMMARY_WEEKDAY - now.weekday()) % 7
    target = (now + timedelta(days=days_ahead)).replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=7)
    return (target - now).total_seconds()


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    snapshots_created: int = 0
    attempts_existing: int = 0
    attempts_skipped: int = 0
    attempts_failed: int = 0
    weekly_summaries: int = 0
    correlation_pairs: int = 0
    errors: int = 0
    last_snapshot_at: datetime | None = None
    last_error: str | None = None


def build_analyzer_config(settings: Settings) -> AnalyzerConfig:
    analytics = settings.analytics
    return AnalyzerConfig(
        volatility_window=analytics.volatility_window,
        trend_window=analytics.trend_window,
        trend=TrendConfig(
            slope_pct=analytics.trend_slope_pct,
            erratic_slope_pct=analytics.erratic_slope_pct,
            erratic_max_r_squared=analytics.erratic_max_r_squared,
        ),
    )


def build_backoff_policy(settings: Settings) -> BackoffPolicy:
    scheduler = settings.scheduler
    return BackoffPolicy(
        failure_threshold=scheduler.failure_threshold,
        base_minutes=scheduler.backoff_base_minutes,
        max_minutes=scheduler.backoff_max_minutes,
        step_failures=scheduler.backoff_step_failures,
    )


def build_reporting_service(settings: Settings, store: SnapshotStore) -> ReportingService:
    analytics = settings.analytics
    return ReportingService(
        store,
        dormancy_min_gap=analytics.dormancy_min_gap,
        ghost_max_appearances=analytics.ghost_max_appearances,
        correlation_top_n=analytics.correlation_top_n,
        correlation_window=analytics.correlation_window,
        correlation_period=analytics.correlation_period,
    )


def build_backfill_runner(settings: Settings, store: SnapshotStore) -> BackfillRunner:
    return BackfillRunner(
        store,
        analyzer_config=build_analyzer_config(settings),
        history_window=settings.analytics.history_window,
    )


class Pipeline:
    """Main pipeline orchestrator for the Richlist Tracker.

    Runs one snapshot task per chain, aligned to the slot grid plus the
    chain's offset, a weekly-summary task and a wallet-correlation task.
    All tasks stop on a shared stop event.

    Pipeline flow:
        Fetch Source → Analyzer → Snapshot Store → Statistics Engine → Snapshot Store

    Example:
        ```python
        from richlist_tracker.config import get_settings
        from richlist_tracker.pipeline import Pipeline

        settings = get_settings()
        pipeline = Pipeline(settings)

        await pipeline.start()
        # Pipeline runs until stop() is called
        await pipeline.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: SnapshotStore | None = None,
        source: FetchSource | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            store: Snapshot store; a database-backed one is created if omitted.
            source: Single-attempt fetch source; the HTTP source if omitted.
            clock: Returns the current UTC time.
        """
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(UTC))

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        # Components (initialized in start())
        self._injected_store = store
        self._injected_source = source
        self._db_manager: DatabaseManager | None = None
        self._http_source: HttpRichListSource | None = None
        self._store: SnapshotStore | None = None
        self._controller: SnapshotController | None = None
        self._reporting: ReportingService | None = None

        # Synchronization
        self._stop_event: asyncio.Event | None = None
        self._chain_tasks: dict[str, asyncio.Task[None]] = {}
        self._weekly_task: asyncio.Task[None] | None = None
        self._correlation_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    @property
    def controller(self) -> SnapshotController | None:
        return self._controller

    async def start(self) -> None:
        """Start the pipeline.

        Initializes all components and starts the periodic tasks.

        Raises:
            RuntimeError: If pipeline is already running.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting pipeline...")

        try:
            await self._initialize_components()
            self._start_background_tasks()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started for chains: %s", ", ".join(self._settings.chain.chains))
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully.

        Stops all background tasks and cleans up resources.
        """
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")

        if self._stop_event:
            self._stop_event.set()

        await self._stop_background_tasks()
        await self._cleanup()

        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    async def trigger_manual_snapshot(self, chain: str) -> SnapshotAttempt:
        """Take a snapshot now, bypassing any cooldown.

        Raises:
            RuntimeError: If the pipeline is not running.
            Exception: Whatever the attempt raised.
        """
        if self._controller is None:
            raise RuntimeError("Pipeline is not running")
        attempt = await self._controller.attempt_snapshot(chain, TriggerKind.MANUAL)
        self._record_attempt(attempt)
        return attempt

    async def _initialize_components(self) -> None:
        """Initialize all pipeline components."""
        settings = self._settings

        if self._injected_store is not None:
            self._store = self._injected_store
        else:
            logger.debug("Initializing database...")
            self._db_manager = DatabaseManager(settings.database.url)
            self._store = DatabaseSnapshotStore(self._db_manager)

        source = self._injected_source
        if source is None:
            settings.validate_requirements()
            logger.debug("Initializing ranked-list HTTP source...")
            self._http_source = HttpRichListSource(
                settings.chain.source_urls,
                timeout=settings.fetch.timeout_seconds,
            )
            source = self._http_source

        self._controller = SnapshotController(
            self._store,
            RetryingFetchSource(
                source,
                max_attempts=settings.fetch.max_attempts,
                retry_delay=settings.fetch.retry_delay_seconds,
                timeout=settings.fetch.timeout_seconds,
            ),
            policy=build_backoff_policy(settings),
            analyzer_config=build_analyzer_config(settings),
            history_window=settings.analytics.history_window,
            slot_minutes=settings.scheduler.slot_minutes,
            clock=self._clock,
        )
        self._reporting = build_reporting_service(settings, self._store)

    def _start_background_tasks(self) -> None:
        for chain in self._settings.chain.chains:
            logger.debug("Starting snapshot loop for %s...", chain)
            self._chain_tasks[chain] = asyncio.create_task(self._run_chain_loop(chain))

        logger.debug("Starting weekly summary loop...")
        self._weekly_task = asyncio.create_task(self._run_weekly_loop())

        logger.debug("Starting wallet correlation loop...")
        self._correlation_task = asyncio.create_task(self._run_correlation_loop())

    async def _wait_or_stop(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds. Returns True if stop was requested."""
        if self._stop_event is None:
            raise RuntimeError("Stop event must be initialized before waiting")
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    def _record_attempt(self, attempt: SnapshotAttempt) -> None:
        if attempt.outcome is AttemptOutcome.CREATED:
            self._stats.snapshots_created += 1
            self._stats.last_snapshot_at = self._clock()
        elif attempt.outcome is AttemptOutcome.EXISTING:
            self._stats.attempts_existing += 1
        elif attempt.outcome is AttemptOutcome.SKIPPED:
            self._stats.attempts_skipped += 1
        elif attempt.outcome is AttemptOutcome.FAILED:
            self._stats.attempts_failed += 1
            self._stats.last_error = attempt.error

    async def _scheduled_attempt(self, chain: str) -> None:
        if self._controller is None:
            raise RuntimeError("Snapshot controller must be initialized before scheduled attempts")
        try:
            attempt = await self._controller.attempt_snapshot(chain, TriggerKind.SCHEDULED)
            self._record_attempt(attempt)
        except Exception as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            logger.warning("Scheduled snapshot for %s raised: %s", chain, e)

    async def _run_chain_loop(self, chain: str) -> None:
        if not self._stop_event or not self._store:
            return

        try:
            if await self._store.count_snapshots(chain) == 0:
                logger.info("No snapshots for %s yet; taking an initial snapshot", chain)
                await self._scheduled_attempt(chain)
        except Exception as e:
            logger.warning("Initial snapshot check for %s failed: %s", chain, e)

        slot_minutes = self._settings.scheduler.slot_minutes
        offset = self._settings.chain.offset_for(chain)
        while not self._stop_event.is_set():
            try:
                delay = seconds_until_next_slot(self._clock(), slot_minutes, offset)
                if await self._wait_or_stop(delay):
                    break
                await self._scheduled_attempt(chain)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning("Snapshot loop error for %s: %s", chain, e)

    async def _run_weekly_loop(self) -> None:
        if not self._stop_event or not self._reporting:
            return

        while not self._stop_event.is_set():
            try:
                if await self._wait_or_stop(seconds_until_weekly_run(self._clock())):
                    break
                written = await self._reporting.run_weekly_summaries(
                    self._settings.chain.chains, self._clock()
                )
                self._stats.weekly_summaries += written
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning("Weekly summary loop error: %s", e)

    async def _run_correlation_loop(self) -> None:
        if not self._stop_event or not self._reporting:
            return

        interval = self._settings.analytics.correlation_interval_seconds
        while not self._stop_event.is_set():
            try:
                if await self._wait_or_stop(interval):
                    break
                self._stats.correlation_pairs += await self._reporting.run_correlations(
                    self._settings.chain.chains
                )
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning("Wallet correlation loop error: %s", e)

    async def _stop_background_tasks(self) -> None:
        """Cancel and await every background task."""
        tasks: list[asyncio.Task[None]] = list(self._chain_tasks.values())
        if self._weekly_task:
            tasks.append(self._weekly_task)
        if self._correlation_task:
            tasks.append(self._correlation_task)

        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._chain_tasks.clear()
        self._weekly_task = None
        self._correlation_task = None

    async def _cleanup(self) -> None:
        """Clean up resources."""
        if self._http_source:
            await self._http_source.close()
            self._http_source = None

        if self._db_manager:
            await self._db_manager.dispose_async()
            self._db_manager = None

        self._controller = None
        self._reporting = None
        self._store = None
        logger.debug("Resources cleaned up")

    async def run(self) -> None:
        """Start the pipeline and run until interrupted.

        This is a convenience method that starts the pipeline and
        blocks until a stop signal is received.
        """
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> Pipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
