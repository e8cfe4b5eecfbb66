"""Snapshot attempt orchestration with per-chain backoff.

The controller is the only stateful piece of the ingestion core. For one
chain an attempt runs strictly in sequence: fetch, read prior state,
analyze, persist snapshot and entries, compute and persist metrics.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import Enum

from richlist_tracker.analytics.concentration import build_concentration_metrics
from richlist_tracker.analyzer import (
    AnalysisResult,
    AnalyzedEntry,
    AnalyzerConfig,
    HistoryPoint,
    PriorEntry,
    analyze,
)
from richlist_tracker.ingestor.fetcher import FetchSource, MalformedResponseError
from richlist_tracker.scheduler.backoff import (
    BackoffPolicy,
    ChainBackoffState,
    is_cooling_down,
    record_failure,
)
from richlist_tracker.storage.repos import (
    ConcentrationMetricsDTO,
    DailySummaryDTO,
    SnapshotDTO,
    SnapshotEntryDTO,
)
from richlist_tracker.storage.store import SnapshotConflictError, SnapshotStore

logger = logging.getLogger(__name__)

DEFAULT_SLOT_MINUTES = 5
DEFAULT_HISTORY_WINDOW = 30


class TriggerKind(str, Enum):
    """Who asked for a snapshot."""

    SCHEDULED = "scheduled"
    MANUAL = "manual"


class AttemptOutcome(str, Enum):
    """Result of one snapshot attempt."""

    CREATED = "created"
    EXISTING = "existing"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class SnapshotAttempt:
    """What an attempt did and, where available, the snapshot it refers to."""

    chain: str
    trigger: TriggerKind
    outcome: AttemptOutcome
    snapshot: SnapshotDTO | None = None
    metrics: ConcentrationMetricsDTO | None = None
    error: str | None = None


def _as_utc(now: datetime) -> datetime:
    return now.astimezone(UTC) if now.tzinfo is not None else now


def scheduled_time_slot(now: datetime, slot_minutes: int = DEFAULT_SLOT_MINUTES) -> str:
    """UTC ``HH:MM`` floored to the slot size."""
    now = _as_utc(now)
    minute = now.minute - now.minute % slot_minutes
    return f"{now.hour:02d}:{minute:02d}"


def manual_time_slot(now: datetime) -> str:
    """UTC ``HH:MM`` of the exact minute."""
    now = _as_utc(now)
    return f"{now.hour:02d}:{now.minute:02d}"


def to_prior_entry(entry: SnapshotEntryDTO) -> PriorEntry:
    return PriorEntry(
        address=entry.address,
        rank=entry.rank,
        balance=entry.balance,
        rank_streak=entry.rank_streak,
        balance_streak=entry.balance_streak,
    )


def to_history_point(entry: SnapshotEntryDTO) -> HistoryPoint:
    return HistoryPoint(
        rank=entry.rank,
        balance=entry.balance,
        rank_streak=entry.rank_streak,
        balance_streak=entry.balance_streak,
    )


def to_entry_dto(entry: AnalyzedEntry, snapshot_id: int = 0) -> SnapshotEntryDTO:
    return SnapshotEntryDTO(
        snapshot_id=snapshot_id,
        rank=entry.rank,
        address=entry.address,
        balance=entry.balance,
        percentage=entry.percentage,
        prev_rank=entry.prev_rank,
        rank_change=entry.rank_change,
        balance_change=entry.balance_change,
        rank_streak=entry.rank_streak,
        balance_streak=entry.balance_streak,
        rank_volatility=entry.rank_volatility,
        balance_trend=entry.balance_trend.value if entry.balance_trend else None,
    )


class SnapshotController:
    """Decides per chain whether to snapshot now and runs the attempt.

    Scheduled failures are absorbed into the chain's backoff state; manual
    failures are re-raised unchanged after being counted.

    Example:
        >>> controller = SnapshotController(store, RetryingFetchSource(http_source))
        >>> attempt = await controller.attempt_snapshot("mainchain")
    """

    def __init__(
        self,
        store: SnapshotStore,
        source: FetchSource,
        *,
        policy: BackoffPolicy | None = None,
        analyzer_config: AnalyzerConfig | None = None,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        slot_minutes: int = DEFAULT_SLOT_MINUTES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._source = source
        self._policy = policy or BackoffPolicy()
        self._analyzer_config = analyzer_config or AnalyzerConfig()
        self._history_window = history_window
        self._slot_minutes = slot_minutes
        self._clock = clock or (lambda: datetime.now(UTC))
        self._states: dict[str, ChainBackoffState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def backoff_state(self, chain: str) -> ChainBackoffState:
        return self._states.get(chain, ChainBackoffState())

    async def attempt_snapshot(
        self,
        chain: str,
        trigger: TriggerKind = TriggerKind.SCHEDULED,
    ) -> SnapshotAttempt:
        """Run one snapshot attempt for ``chain``.

        Attempts for the same chain never overlap.

        Raises:
            Exception: Only for manual triggers, whatever the attempt raised.
        """
        lock = self._locks.setdefault(chain, asyncio.Lock())
        async with lock:
            now = self._clock()
            state = self.backoff_state(chain)
            if trigger is TriggerKind.SCHEDULED and is_cooling_down(state, now):
                logger.warning(
                    "Skipping scheduled snapshot for %s: backing off until %s after %d failures",
                    chain,
                    state.cooldown_until,
                    state.consecutive_failures,
                )
                return SnapshotAttempt(chain=chain, trigger=trigger, outcome=AttemptOutcome.SKIPPED)

            now_utc = _as_utc(now)
            snapshot_date = now_utc.date()
            if trigger is TriggerKind.SCHEDULED:
                time_slot = scheduled_time_slot(now_utc, self._slot_minutes)
            else:
                time_slot = manual_time_slot(now_utc)

            try:
                if trigger is TriggerKind.SCHEDULED:
                    existing = await self._store.get_snapshot_by_slot(chain, snapshot_date, time_slot)
                    if existing is not None:
                        logger.debug("Snapshot for %s %s %s already exists", chain, snapshot_date, time_slot)
                        return SnapshotAttempt(
                            chain=chain,
                            trigger=trigger,
                            outcome=AttemptOutcome.EXISTING,
                            snapshot=existing,
                        )
                attempt = await self._capture(chain, trigger, snapshot_date, time_slot, now_utc)
            except Exception as e:
                self._record_failure(chain, now, e)
                if trigger is TriggerKind.MANUAL:
                    raise
                return SnapshotAttempt(
                    chain=chain,
                    trigger=trigger,
                    outcome=AttemptOutcome.FAILED,
                    error=str(e),
                )

            self._record_success(chain)
            return attempt

    def _record_failure(self, chain: str, now: datetime, error: Exception) -> None:
        previous = self.backoff_state(chain)
        state = record_failure(previous, now, self._policy)
        self._states[chain] = state
        logger.warning(
            "Snapshot attempt for %s failed (%d consecutive): %s",
            chain,
            state.consecutive_failures,
            error,
        )
        if state.cooldown_until is not None and state.cooldown_until != previous.cooldown_until:
            logger.info("Backing off %s until %s", chain, state.cooldown_until)

    def _record_success(self, chain: str) -> None:
        previous = self._states.pop(chain, None)
        if previous is not None and previous.consecutive_failures:
            logger.info(
                "Snapshots for %s recovered after %d consecutive failures",
                chain,
                previous.consecutive_failures,
            )

    async def _capture(
        self,
        chain: str,
        trigger: TriggerKind,
        snapshot_date: date,
        time_slot: str,
        captured_at: datetime,
    ) -> SnapshotAttempt:
        holders = await self._source.fetch_ranked_list(chain)
        if not holders:
            raise MalformedResponseError(f"Empty ranked list for {chain}")

        previous = await self._store.get_latest_snapshot(chain)
        previous_entries: list[SnapshotEntryDTO] = []
        if previous is not None and previous.id is not None:
            previous_entries = await self._store.get_entries_by_snapshot_id(previous.id)
        history: dict[str, list[HistoryPoint]] | None
        try:
            history = await self._load_history(chain, [h.address for h in holders])
        except Exception as e:
            logger.warning("Address history unavailable for %s; analyzing without it: %s", chain, e)
            history = None

        result = analyze(
            holders,
            [to_prior_entry(e) for e in previous_entries],
            history,
            self._analyzer_config,
        )

        new_snapshot = SnapshotDTO(
            chain=chain,
            date=snapshot_date,
            time_slot=time_slot,
            captured_at=captured_at,
            total_balance=result.total_balance,
            entry_count=len(result.entries),
        )
        try:
            snapshot = await self._store.insert_snapshot(
                new_snapshot, [to_entry_dto(e) for e in result.entries]
            )
        except SnapshotConflictError:
            existing = await self._store.get_snapshot_by_slot(chain, snapshot_date, time_slot)
            if existing is None:
                raise
            logger.info(
                "Snapshot for %s %s %s was written by a concurrent attempt; reusing it",
                chain,
                snapshot_date,
                time_slot,
            )
            return SnapshotAttempt(
                chain=chain,
                trigger=trigger,
                outcome=AttemptOutcome.EXISTING,
                snapshot=existing,
            )

        if snapshot.id is None:
            raise RuntimeError(f"Store returned snapshot for {chain} without an id")
        metrics = await self._store_metrics(snapshot, snapshot.id, result)
        await self._store_daily_summary(snapshot, snapshot.id, result)
        logger.info(
            "Created snapshot %s for %s %s %s: %d entries, %d new, %d dropouts",
            snapshot.id,
            chain,
            snapshot.date,
            snapshot.time_slot,
            len(result.entries),
            result.new_entry_count,
            result.dropout_count,
        )
        return SnapshotAttempt(
            chain=chain,
            trigger=trigger,
            outcome=AttemptOutcome.CREATED,
            snapshot=snapshot,
            metrics=metrics,
        )

    async def _load_history(self, chain: str, addresses: Sequence[str]) -> dict[str, list[HistoryPoint]]:
        if self._history_window <= 0:
            return {}
        history: dict[str, list[HistoryPoint]] = {}
        for address in addresses:
            rows = await self._store.get_recent_address_entries(
                address, self._history_window, chain=chain
            )
            if rows:
                history[address] = [to_history_point(r) for r in rows]
        return history

    async def _store_metrics(
        self,
        snapshot: SnapshotDTO,
        snapshot_id: int,
        result: AnalysisResult,
    ) -> ConcentrationMetricsDTO | None:
        try:
            entries = await self._store.get_entries_by_snapshot_id(snapshot_id)
            metrics = build_concentration_metrics(
                entries,
                snapshot_id=snapshot_id,
                chain=snapshot.chain,
                snapshot_date=snapshot.date,
                time_slot=snapshot.time_slot,
                new_entry_count=result.new_entry_count,
                dropout_count=result.dropout_count,
            )
            return await self._store.insert_concentration_metrics(metrics)
        except Exception as e:
            logger.warning(
                "Concentration metrics unavailable for snapshot %s (%s): %s",
                snapshot_id,
                snapshot.chain,
                e,
            )
            return None

    async def _store_daily_summary(
        self, snapshot: SnapshotDTO, snapshot_id: int, result: AnalysisResult
    ) -> None:
        gainer = result.biggest_gainer
        loser = result.biggest_loser
        try:
            await self._store.upsert_daily_summary(
                DailySummaryDTO(
                    chain=snapshot.chain,
                    date=snapshot.date,
                    snapshot_id=snapshot_id,
                    new_entries=list(result.new_entries),
                    dropouts=list(result.dropouts),
                    biggest_gainer_address=gainer.address if gainer else None,
                    biggest_gainer_change=gainer.change if gainer else None,
                    biggest_loser_address=loser.address if loser else None,
                    biggest_loser_change=loser.change if loser else None,
                )
            )
        except Exception as e:
            logger.warning("Daily summary update failed for %s %s: %s", snapshot.chain, snapshot.date, e)
