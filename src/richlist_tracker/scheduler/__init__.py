"""Snapshot scheduling - attempt control, backoff and backfill."""

from richlist_tracker.scheduler.backfill import BackfillReport, BackfillRunner
from richlist_tracker.scheduler.backoff import (
    BackoffPolicy,
    ChainBackoffState,
    is_cooling_down,
    record_failure,
)
from richlist_tracker.scheduler.controller import (
    AttemptOutcome,
    SnapshotAttempt,
    SnapshotController,
    TriggerKind,
    manual_time_slot,
    scheduled_time_slot,
)

__all__ = [
    "AttemptOutcome",
    "BackfillReport",
    "BackfillRunner",
    "BackoffPolicy",
    "ChainBackoffState",
    "SnapshotAttempt",
    "SnapshotController",
    "TriggerKind",
    "is_cooling_down",
    "manual_time_slot",
    "record_failure",
    "scheduled_time_slot",
]
