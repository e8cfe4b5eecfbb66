"""Tests for the per-chain backoff policy."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from richlist_tracker.scheduler.backoff import (
    BackoffPolicy,
    ChainBackoffState,
    is_cooling_down,
    record_failure,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


class TestBackoffPolicy:
    @pytest.mark.parametrize(
        ("failures", "minutes"),
        [(3, 15), (5, 15), (6, 30), (9, 60), (12, 120), (30, 120)],
    )
    def test_doubles_every_step_and_caps(self, failures: int, minutes: int) -> None:
        assert BackoffPolicy().cooldown_for(failures) == timedelta(minutes=minutes)

    def test_no_cooldown_below_threshold(self) -> None:
        policy = BackoffPolicy()
        assert policy.cooldown_for(0) is None
        assert policy.cooldown_for(2) is None

    def test_custom_policy(self) -> None:
        policy = BackoffPolicy(failure_threshold=1, base_minutes=0.5, max_minutes=2, step_failures=1)
        assert policy.cooldown_for(1) == timedelta(seconds=30)
        assert policy.cooldown_for(2) == timedelta(minutes=1)
        assert policy.cooldown_for(5) == timedelta(minutes=2)


class TestRecordFailure:
    def test_counts_until_threshold(self) -> None:
        policy = BackoffPolicy()
        state = ChainBackoffState()
        for _ in range(2):
            state = record_failure(state, NOW, policy)

        assert state.consecutive_failures == 2
        assert state.cooldown_until is None
        assert not is_cooling_down(state, NOW)

    def test_third_failure_sets_cooldown(self) -> None:
        state = ChainBackoffState(consecutive_failures=2)
        state = record_failure(state, NOW, BackoffPolicy())

        assert state.consecutive_failures == 3
        assert state.cooldown_until == NOW + timedelta(minutes=15)

    def test_returns_new_state(self) -> None:
        original = ChainBackoffState()
        record_failure(original, NOW, BackoffPolicy())
        assert original.consecutive_failures == 0


class TestIsCoolingDown:
    def test_window_boundaries(self) -> None:
        state = ChainBackoffState(consecutive_failures=3, cooldown_until=NOW + timedelta(minutes=15))

        assert is_cooling_down(state, NOW)
        assert is_cooling_down(state, NOW + timedelta(minutes=14, seconds=59))
        assert not is_cooling_down(state, NOW + timedelta(minutes=15))

    def test_fresh_state(self) -> None:
        assert not is_cooling_down(ChainBackoffState(), NOW)
