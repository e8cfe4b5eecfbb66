"""Per-chain failure counting and exponential cooldown.

State is an immutable value: the controller swaps in the result of
``record_failure`` after a failed attempt and a fresh state after a success.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class BackoffPolicy:
    """Threshold-triggered exponential backoff.

    Once ``failure_threshold`` consecutive failures are reached the cooldown
    is ``base_minutes``, doubling every ``step_failures`` further failures,
    capped at ``max_minutes``.
    """

    failure_threshold: int = 3
    base_minutes: float = 15
    max_minutes: float = 120
    step_failures: int = 3

    def cooldown_for(self, consecutive_failures: int) -> timedelta | None:
        if consecutive_failures < self.failure_threshold:
            return None
        doublings = (consecutive_failures - self.failure_threshold) // max(self.step_failures, 1)
        minutes = min(self.base_minutes * 2**doublings, self.max_minutes)
        return timedelta(minutes=minutes)


@dataclass(frozen=True)
class ChainBackoffState:
    """Consecutive failures and active cooldown deadline for one chain."""

    consecutive_failures: int = 0
    cooldown_until: datetime | None = None


def is_cooling_down(state: ChainBackoffState, now: datetime) -> bool:
    return state.cooldown_until is not None and now < state.cooldown_until


def record_failure(
    state: ChainBackoffState,
    now: datetime,
    policy: BackoffPolicy,
) -> ChainBackoffState:
    """Count one more failure and set the cooldown once the threshold is hit."""
    failures = state.consecutive_failures + 1
    cooldown = policy.cooldown_for(failures)
    return ChainBackoffState(
        consecutive_failures=failures,
        cooldown_until=now + cooldown if cooldown is not None else state.cooldown_until,
    )
