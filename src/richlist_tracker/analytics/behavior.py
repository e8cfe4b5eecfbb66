"""Per-address behavioural statistics over windows of observations."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from richlist_tracker.analytics.models import BalanceTrend

MIN_CORRELATION_POINTS = 5


@dataclass(frozen=True)
class TrendConfig:
    """Slope thresholds (percent of mean balance per observation)."""

    slope_pct: float = 0.05
    erratic_slope_pct: float = 0.1
    erratic_max_r_squared: float = 0.3


def next_streak(delta: float | None, previous_streak: int | None) -> int:
    """Advance a directional streak by one observation.

    A delta in the same direction as the previous streak extends it, a flip
    restarts it at +/-1, and a zero or unknown delta resets it to 0.
    """
    if delta is None or delta == 0:
        return 0
    direction = 1 if delta > 0 else -1
    if previous_streak is None or previous_streak == 0:
        return direction
    previous_direction = 1 if previous_streak > 0 else -1
    if direction == previous_direction:
        return previous_streak + direction
    return direction


def compute_rank_volatility(ranks: Sequence[int]) -> float:
    """Population standard deviation of rank positions, rounded to 2 decimals."""
    if len(ranks) < 2:
        return 0.0
    return round(float(np.std(np.asarray(ranks, dtype=float))), 2)


def compute_balance_trend(
    balances: Sequence[float],
    config: TrendConfig | None = None,
) -> BalanceTrend:
    """Classify a balance window by its least-squares slope.

    Fewer than three points, or a zero mean, is always ``HOLDING``. A steep
    slope with a poor fit (low R^2) is ``ERRATIC``.
    """
    cfg = config or TrendConfig()
    n = len(balances)
    if n < 3:
        return BalanceTrend.HOLDING

    y = np.asarray(balances, dtype=float)
    y_mean = float(y.mean())
    if y_mean == 0:
        return BalanceTrend.HOLDING

    x_dev = np.arange(n, dtype=float) - (n - 1) / 2
    y_dev = y - y_mean
    sum_xx = float(np.dot(x_dev, x_dev))
    slope = float(np.dot(x_dev, y_dev)) / sum_xx if sum_xx else 0.0

    predicted = y_mean + slope * x_dev
    ss_res = float(np.square(y - predicted).sum())
    ss_tot = float(np.square(y_dev).sum())
    r_squared = 1.0 - ss_res / ss_tot if ss_tot else 0.0

    slope_pct = slope / y_mean * 100.0

    if r_squared < cfg.erratic_max_r_squared and abs(slope_pct) > cfg.erratic_slope_pct:
        return BalanceTrend.ERRATIC
    if slope_pct > cfg.slope_pct:
        return BalanceTrend.ACCUMULATING
    if slope_pct < -cfg.slope_pct:
        return BalanceTrend.DISTRIBUTING
    return BalanceTrend.HOLDING


def compute_pearson_correlation(
    series_a: Sequence[float],
    series_b: Sequence[float],
) -> float | None:
    """Pearson correlation of two series truncated to their common length.

    Returns None with fewer than five paired points or when either series
    is constant; otherwise a value in [-1, 1] rounded to 4 decimals.
    """
    n = min(len(series_a), len(series_b))
    if n < MIN_CORRELATION_POINTS:
        return None

    a = np.asarray(series_a[:n], dtype=float)
    b = np.asarray(series_b[:n], dtype=float)
    dev_a = a - a.mean()
    dev_b = b - b.mean()

    denominator = float(np.sqrt(np.dot(dev_a, dev_a) * np.dot(dev_b, dev_b)))
    if denominator == 0:
        return None
    r = float(np.dot(dev_a, dev_b)) / denominator
    return round(max(-1.0, min(1.0, r)), 4)
