"""Statistics engine - concentration metrics and per-address behaviour."""

from richlist_tracker.analytics.behavior import (
    TrendConfig,
    compute_balance_trend,
    compute_pearson_correlation,
    compute_rank_volatility,
    next_streak,
)
from richlist_tracker.analytics.concentration import (
    StatisticsError,
    build_concentration_metrics,
    compute_gini_coefficient,
    compute_hhi,
    compute_net_flow,
    compute_whale_activity_index,
)
from richlist_tracker.analytics.correlation import compute_wallet_correlations
from richlist_tracker.analytics.models import (
    Appearance,
    BalanceTrend,
    ConcentrationSnapshot,
    DormancyInfo,
    GhostWallet,
    NetFlow,
    WalletCorrelation,
    WeeklySummary,
)
from richlist_tracker.analytics.wallets import (
    detect_dormancy,
    find_dormant_wallets,
    find_ghost_wallets,
    ghost_score,
)
from richlist_tracker.analytics.weekly import compute_movers, previous_week_bounds, summarize_week

__all__ = [
    "Appearance",
    "BalanceTrend",
    "ConcentrationSnapshot",
    "DormancyInfo",
    "GhostWallet",
    "NetFlow",
    "StatisticsError",
    "TrendConfig",
    "WalletCorrelation",
    "WeeklySummary",
    "build_concentration_metrics",
    "compute_balance_trend",
    "compute_gini_coefficient",
    "compute_hhi",
    "compute_movers",
    "compute_net_flow",
    "compute_pearson_correlation",
    "compute_rank_volatility",
    "compute_wallet_correlations",
    "compute_whale_activity_index",
    "detect_dormancy",
    "find_dormant_wallets",
    "find_ghost_wallets",
    "ghost_score",
    "next_streak",
    "previous_week_bounds",
    "summarize_week",
]
