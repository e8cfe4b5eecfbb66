"""Cross-snapshot analyzer - deltas, streaks, new entries and dropouts."""

from richlist_tracker.analyzer.models import (
    AnalysisResult,
    AnalyzedEntry,
    AnalyzerConfig,
    HistoryPoint,
    PriorEntry,
)
from richlist_tracker.analyzer.snapshot import analyze

__all__ = [
    "AnalysisResult",
    "AnalyzedEntry",
    "AnalyzerConfig",
    "HistoryPoint",
    "PriorEntry",
    "analyze",
]
