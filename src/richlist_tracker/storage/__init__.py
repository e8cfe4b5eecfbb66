"""Storage layer - Database schemas, repositories and the snapshot store."""

from richlist_tracker.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from richlist_tracker.storage.models import (
    Base,
    ConcentrationMetricsModel,
    DailySummaryModel,
    SnapshotEntryModel,
    SnapshotModel,
    WalletCorrelationModel,
    WeeklySummaryModel,
)
from richlist_tracker.storage.repos import (
    ConcentrationMetricsDTO,
    ConcentrationMetricsRepository,
    DailySummaryDTO,
    DailySummaryRepository,
    EntryAnalyticsUpdate,
    SnapshotDTO,
    SnapshotEntryDTO,
    SnapshotEntryRepository,
    SnapshotRepository,
    WalletCorrelationRepository,
    WeeklySummaryRepository,
)
from richlist_tracker.storage.store import (
    DatabaseSnapshotStore,
    SnapshotConflictError,
    SnapshotStore,
)

__all__ = [
    "Base",
    "ConcentrationMetricsDTO",
    "ConcentrationMetricsModel",
    "ConcentrationMetricsRepository",
    "DailySummaryDTO",
    "DailySummaryModel",
    "DailySummaryRepository",
    "DatabaseManager",
    "DatabaseSnapshotStore",
    "EntryAnalyticsUpdate",
    "SnapshotConflictError",
    "SnapshotDTO",
    "SnapshotEntryDTO",
    "SnapshotEntryModel",
    "SnapshotEntryRepository",
    "SnapshotModel",
    "SnapshotRepository",
    "SnapshotStore",
    "WalletCorrelationModel",
    "WalletCorrelationRepository",
    "WeeklySummaryModel",
    "WeeklySummaryRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
