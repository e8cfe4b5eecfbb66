"""Command-line entrypoint.

Usage:
    python -m richlist_tracker run
    python -m richlist_tracker snapshot --chain mainchain
    python -m richlist_tracker backfill
    python -m richlist_tracker weekly-summary
    python -m richlist_tracker correlations
    python -m richlist_tracker dormant --chain mainchain
    python -m richlist_tracker ghosts --chain mainchain --max-appearances 3
    python -m richlist_tracker init-db
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Sequence

from richlist_tracker.config import Settings, get_settings
from richlist_tracker.ingestor.fetcher import RetryingFetchSource
from richlist_tracker.ingestor.richlist_client import HttpRichListSource
from richlist_tracker.pipeline import (
    Pipeline,
    build_analyzer_config,
    build_backfill_runner,
    build_backoff_policy,
    build_reporting_service,
)
from richlist_tracker.scheduler.controller import SnapshotController, TriggerKind
from richlist_tracker.storage.database import DatabaseManager
from richlist_tracker.storage.store import DatabaseSnapshotStore

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def _open_store(settings: Settings) -> AsyncIterator[DatabaseSnapshotStore]:
    db = DatabaseManager(settings.database.url)
    try:
        yield DatabaseSnapshotStore(db)
    finally:
        await db.dispose_async()


def _chains(settings: Settings, chain: str | None) -> tuple[str, ...]:
    return (chain,) if chain else settings.chain.chains


async def _cmd_run(settings: Settings, args: argparse.Namespace) -> None:
    await Pipeline(settings).run()


async def _cmd_snapshot(settings: Settings, args: argparse.Namespace) -> None:
    settings.validate_requirements()
    http_source = HttpRichListSource(settings.chain.source_urls, timeout=settings.fetch.timeout_seconds)
    try:
        async with _open_store(settings) as store:
            controller = SnapshotController(
                store,
                RetryingFetchSource(
                    http_source,
                    max_attempts=settings.fetch.max_attempts,
                    retry_delay=settings.fetch.retry_delay_seconds,
                    timeout=settings.fetch.timeout_seconds,
                ),
                policy=build_backoff_policy(settings),
                analyzer_config=build_analyzer_config(settings),
                history_window=settings.analytics.history_window,
                slot_minutes=settings.scheduler.slot_minutes,
            )
            for chain in _chains(settings, args.chain):
                attempt = await controller.attempt_snapshot(chain, TriggerKind.MANUAL)
                snapshot = attempt.snapshot
                print(
                    f"{chain}: {attempt.outcome.value} "
                    f"snapshot={snapshot.id if snapshot else '-'} "
                    f"slot={f'{snapshot.date} {snapshot.time_slot}' if snapshot else '-'}"
                )
    finally:
        await http_source.close()


async def _cmd_backfill(settings: Settings, args: argparse.Namespace) -> None:
    async with _open_store(settings) as store:
        results = await build_backfill_runner(settings, store).backfill_all(_chains(settings, args.chain))
    for chain, reports in results.items():
        for name, report in reports.items():
            print(
                f"{chain:<12} {name:<8} processed={report.processed} "
                f"skipped={report.skipped} errors={report.errors}"
            )


async def _cmd_weekly_summary(settings: Settings, args: argparse.Namespace) -> None:
    async with _open_store(settings) as store:
        reporting = build_reporting_service(settings, store)
        for chain in _chains(settings, args.chain):
            summary = await reporting.generate_weekly_summary(chain)
            if summary is None:
                print(f"{chain}: no metrics for the previous week")
                continue
            print(
                f"{chain}: {summary.week_start}..{summary.week_end} "
                f"snapshots={summary.snapshot_count} gini_change={summary.gini_change:+.4f} "
                f"net_flow={summary.net_flow_total:,.2f}"
            )


async def _cmd_correlations(settings: Settings, args: argparse.Namespace) -> None:
    async with _open_store(settings) as store:
        reporting = build_reporting_service(settings, store)
        for chain in _chains(settings, args.chain):
            correlations = await reporting.compute_correlations(chain)
            print(f"{chain}: {len(correlations)} pairs")
            for c in correlations[: args.limit]:
                print(f"  {c.correlation:+.4f}  n={c.data_points:<4d} {c.address_a}  {c.address_b}")


async def _cmd_dormant(settings: Settings, args: argparse.Namespace) -> None:
    async with _open_store(settings) as store:
        reporting = build_reporting_service(settings, store)
        for chain in _chains(settings, args.chain):
            wallets = await reporting.dormant_wallets(chain, limit=args.limit)
            print(f"{chain}: {len(wallets)} dormant re-entries")
            for w in wallets:
                print(
                    f"  gap={w.gap_snapshots:<6d} days={w.gap_days:<4d} "
                    f"{w.last_seen_date} -> {w.re_entry_date}  {w.address}"
                )


async def _cmd_ghosts(settings: Settings, args: argparse.Namespace) -> None:
    async with _open_store(settings) as store:
        reporting = build_reporting_service(settings, store)
        for chain in _chains(settings, args.chain):
            ghosts = await reporting.ghost_wallets(
                chain, max_appearances=args.max_appearances, limit=args.limit
            )
            print(f"{chain}: {len(ghosts)} ghost wallets")
            for g in ghosts:
                print(
                    f"  score={g.ghost_score:<10.2f} seen={g.total_appearances} "
                    f"peak={g.peak_balance:,.2f} best_rank={g.best_rank}  {g.address}"
                )


async def _cmd_init_db(settings: Settings, args: argparse.Namespace) -> None:
    db = DatabaseManager(settings.database.url)
    try:
        await db.init_schema_async()
    finally:
        await db.dispose_async()


COMMANDS = {
    "run": _cmd_run,
    "snapshot": _cmd_snapshot,
    "backfill": _cmd_backfill,
    "weekly-summary": _cmd_weekly_summary,
    "correlations": _cmd_correlations,
    "dormant": _cmd_dormant,
    "ghosts": _cmd_ghosts,
    "init-db": _cmd_init_db,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="richlist_tracker",
        description="Track top-holder snapshots and derive concentration analytics",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the scheduler until interrupted")
    sub.add_parser("init-db", help="Create all tables (for local SQLite runs)")

    for name, help_text in (
        ("snapshot", "Take a manual snapshot now"),
        ("backfill", "Backfill totals, entry analytics and metrics"),
        ("weekly-summary", "Summarize the previous Monday-Sunday week"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--chain", default=None, help="Limit to one chain")

    for name, help_text in (
        ("correlations", "Recompute wallet correlations"),
        ("dormant", "List dormant re-entries"),
        ("ghosts", "List ghost wallets"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--chain", default=None, help="Limit to one chain")
        cmd.add_argument("--limit", type=int, default=50)
        if name == "ghosts":
            cmd.add_argument("--max-appearances", type=int, default=None)

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.debug("Settings: %s", settings.redacted_summary())

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(COMMANDS[args.command](settings, args))


if __name__ == "__main__":
    main()
