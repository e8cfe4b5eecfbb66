"""Appearance-history patterns: dormant re-entries and ghost wallets.

The store hands over each address's chronological appearances; everything
here is computed in memory.
"""

from __future__ import annotations

import math
from collections.abc import Collection, Mapping, Sequence

from richlist_tracker.analytics.models import Appearance, DormancyInfo, GhostWallet

DEFAULT_DORMANCY_MIN_GAP = 144  # ~12 hours at a 5-minute cadence
DEFAULT_GHOST_MAX_APPEARANCES = 3
GHOST_BALANCE_SCALE = 10_000.0
REPORT_LIMIT = 50


def detect_dormancy(
    address: str,
    appearances: Sequence[Appearance],
    snapshot_ids: Sequence[int],
    *,
    min_gap: int = DEFAULT_DORMANCY_MIN_GAP,
) -> DormancyInfo:
    """Find the longest run of missed snapshots between first and last appearance.

    Args:
        address: Address the appearances belong to.
        appearances: The address's observations (any order).
        snapshot_ids: Every snapshot id of the chain (any order).
        min_gap: Missed snapshots needed to flag dormancy.
    """
    ordered = sorted(appearances, key=lambda a: a.snapshot_id)
    if not ordered:
        return DormancyInfo(
            address=address,
            dormant=False,
            gap_snapshots=0,
            appearances=0,
            first_seen=None,
            last_seen=None,
        )

    first_id = ordered[0].snapshot_id
    last_id = ordered[-1].snapshot_id
    seen = {a.snapshot_id for a in ordered}

    max_gap = 0
    gap_start: int | None = None
    gap_end: int | None = None
    run = 0
    run_start: int | None = None
    for sid in sorted(s for s in set(snapshot_ids) if first_id <= s <= last_id):
        if sid not in seen:
            if run == 0:
                run_start = sid
            run += 1
            continue
        if run > max_gap:
            max_gap = run
            gap_start = run_start
            gap_end = sid
        run = 0

    info = DormancyInfo(
        address=address,
        dormant=False,
        gap_snapshots=max_gap,
        appearances=len(ordered),
        first_seen=ordered[0].date,
        last_seen=ordered[-1].date,
    )
    if max_gap < min_gap or gap_start is None or gap_end is None:
        return info

    before = [a for a in ordered if a.snapshot_id < gap_start]
    after = [a for a in ordered if a.snapshot_id >= gap_end]
    last_seen_date = before[-1].date
    re_entry_date = after[0].date
    gap_days = math.ceil((re_entry_date - last_seen_date).total_seconds() / 86_400)
    return DormancyInfo(
        address=address,
        dormant=True,
        gap_snapshots=max_gap,
        appearances=len(ordered),
        first_seen=info.first_seen,
        last_seen=info.last_seen,
        last_seen_date=last_seen_date,
        re_entry_date=re_entry_date,
        gap_days=gap_days,
    )


def find_dormant_wallets(
    appearances_by_address: Mapping[str, Sequence[Appearance]],
    snapshot_ids: Sequence[int],
    *,
    min_gap: int = DEFAULT_DORMANCY_MIN_GAP,
    limit: int = REPORT_LIMIT,
) -> list[DormancyInfo]:
    """Dormant re-entries across a chain, longest gap first."""
    flagged = [
        info
        for address, appearances in appearances_by_address.items()
        if (info := detect_dormancy(address, appearances, snapshot_ids, min_gap=min_gap)).dormant
    ]
    flagged.sort(key=lambda i: (-i.gap_snapshots, i.address))
    return flagged[:limit]


def ghost_score(peak_balance: float, total_appearances: int, max_appearances: int) -> float:
    """Larger balances seen in fewer appearances score higher."""
    return round(peak_balance / GHOST_BALANCE_SCALE * (max_appearances + 1 - total_appearances), 2)


def find_ghost_wallets(
    appearances_by_address: Mapping[str, Sequence[Appearance]],
    *,
    latest_snapshot_id: int,
    latest_addresses: Collection[str],
    max_appearances: int = DEFAULT_GHOST_MAX_APPEARANCES,
    limit: int = REPORT_LIMIT,
) -> list[GhostWallet]:
    """Short-stint addresses absent from the latest snapshot, highest score first."""
    latest = set(latest_addresses)
    ghosts: list[GhostWallet] = []
    for address, appearances in appearances_by_address.items():
        total = len(appearances)
        if total == 0 or total > max_appearances or address in latest:
            continue
        ordered = sorted(appearances, key=lambda a: a.snapshot_id)
        if ordered[-1].snapshot_id >= latest_snapshot_id:
            continue
        balances = [a.balance for a in ordered]
        ranks = [a.rank for a in ordered]
        peak = max(balances)
        ghosts.append(
            GhostWallet(
                address=address,
                total_appearances=total,
                first_seen=ordered[0].date,
                last_seen=ordered[-1].date,
                first_snapshot_id=ordered[0].snapshot_id,
                last_snapshot_id=ordered[-1].snapshot_id,
                avg_balance=sum(balances) / total,
                peak_balance=peak,
                best_rank=min(ranks),
                worst_rank=max(ranks),
                ghost_score=ghost_score(peak, total, max_appearances),
            )
        )
    ghosts.sort(key=lambda g: (-g.ghost_score, g.address))
    return ghosts[:limit]
