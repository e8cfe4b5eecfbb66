"""Pairwise wallet correlation over snapshot-aligned balance changes."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from itertools import combinations

from richlist_tracker.analytics.behavior import compute_pearson_correlation
from richlist_tracker.analytics.models import WalletCorrelation


def compute_wallet_correlations(
    changes_by_address: Mapping[str, Mapping[int, float]],
    addresses: Sequence[str],
) -> list[WalletCorrelation]:
    """Correlate every pair of ``addresses``.

    Args:
        changes_by_address: Per address, balance change keyed by snapshot id.
        addresses: Addresses to pair up, in report order.

    Returns:
        One record per pair with a defined correlation, strongest first.
    """
    results: list[WalletCorrelation] = []
    for address_a, address_b in combinations(addresses, 2):
        changes_a = changes_by_address.get(address_a, {})
        changes_b = changes_by_address.get(address_b, {})
        shared = sorted(changes_a.keys() & changes_b.keys())
        correlation = compute_pearson_correlation(
            [changes_a[sid] for sid in shared],
            [changes_b[sid] for sid in shared],
        )
        if correlation is None:
            continue
        first, second = sorted((address_a, address_b))
        results.append(
            WalletCorrelation(
                address_a=first,
                address_b=second,
                correlation=correlation,
                data_points=len(shared),
            )
        )
    results.sort(key=lambda c: (-c.correlation, c.address_a, c.address_b))
    return results
