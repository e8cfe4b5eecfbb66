"""Data models for the ingestor module."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RankedHolder:
    """One row of a chain's ranked holder list.

    Attributes:
        address: Opaque, stable holder identifier.
        balance: Holder balance in whole token units.
        percentage: Share of the aggregate supply reported by the source.
    """

    address: str
    balance: float
    percentage: float = 0.0
