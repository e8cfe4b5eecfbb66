"""Data ingestion layer - ranked holder lists from external sources."""

from richlist_tracker.ingestor.fetcher import (
    FetchError,
    FetchSource,
    MalformedResponseError,
    RetryError,
    RetryingFetchSource,
    TransientFetchError,
)
from richlist_tracker.ingestor.models import RankedHolder
from richlist_tracker.ingestor.richlist_client import HttpRichListSource, parse_richlist

__all__ = [
    "FetchError",
    "FetchSource",
    "HttpRichListSource",
    "MalformedResponseError",
    "RankedHolder",
    "RetryError",
    "RetryingFetchSource",
    "TransientFetchError",
    "parse_richlist",
]
