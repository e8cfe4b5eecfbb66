"""HTTP ranked-list source backed by httpx."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from richlist_tracker.ingestor.fetcher import MalformedResponseError, TransientFetchError
from richlist_tracker.ingestor.models import RankedHolder

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 15.0


def _to_float(raw: Any, *, field: str, index: int) -> float:
    if isinstance(raw, bool) or raw is None:
        raise MalformedResponseError(f"richlist[{index}].{field} is missing or not numeric")
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise MalformedResponseError(f"richlist[{index}].{field} is not numeric: {raw!r}") from None


def parse_richlist(payload: Any) -> list[RankedHolder]:
    """Parse a ``{"richlist": [...]}`` payload, preserving source order.

    Raises:
        MalformedResponseError: If the payload does not match the expected shape.
    """
    if not isinstance(payload, dict):
        raise MalformedResponseError("Invalid response format: expected a JSON object")
    items = payload.get("richlist")
    if not isinstance(items, list):
        raise MalformedResponseError("Invalid response format: missing richlist array")

    holders: list[RankedHolder] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise MalformedResponseError(f"richlist[{index}] is not an object")
        address = item.get("address")
        if not isinstance(address, str) or not address:
            raise MalformedResponseError(f"richlist[{index}].address is missing")
        holders.append(
            RankedHolder(
                address=address,
                balance=_to_float(item.get("balance"), field="balance", index=index),
                percentage=_to_float(item.get("percentage", 0), field="percentage", index=index),
            )
        )
    return holders


class HttpRichListSource:
    """Fetches ranked holder lists from per-chain JSON endpoints.

    A single attempt only; wrap in ``RetryingFetchSource`` for retries.
    """

    def __init__(
        self,
        urls: Mapping[str, str],
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._urls = dict(urls)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def fetch_ranked_list(self, chain: str) -> list[RankedHolder]:
        try:
            url = self._urls[chain]
        except KeyError:
            raise ValueError(f"No ranked-list URL configured for chain {chain!r}") from None

        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            raise TransientFetchError(f"Timed out fetching {chain} ranked list") from e
        except httpx.TransportError as e:
            raise TransientFetchError(f"Network error fetching {chain} ranked list: {e}") from e

        if not response.is_success:
            raise TransientFetchError(f"HTTP {response.status_code}: {response.reason_phrase}")

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError("Response body is not valid JSON") from e

        holders = parse_richlist(payload)
        logger.debug("Parsed %d holders from %s", len(holders), url)
        return holders

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
