"""Tests for the HTTP ranked-list source."""

from __future__ import annotations

import httpx
import pytest

from richlist_tracker.ingestor.fetcher import MalformedResponseError, TransientFetchError
from richlist_tracker.ingestor.models import RankedHolder
from richlist_tracker.ingestor.richlist_client import HttpRichListSource, parse_richlist

URLS = {"mainchain": "https://richlist.example/api/mainchain"}


def make_source(handler) -> HttpRichListSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpRichListSource(URLS, client=client)


class TestParseRichlist:
    def test_preserves_order(self) -> None:
        holders = parse_richlist(
            {
                "richlist": [
                    {"address": "0xbbb", "balance": "2500.5", "percentage": 12.5},
                    {"address": "0xaaa", "balance": 1000},
                ]
            }
        )
        assert holders == [
            RankedHolder(address="0xbbb", balance=2500.5, percentage=12.5),
            RankedHolder(address="0xaaa", balance=1000.0, percentage=0.0),
        ]

    def test_empty_list(self) -> None:
        assert parse_richlist({"richlist": []}) == []

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"holders": []},
            {"richlist": {"address": "0xaaa"}},
            {"richlist": ["0xaaa"]},
            {"richlist": [{"balance": 10}]},
            {"richlist": [{"address": "0xaaa", "balance": "lots"}]},
            {"richlist": [{"address": "0xaaa", "balance": None}]},
            {"richlist": [{"address": "0xaaa", "balance": True}]},
        ],
    )
    def test_rejects_malformed_payloads(self, payload) -> None:
        with pytest.raises(MalformedResponseError):
            parse_richlist(payload)


class TestHttpRichListSource:
    @pytest.mark.asyncio
    async def test_fetches_configured_url(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={"richlist": [{"address": "0xaaa", "balance": 5}]})

        source = make_source(handler)
        holders = await source.fetch_ranked_list("mainchain")

        assert seen == [URLS["mainchain"]]
        assert holders == [RankedHolder(address="0xaaa", balance=5.0)]

    @pytest.mark.asyncio
    async def test_non_success_status_is_transient(self) -> None:
        source = make_source(lambda request: httpx.Response(503))

        with pytest.raises(TransientFetchError, match="HTTP 503"):
            await source.fetch_ranked_list("mainchain")

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientFetchError):
            await make_source(handler).fetch_ranked_list("mainchain")

    @pytest.mark.asyncio
    async def test_invalid_json_is_malformed(self) -> None:
        source = make_source(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(MalformedResponseError):
            await source.fetch_ranked_list("mainchain")

    @pytest.mark.asyncio
    async def test_unknown_chain(self) -> None:
        source = make_source(lambda request: httpx.Response(200, json={"richlist": []}))

        with pytest.raises(ValueError, match="sidechain"):
            await source.fetch_ranked_list("sidechain")

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        source = HttpRichListSource(URLS, client=client)

        await source.close()

        assert not client.is_closed
        await client.aclose()
