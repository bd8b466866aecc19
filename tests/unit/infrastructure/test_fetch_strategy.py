"""Tests for FetchStrategy (HTTP-only chain walking)."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from streamhop.domain.entities import (
    ChainDefinition,
    Deadline,
    ErrorKind,
    HopTrace,
    ProgressEvent,
)
from streamhop.infrastructure.chain.definitions import VIDSRC_XYZ_CHAIN
from streamhop.infrastructure.strategies.fetch import FetchStrategy


def _mock_chain(pages, **overrides: httpx.Response) -> dict[str, respx.Route]:
    responses = {
        "embed": httpx.Response(200, text=pages.embed_html),
        "relay": httpx.Response(200, text=pages.relay_html),
        "secondary": httpx.Response(200, text=pages.secondary_html),
        "manifest": httpx.Response(
            200,
            text=pages.manifest_body,
            headers={"content-type": "application/vnd.apple.mpegurl"},
        ),
    }
    responses.update(overrides)
    urls = {
        "embed": pages.embed_url,
        "relay": pages.relay_url,
        "secondary": pages.secondary_url,
        "manifest": pages.manifest_url,
    }
    return {
        key: respx.get(url).mock(return_value=responses[key]) for key, url in urls.items()
    }


def _chain_with_render_hop() -> ChainDefinition:
    hops = list(VIDSRC_XYZ_CHAIN.hops)
    hops[2] = replace(hops[2], requires_render=True)
    return replace(VIDSRC_XYZ_CHAIN, hops=tuple(hops))


class TestFetchSuccess:
    @pytest.mark.asyncio()
    @respx.mock
    async def test_walks_full_chain(self, http_client, pages) -> None:
        _mock_chain(pages)
        strategy = FetchStrategy(http_client=http_client, user_agent="UA/1.0")

        result = await strategy.resolve(pages.embed_url, VIDSRC_XYZ_CHAIN)

        assert result.success is True
        assert result.strategy_used == "fetch"
        assert result.stream_url == pages.manifest_url
        assert result.stream_type == "hls"
        assert [h.hop.name for h in result.hop_trace] == [
            "embed",
            "relay",
            "secondary_relay",
            "cdn",
        ]
        assert [h.matched_url for h in result.hop_trace] == [
            pages.relay_url,
            pages.secondary_url,
            pages.manifest_url,
            pages.manifest_url,
        ]
        assert result.headers == {
            "User-Agent": "UA/1.0",
            "Referer": "https://cloudnestra.com/",
            "Origin": "https://cloudnestra.com",
        }

    @pytest.mark.asyncio()
    @respx.mock
    async def test_referer_per_hop(self, http_client, pages) -> None:
        _mock_chain(pages)
        strategy = FetchStrategy(http_client=http_client)

        await strategy.resolve(pages.embed_url, VIDSRC_XYZ_CHAIN)

        sent = {str(c.request.url): c.request.headers for c in respx.calls}
        assert "referer" not in sent[pages.embed_url]
        assert sent[pages.relay_url]["referer"] == pages.embed_url
        assert sent[pages.secondary_url]["referer"] == pages.relay_url
        assert sent[pages.manifest_url]["referer"] == "https://cloudnestra.com/"

    @pytest.mark.asyncio()
    @respx.mock
    async def test_shared_trace_and_progress(self, http_client, pages) -> None:
        _mock_chain(pages)
        trace = HopTrace()
        progress = AsyncMock()
        strategy = FetchStrategy(http_client=http_client)

        await strategy.resolve(
            pages.embed_url, VIDSRC_XYZ_CHAIN, trace=trace, progress=progress
        )

        assert len(trace) == 4
        events: list[ProgressEvent] = [c.args[0] for c in progress.await_args_list]
        assert [e.phase for e in events] == ["fetch"] * 4
        percentages = [e.percentage for e in events]
        assert percentages == sorted(percentages)
        assert all(10 <= p <= 45 for p in percentages)


class TestFetchFailures:
    @pytest.mark.asyncio()
    @respx.mock
    async def test_render_hop_stops_walk(self, http_client, pages) -> None:
        routes = _mock_chain(pages)
        strategy = FetchStrategy(http_client=http_client)

        result = await strategy.resolve(pages.embed_url, _chain_with_render_hop())

        assert result.success is False
        assert result.error_kind is ErrorKind.RENDER_REQUIRED
        assert len(result.hop_trace) == 2
        assert not routes["secondary"].called

    @pytest.mark.asyncio()
    @respx.mock
    async def test_pattern_not_found(self, http_client, pages) -> None:
        _mock_chain(pages, embed=httpx.Response(200, text="<html><body>gone</body></html>"))
        strategy = FetchStrategy(http_client=http_client)

        result = await strategy.resolve(pages.embed_url, VIDSRC_XYZ_CHAIN)

        assert result.error_kind is ErrorKind.PATTERN_NOT_FOUND
        assert len(result.hop_trace) == 1
        failed = result.hop_trace[0]
        assert failed.matched_url is None
        assert failed.raw_content_size > 0
        assert failed.error is not None
        assert result.error is not None
        assert result.error.message.startswith("embed:")

    @pytest.mark.asyncio()
    @respx.mock
    async def test_upstream_status(self, http_client, pages) -> None:
        _mock_chain(pages, relay=httpx.Response(404, text="not found"))
        strategy = FetchStrategy(http_client=http_client)

        result = await strategy.resolve(pages.embed_url, VIDSRC_XYZ_CHAIN)

        assert result.error_kind is ErrorKind.UPSTREAM_HTTP_ERROR
        assert "HTTP 404" in result.error.message
        assert [h.hop.name for h in result.hop_trace] == ["embed", "relay"]

    @pytest.mark.asyncio()
    @respx.mock
    async def test_challenge_page_requires_render(self, http_client, pages) -> None:
        _mock_chain(pages, relay=httpx.Response(200, text=pages.challenge_html))
        strategy = FetchStrategy(http_client=http_client)

        result = await strategy.resolve(pages.embed_url, VIDSRC_XYZ_CHAIN)

        assert result.error_kind is ErrorKind.RENDER_REQUIRED
        assert result.hop_trace[-1].raw_content_size == len(pages.challenge_html)

    @pytest.mark.asyncio()
    @respx.mock
    async def test_connect_error(self, http_client, pages) -> None:
        respx.get(pages.embed_url).mock(side_effect=httpx.ConnectError("refused"))
        strategy = FetchStrategy(http_client=http_client)

        result = await strategy.resolve(pages.embed_url, VIDSRC_XYZ_CHAIN)

        assert result.error_kind is ErrorKind.UPSTREAM_HTTP_ERROR
        assert "ConnectError" in result.error.message

    @pytest.mark.asyncio()
    @respx.mock
    async def test_read_timeout(self, http_client, pages) -> None:
        respx.get(pages.embed_url).mock(side_effect=httpx.ReadTimeout("slow"))
        strategy = FetchStrategy(http_client=http_client)

        result = await strategy.resolve(pages.embed_url, VIDSRC_XYZ_CHAIN)

        assert result.error_kind is ErrorKind.TIMEOUT

    @pytest.mark.asyncio()
    @respx.mock
    async def test_exhausted_deadline(self, http_client, pages) -> None:
        route = respx.get(pages.embed_url).mock(
            return_value=httpx.Response(200, text=pages.embed_html)
        )
        strategy = FetchStrategy(http_client=http_client)

        result = await strategy.resolve(
            pages.embed_url, VIDSRC_XYZ_CHAIN, deadline=Deadline(0.0)
        )

        assert result.error_kind is ErrorKind.TIMEOUT
        assert not route.called

