"""Tests for the provider loading strategies and their fallback order."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from app.cache import LRUCache
from app.config import Settings
from app.models import AddonConfig
from app.services.health import ProviderHealth
from app.services.ingest import CatalogLoader


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


XTREAM = AddonConfig(
    xtreamUrl="http://provider.example",
    xtreamUsername="user",
    xtreamPassword="pass",
)

PLAYLIST = "\n".join(
    [
        "#EXTM3U",
        '#EXTINF:-1 group-title="News",News One',
        "http://provider.example/live/user/pass/1.ts",
        '#EXTINF:-1 group-title="Sports",Sport One',
        "http://provider.example/live/user/pass/2.ts",
    ]
)

API_PAYLOADS: dict[str, Any] = {
    "get_live_categories": [{"category_id": "1", "category_name": "News"}],
    "get_vod_categories": {"2": {"category_name": "Action"}},
    "get_series_categories": [],
    "get_live_streams": [{"stream_id": 101, "name": "News One", "category_id": "1"}],
    "get_vod_streams": [
        {"stream_id": 201, "name": "Film", "category_id": "2", "container_extension": "mkv"}
    ],
    "get_series": [{"series_id": 301, "name": "Show", "category_id": "9"}],
}


class _NoSleepHealth(ProviderHealth):
    def __init__(self) -> None:
        self.delays: list[float] = []

        async def _record(delay: float) -> None:
            self.delays.append(delay)

        super().__init__(max_attempts=3, base_delay=1.0, sleep=_record)


def _loader(
    handler: Callable[[httpx.Request], httpx.Response],
    cache: LRUCache[Any] | None = None,
) -> tuple[CatalogLoader, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    loader = CatalogLoader(
        http_client,
        Settings(_env_file=None),
        cache if cache is not None else LRUCache(),
        health=_NoSleepHealth(),
    )
    return loader, http_client


@pytest.mark.anyio("asyncio")
async def test_primary_api_path_builds_snapshot_and_caches_it() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        action = request.url.params.get("action")
        return httpx.Response(200, json=API_PAYLOADS[action])

    cache: LRUCache[Any] = LRUCache()
    loader, http_client = _loader(handler, cache)
    async with http_client:
        snapshot = await loader.load(XTREAM)
        first_round = len(requests)
        again = await loader.load(XTREAM)

    assert snapshot.source == "xtream_api"
    assert not snapshot.degraded
    assert snapshot.counts() == {"channels": 1, "movies": 1, "series": 1}
    assert snapshot.channels[0].category == "News"
    assert snapshot.movies[0].category == "Action"
    assert snapshot.movies[0].stream_url == "http://provider.example/movie/user/pass/201.mkv"
    assert snapshot.series[0].category == "Series"
    assert snapshot.categories.live == ("News",)
    # reachability check plus three content and three category calls
    assert first_round == 7
    assert again is snapshot
    assert len(requests) == first_round


@pytest.mark.anyio("asyncio")
async def test_blocked_api_falls_back_to_provider_playlist() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/get.php":
            assert request.url.params["type"] == "m3u_plus"
            return httpx.Response(200, text=PLAYLIST)
        return httpx.Response(403, json={"error": "blocked"})

    loader, http_client = _loader(handler)
    async with http_client:
        snapshot = await loader.load(XTREAM)

    assert snapshot.source == "xtream_playlist"
    assert [channel.name for channel in snapshot.channels] == ["News One", "Sport One"]
    assert snapshot.categories.live == ("News", "Sports")
    assert snapshot.movies == ()


@pytest.mark.anyio("asyncio")
async def test_client_errors_on_bulk_calls_are_not_retried() -> None:
    calls: dict[str, int] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        key = request.url.params.get("action") or request.url.path
        calls[key] = calls.get(key, 0) + 1
        if request.url.path == "/get.php":
            return httpx.Response(200, text=PLAYLIST)
        if key == "get_vod_streams":
            return httpx.Response(404)
        return httpx.Response(200, json=API_PAYLOADS[key])

    loader, http_client = _loader(handler)
    async with http_client:
        snapshot = await loader.load(XTREAM)

    assert snapshot.source == "xtream_playlist"
    assert calls["get_vod_streams"] == 1


@pytest.mark.anyio("asyncio")
async def test_total_failure_yields_degraded_snapshot_without_caching() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    cache: LRUCache[Any] = LRUCache()
    loader, http_client = _loader(handler, cache)
    async with http_client:
        snapshot = await loader.load(XTREAM)

    assert snapshot.degraded
    assert snapshot.source == "degraded"
    assert snapshot.counts() == {"channels": 0, "movies": 0, "series": 0}
    assert cache.size() == 0


@pytest.mark.anyio("asyncio")
async def test_playlist_url_configuration_is_loaded() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "http://lists.example/tv.m3u"
        return httpx.Response(200, text=PLAYLIST)

    loader, http_client = _loader(handler)
    async with http_client:
        snapshot = await loader.load(AddonConfig(m3uUrl="http://lists.example/tv.m3u"))

    assert snapshot.source == "m3u_url"
    assert len(snapshot.channels) == 2


@pytest.mark.anyio("asyncio")
async def test_unusable_configuration_yields_empty_snapshot() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not run
        raise AssertionError("no request expected")

    loader, http_client = _loader(handler)
    async with http_client:
        snapshot = await loader.load(AddonConfig(xtreamUrl="http://provider.example"))

    assert snapshot.degraded
    assert snapshot.channels == ()


def test_xtream_configuration_uses_three_strategies() -> None:
    loader = CatalogLoader(httpx.AsyncClient(), Settings(_env_file=None), LRUCache())
    client = loader.client_for(XTREAM)

    strategies = loader.strategies_for(XTREAM, client)

    assert [strategy.name for strategy in strategies] == [
        "xtream_api",
        "xtream_playlist",
        "direct_probe",
    ]


@pytest.mark.anyio("asyncio")
async def test_playlist_without_channels_is_not_a_success() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/get.php":
            return httpx.Response(200, text="<html><body>Service unavailable</body></html>")
        return httpx.Response(403)

    cache: LRUCache[Any] = LRUCache()
    loader, http_client = _loader(handler, cache)
    async with http_client:
        snapshot = await loader.load(XTREAM)

    assert snapshot.degraded
    assert snapshot.source == "degraded"
    assert cache.size() == 0


@pytest.mark.anyio("asyncio")
async def test_successful_reachability_check_restores_health() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    loader, http_client = _loader(handler)
    client = loader.client_for(XTREAM)
    assert client is not None
    client.health.mark(False)

    async with http_client:
        assert await client.probe() is True

    assert client.health.is_healthy is True


@pytest.mark.anyio("asyncio")
async def test_unreachable_panel_marks_provider_unhealthy() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    loader, http_client = _loader(handler)
    client = loader.client_for(XTREAM)
    assert client is not None

    async with http_client:
        assert await client.probe() is False

    assert client.health.is_healthy is False
