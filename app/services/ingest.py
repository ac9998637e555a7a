"""Ordered provider loading strategies producing catalog snapshots."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import httpx

from ..cache import LRUCache
from ..config import Settings
from ..models import AddonConfig, CatalogSnapshot
from ..utils import provider_fingerprint
from .health import ProviderHealth
from .normalizer import CategoryMap, ItemFactory, infer_categories, parse_m3u
from .xtream import XtreamClient

logger = logging.getLogger(__name__)

CONTENT_ACTIONS: tuple[str, ...] = ("get_live_streams", "get_vod_streams", "get_series")
CATEGORY_ACTIONS: tuple[str, ...] = (
    "get_live_categories",
    "get_vod_categories",
    "get_series_categories",
)


@dataclass(frozen=True, slots=True)
class LoadResult:
    """Outcome of a single loading strategy."""

    ok: bool
    snapshot: CatalogSnapshot | None = None
    reason: str | None = None

    @classmethod
    def success(cls, snapshot: CatalogSnapshot) -> "LoadResult":
        return cls(ok=True, snapshot=snapshot)

    @classmethod
    def failure(cls, reason: str) -> "LoadResult":
        return cls(ok=False, reason=reason)


class LoadStrategy(Protocol):
    name: str

    async def load(self) -> LoadResult:
        ...


class XtreamApiStrategy:
    """Primary path: probe the panel, then pull content and category lists."""

    name = "xtream_api"

    def __init__(self, client: XtreamClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings

    async def load(self) -> LoadResult:
        if not await self._client.probe():
            return LoadResult.failure("probe failed")

        calls = [
            self._client.fetch_action(action, timeout=self._settings.bulk_timeout)
            for action in CONTENT_ACTIONS
        ] + [
            self._client.fetch_action(action, timeout=self._settings.category_timeout)
            for action in CATEGORY_ACTIONS
        ]
        results = await asyncio.gather(*calls, return_exceptions=True)
        for action, result in zip(CONTENT_ACTIONS + CATEGORY_ACTIONS, results):
            if isinstance(result, BaseException):
                if not isinstance(result, (httpx.HTTPError, ValueError)):
                    raise result
                return LoadResult.failure(f"{action}: {result.__class__.__name__}")

        live_data, vod_data, series_data, live_cats, vod_cats, series_cats = results
        live_map = CategoryMap.parse(live_cats)
        vod_map = CategoryMap.parse(vod_cats)
        series_map = CategoryMap.parse(series_cats)
        logger.info(
            "Category maps: live=%s (%s) vod=%s (%s) series=%s (%s)",
            len(live_map),
            live_map.dialect,
            len(vod_map),
            vod_map.dialect,
            len(series_map),
            series_map.dialect,
        )

        factory = ItemFactory(
            live_url=self._client.live_url,
            movie_url=self._client.movie_url,
            series_url=self._client.series_url,
        )
        channels = infer_categories(factory.channels(live_data, live_map), live_map)
        snapshot = CatalogSnapshot.build(
            channels=channels,
            movies=factory.movies(vod_data, vod_map),
            series=factory.series(series_data, series_map),
            source=self.name,
        )
        return LoadResult.success(snapshot)


class XtreamPlaylistStrategy:
    """First fallback: the panel's ``get.php`` M3U export."""

    name = "xtream_playlist"

    def __init__(self, client: XtreamClient) -> None:
        self._client = client

    async def load(self) -> LoadResult:
        try:
            content = await self._client.fetch_playlist()
        except httpx.HTTPError as exc:
            return LoadResult.failure(f"playlist: {exc.__class__.__name__}")
        return _playlist_result(content, self.name)


class DirectProbeStrategy:
    """Last resort: hit each content endpoint once and only report what answers."""

    name = "direct_probe"

    def __init__(self, client: XtreamClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings

    async def load(self) -> LoadResult:
        for action in CONTENT_ACTIONS:
            try:
                data = await self._client.fetch_action(
                    action, timeout=self._settings.category_timeout, retry=False
                )
            except (httpx.HTTPError, ValueError) as exc:
                logger.info("Direct %s failed: %s", action, exc.__class__.__name__)
                return LoadResult.failure(f"{action}: {exc.__class__.__name__}")
            size = len(data) if isinstance(data, list) else "object"
            logger.info("Direct %s response: %s", action, size)
        return LoadResult.failure("direct calls do not populate the catalog")


class PlaylistUrlStrategy:
    """Loads a standalone M3U playlist configured by URL."""

    name = "m3u_url"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str,
        settings: Settings,
        health: ProviderHealth,
    ) -> None:
        self._http = http_client
        self._url = url
        self._settings = settings
        self._health = health

    async def load(self) -> LoadResult:
        async def _call() -> str:
            response = await self._http.get(self._url, timeout=self._settings.playlist_timeout)
            response.raise_for_status()
            return response.text

        try:
            content = await self._health.run(_call, label="M3U playlist")
        except httpx.HTTPError as exc:
            return LoadResult.failure(f"m3u: {exc.__class__.__name__}")
        return _playlist_result(content, self.name)


def _playlist_result(content: str, source: str) -> LoadResult:
    channels = parse_m3u(content)
    if not channels:
        return LoadResult.failure("empty playlist")
    return LoadResult.success(CatalogSnapshot.build(channels=channels, source=source))


class CatalogLoader:
    """Runs strategies in order and caches the first successful snapshot."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Settings,
        provider_cache: LRUCache[Any],
        *,
        health: ProviderHealth | None = None,
    ) -> None:
        self._http = http_client
        self._settings = settings
        self._cache = provider_cache
        self._health = health

    def _new_health(self) -> ProviderHealth:
        if self._health is not None:
            return self._health
        return ProviderHealth(
            max_attempts=self._settings.retry_attempts,
            base_delay=self._settings.retry_backoff_seconds,
        )

    def client_for(self, config: AddonConfig) -> XtreamClient | None:
        """Return an Xtream client for ``config`` if it carries credentials."""

        if not config.has_xtream:
            return None
        return XtreamClient(
            self._http,
            config,
            self._settings,
            health=self._new_health(),
            cache=self._cache,
        )

    def strategies_for(
        self, config: AddonConfig, client: XtreamClient | None
    ) -> Sequence[LoadStrategy]:
        if client is not None:
            return (
                XtreamApiStrategy(client, self._settings),
                XtreamPlaylistStrategy(client),
                DirectProbeStrategy(client, self._settings),
            )
        if config.m3u_url:
            return (
                PlaylistUrlStrategy(
                    self._http, config.m3u_url, self._settings, self._new_health()
                ),
            )
        return ()

    async def load(
        self, config: AddonConfig, client: XtreamClient | None = None
    ) -> CatalogSnapshot:
        """Return the snapshot for ``config``, from cache when available."""

        if not config.is_usable:
            return CatalogSnapshot.empty()

        fingerprint = provider_fingerprint(config)
        cache_key = f"iptv_data_{fingerprint}"
        cached = self._cache.get(cache_key)
        if isinstance(cached, CatalogSnapshot):
            logger.info("Using cached provider data for %s", fingerprint[:12])
            return cached

        if client is None:
            client = self.client_for(config)
        for strategy in self.strategies_for(config, client):
            logger.info("Loading %s via %s", fingerprint[:12], strategy.name)
            result = await strategy.load()
            if result.ok and result.snapshot is not None:
                snapshot = result.snapshot
                logger.info(
                    "Loaded %s via %s: %s",
                    fingerprint[:12],
                    strategy.name,
                    snapshot.counts(),
                )
                self._cache.set(cache_key, snapshot)
                return snapshot
            logger.warning(
                "Strategy %s failed for %s: %s", strategy.name, fingerprint[:12], result.reason
            )

        logger.error("All loading strategies failed for %s; serving empty catalog", fingerprint[:12])
        return CatalogSnapshot.empty(source="degraded")
