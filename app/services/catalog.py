"""Query, metadata and stream resolution over a built catalog snapshot."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from .. import __version__
from ..models import CONTENT_KINDS, CatalogItem, CatalogSnapshot, Episode
from ..utils import clean_text, coerce_int
from .xtream import XtreamClient

logger = logging.getLogger(__name__)

ADDON_ID = "org.stremio.iptv.selfhosted"
ADDON_VERSION = __version__
MANIFEST_SIZE_LIMIT = 8192

CATALOG_DEFINITIONS: tuple[dict[str, Any], ...] = (
    {"type": "tv", "id": "iptv_live", "name": "IPTV", "all": "All Channels", "limit": 20},
    {"type": "movie", "id": "iptv_movies", "name": "Movies", "all": "All Movies", "limit": 15},
    {"type": "series", "id": "iptv_series", "name": "Series", "all": "All Series", "limit": 10},
)


class ManifestTooLargeError(ValueError):
    """Raised when the manifest cannot be shrunk below the protocol limit."""


class CatalogEngine:
    """Read-only view over a :class:`CatalogSnapshot` plus lazy episode lookups."""

    def __init__(
        self,
        snapshot: CatalogSnapshot,
        client: XtreamClient | None = None,
        *,
        page_size: int = 100,
    ) -> None:
        self._snapshot = snapshot
        self._client = client
        self._page_size = page_size
        self._index: dict[str, CatalogItem] = {
            item.id: item
            for item in (*snapshot.channels, *snapshot.movies, *snapshot.series)
        }

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    @property
    def client(self) -> XtreamClient | None:
        return self._client

    def find(self, item_id: str) -> CatalogItem | None:
        return self._index.get(item_id)

    def query(
        self,
        kind: str,
        category: str | None = None,
        search: str | None = None,
    ) -> list[CatalogItem]:
        """Return items of ``kind`` filtered by category and search text."""

        items = list(self._snapshot.items_for(kind))
        if category and not category.startswith("All"):
            items = [item for item in items if item.category == category]
        if search:
            needle = search.lower()
            items = [
                item
                for item in items
                if needle in item.name.lower() or needle in item.category.lower()
            ]
        items.sort(key=lambda item: (item.category, item.name))
        return items

    def page(self, items: list[CatalogItem], skip: int = 0) -> list[CatalogItem]:
        start = max(skip, 0)
        return items[start:start + self._page_size]

    def build_metadata(self, item: CatalogItem) -> dict[str, Any]:
        """Return the addon-protocol ``meta`` object for ``item``."""

        meta: dict[str, Any] = {
            "id": item.id,
            "type": item.kind,
            "name": item.name,
            "genres": [item.category],
            "poster": item.poster or item.placeholder_poster(),
        }
        if item.kind == "tv":
            meta["description"] = f"Live Channel: {item.name}"
            return meta

        label = "TV Show" if item.kind == "series" else "Movie"
        meta["description"] = item.plot or f"{label}: {item.name}"
        if item.year:
            meta["year"] = item.year
        if item.kind == "series":
            meta["videos"] = []
        return meta

    def catalog_payload(
        self, kind: str, extra: Mapping[str, str] | None = None
    ) -> dict[str, Any]:
        extra = extra or {}
        items = self.query(kind, extra.get("genre"), extra.get("search"))
        skip = coerce_int(extra.get("skip"), default=0) or 0
        metas = [self.build_metadata(item) for item in self.page(items, skip)]
        logger.info("Returning %s %s items (skip=%s)", len(metas), kind, skip)
        return {"metas": metas}

    async def meta_payload(self, item_id: str) -> dict[str, Any]:
        item = self.find(item_id)
        if item is None:
            logger.info("No item found for meta id %s", item_id)
            return {"meta": None}
        meta = self.build_metadata(item)
        if item.kind == "series":
            episodes = await self.resolve_episodes(item)
            meta["videos"] = [episode.to_video() for episode in episodes]
        return {"meta": meta}

    async def resolve_episodes(self, series: CatalogItem) -> list[Episode]:
        """Return the sorted episodes of ``series`` or a single placeholder."""

        info = None
        if self._client is not None:
            info = await self._client.fetch_series_info(series.provider_id)

        episodes = _flatten_episodes(series.id, info) if info else []
        if not episodes:
            overview = (
                "Episode information not available"
                if info is not None
                else "Unable to load episode information"
            )
            return [
                Episode(
                    series_id=series.id,
                    season=1,
                    episode=1,
                    title="Episode 1",
                    overview=overview,
                )
            ]
        episodes.sort(key=lambda episode: (episode.season, episode.episode))
        logger.info("Processed %s episodes for %s", len(episodes), series.id)
        return episodes

    async def resolve_stream(self, stream_id: str) -> dict[str, Any] | None:
        """Return the addon-protocol stream object for ``stream_id``."""

        if ":" in stream_id:
            parts = stream_id.split(":")
            if len(parts) != 3:
                return None
            series_id, season, episode = parts
            series = self.find(series_id)
            if series is None or series.kind != "series":
                return None
            url = await self._episode_url(series, season, episode)
            return {
                "url": url,
                "title": f"{series.name} - S{season}E{episode}",
                "behaviorHints": {"notWebReady": True},
            }

        item = self.find(stream_id)
        if item is None:
            return None
        return {
            "url": item.stream_url,
            "title": item.name,
            "behaviorHints": {"notWebReady": True},
        }

    async def _episode_url(self, series: CatalogItem, season: str, episode: str) -> str:
        fallback = f"{series.stream_url}/{season}/{episode}.mp4"
        if self._client is None:
            return fallback
        fallback = self._client.fallback_episode_url(series.provider_id, season, episode)

        info = await self._client.fetch_series_info(series.provider_id)
        if not info:
            return fallback
        wanted = (coerce_int(season), coerce_int(episode))
        for candidate in _flatten_episodes(series.id, info):
            if (candidate.season, candidate.episode) == wanted and candidate.stream_id:
                return self._client.episode_url(
                    candidate.stream_id, candidate.container_extension
                )
        logger.info("Episode %s:%s not described by provider; using fallback", season, episode)
        return fallback

    def build_manifest(self, *, name: str, description: str | None = None) -> dict[str, Any]:
        """Return the manifest, trimming genre options to honour the size limit."""

        limits = {definition["type"]: definition["limit"] for definition in CATALOG_DEFINITIONS}
        while True:
            manifest = self._manifest(name, description, limits)
            size = len(json.dumps(manifest, ensure_ascii=False).encode("utf-8"))
            if size <= MANIFEST_SIZE_LIMIT:
                return manifest
            if not any(limits.values()):
                raise ManifestTooLargeError(f"Manifest is {size} bytes")
            logger.warning("Manifest is %s bytes; trimming genre options", size)
            limits = {kind: limit // 2 for kind, limit in limits.items()}

    def _manifest(
        self, name: str, description: str | None, limits: Mapping[str, int]
    ) -> dict[str, Any]:
        catalogs = []
        for definition in CATALOG_DEFINITIONS:
            kind = definition["type"]
            options = list(self._snapshot.categories.for_kind(kind)[: limits[kind]])
            catalogs.append(
                {
                    "type": kind,
                    "id": definition["id"],
                    "name": definition["name"],
                    "extra": [
                        {"name": "genre", "options": [definition["all"], *options]},
                        {"name": "search"},
                        {"name": "skip"},
                    ],
                }
            )
        return {
            "id": ADDON_ID,
            "version": ADDON_VERSION,
            "name": name,
            "description": description
            or "Self-hosted IPTV addon with caching to reduce server load",
            "logo": "https://via.placeholder.com/256x256/4CAF50/ffffff?text=IPTV",
            "resources": ["catalog", "stream", "meta"],
            "types": list(CONTENT_KINDS),
            "catalogs": catalogs,
            "idPrefixes": ["live_", "vod_", "series_"],
            "behaviorHints": {"configurable": True, "configurationRequired": False},
        }


def _flatten_episodes(series_id: str, info: Mapping[str, Any]) -> list[Episode]:
    """Flatten ``get_series_info`` seasons into :class:`Episode` objects."""

    raw = info.get("episodes")
    seasons: list[tuple[Any, Any]]
    if isinstance(raw, Mapping):
        seasons = list(raw.items())
    elif isinstance(raw, list):
        seasons = [(None, entries) for entries in raw]
    else:
        return []

    episodes: list[Episode] = []
    for season_key, entries in seasons:
        if isinstance(entries, Mapping):
            entries = [entries]
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            season = coerce_int(season_key if season_key is not None else entry.get("season"))
            number = coerce_int(entry.get("episode_num"))
            if season is None or number is None:
                continue
            details = entry.get("info") if isinstance(entry.get("info"), Mapping) else {}
            episodes.append(
                Episode(
                    series_id=series_id,
                    season=season,
                    episode=number,
                    title=clean_text(entry.get("title")) or f"Episode {number}",
                    released=clean_text(entry.get("air_date") or details.get("air_date")),
                    duration=coerce_int(details.get("duration_secs")),
                    thumbnail=clean_text(details.get("movie_image")),
                    overview=f"Season {season} Episode {number}",
                    stream_id=clean_text(entry.get("id")),
                    container_extension=clean_text(entry.get("container_extension")),
                )
            )
    return episodes
