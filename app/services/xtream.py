"""HTTP client for Xtream-Codes style ``player_api.php`` providers."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..cache import LRUCache
from ..config import Settings
from ..models import AddonConfig
from ..utils import provider_fingerprint
from .health import ProviderHealth

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "mp4"


class XtreamClient:
    """Thin wrapper around the Xtream player API for a single account."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        config: AddonConfig,
        settings: Settings,
        *,
        health: ProviderHealth,
        cache: LRUCache[Any] | None = None,
    ) -> None:
        if not config.has_xtream:
            raise ValueError("Xtream credentials are required for XtreamClient")
        self._client = http_client
        self._settings = settings
        self._health = health
        self._cache = cache
        self._base_url = str(config.xtream_url).rstrip("/")
        self._username = str(config.xtream_username)
        self._password = str(config.xtream_password)
        self.fingerprint = provider_fingerprint(config)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def health(self) -> ProviderHealth:
        return self._health

    def _params(self, action: str | None = None, **extra: Any) -> dict[str, Any]:
        params: dict[str, Any] = {"username": self._username, "password": self._password}
        if action:
            params["action"] = action
        params.update(extra)
        return params

    def live_url(self, stream_id: Any) -> str:
        return f"{self._base_url}/live/{self._username}/{self._password}/{stream_id}.m3u8"

    def movie_url(self, stream_id: Any, extension: str | None = None) -> str:
        ext = extension or DEFAULT_EXTENSION
        return f"{self._base_url}/movie/{self._username}/{self._password}/{stream_id}.{ext}"

    def series_url(self, series_id: Any) -> str:
        return f"{self._base_url}/series/{self._username}/{self._password}/{series_id}"

    def episode_url(self, episode_id: Any, extension: str | None = None) -> str:
        ext = extension or DEFAULT_EXTENSION
        return f"{self._base_url}/series/{self._username}/{self._password}/{episode_id}.{ext}"

    def fallback_episode_url(self, series_id: str, season: str, episode: str) -> str:
        """Best-effort URL used when the provider cannot describe an episode."""

        return f"{self.series_url(series_id)}/{season}/{episode}.{DEFAULT_EXTENSION}"

    async def probe(self) -> bool:
        """Return whether the provider answers the category endpoint."""

        try:
            response = await self._client.get(
                f"{self._base_url}/player_api.php",
                params=self._params("get_live_categories"),
                timeout=self._settings.probe_timeout,
            )
        except httpx.HTTPError as exc:
            logger.info("Provider probe failed: %s", exc.__class__.__name__)
            self._health.mark(False)
            return False
        self._health.mark(response.is_success)
        return response.is_success

    async def fetch_action(
        self,
        action: str,
        *,
        timeout: float,
        retry: bool = True,
        **extra: Any,
    ) -> Any:
        """Call ``player_api.php`` with ``action`` and return the decoded JSON.

        Raises ``httpx.HTTPError`` for transport and status failures and
        ``ValueError`` when the body is not JSON.
        """

        async def _call() -> Any:
            response = await self._client.get(
                f"{self._base_url}/player_api.php",
                params=self._params(action, **extra),
                timeout=timeout,
            )
            response.raise_for_status()
            return response.json()

        if not retry:
            return await _call()
        return await self._health.run(_call, label=f"Xtream {action}")

    async def fetch_playlist(self) -> str:
        """Download the provider's ``m3u_plus`` playlist."""

        async def _call() -> str:
            response = await self._client.get(
                f"{self._base_url}/get.php",
                params=self._params(type="m3u_plus", output="ts"),
                timeout=self._settings.playlist_timeout,
            )
            response.raise_for_status()
            return response.text

        return await self._health.run(_call, label="Xtream playlist")

    async def fetch_series_info(self, series_id: str) -> dict[str, Any] | None:
        """Return ``get_series_info`` for ``series_id`` or ``None`` on failure."""

        cache_key = f"series_info:{self.fingerprint}:{series_id}"
        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

        try:
            payload = await self.fetch_action(
                "get_series_info",
                timeout=self._settings.series_info_timeout,
                series_id=series_id,
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "Failed to fetch series info for %s: %s", series_id, exc.__class__.__name__
            )
            return None

        if not isinstance(payload, dict):
            logger.info("Series info for %s was not an object", series_id)
            return None
        if self._cache is not None and payload.get("episodes"):
            self._cache.set(cache_key, payload)
        return payload

    async def check_health(self) -> bool:
        """Refresh the recorded reachability state of the provider."""

        return await self._health.check(
            lambda: self.fetch_action(
                "get_live_categories",
                timeout=self._settings.category_timeout,
                retry=False,
            )
        )
