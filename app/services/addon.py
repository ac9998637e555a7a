"""Resolves configuration tokens into cached catalog engines."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..cache import LRUCache
from ..config import Settings
from ..crypto import ConfigCodec, is_config_token, token_fingerprint
from ..models import AddonConfig
from ..utils import mask_token
from .catalog import CatalogEngine
from .ingest import CatalogLoader
from .metrics import PerformanceMonitor

logger = logging.getLogger(__name__)


class InvalidConfigError(ValueError):
    """Raised when a token does not carry a usable configuration."""


class AddonService:
    """Coordinates token decoding, provider loading and the interface cache.

    Engines are built at most once per token at a time: concurrent requests
    for the same fingerprint await one shared task. That task is shielded
    from caller cancellation so the cache is still populated when a client
    disconnects mid-build.
    """

    def __init__(
        self,
        settings: Settings,
        codec: ConfigCodec,
        loader: CatalogLoader,
        interface_cache: LRUCache[CatalogEngine],
        *,
        monitor: PerformanceMonitor | None = None,
    ) -> None:
        self._settings = settings
        self._codec = codec
        self._loader = loader
        self._cache = interface_cache
        self._monitor = monitor or PerformanceMonitor()
        self._builds: dict[str, asyncio.Task[CatalogEngine]] = {}

    @property
    def monitor(self) -> PerformanceMonitor:
        return self._monitor

    @property
    def codec(self) -> ConfigCodec:
        return self._codec

    async def encode_config(self, config: AddonConfig) -> str:
        """Return a token for ``config`` without blocking the event loop."""

        return await asyncio.to_thread(self._codec.encode, config)

    async def decode_token(self, token: str) -> AddonConfig:
        """Return the configuration in ``token`` or raise :class:`InvalidConfigError`."""

        if not is_config_token(token):
            raise InvalidConfigError("Invalid configuration")
        config = await asyncio.to_thread(self._codec.decode, token)
        if config is None:
            raise InvalidConfigError("Invalid configuration token")
        return config

    async def get_engine(self, token: str) -> CatalogEngine:
        """Return the catalog engine for ``token``, building it if needed."""

        if not is_config_token(token):
            raise InvalidConfigError("Invalid configuration")

        key = f"iface:{token_fingerprint(token)}"
        if self._settings.cache_enabled:
            engine = self._cache.get(key)
            if engine is not None:
                self._monitor.record_cache_hit()
                return engine
            self._monitor.record_cache_miss()

        task = self._builds.get(key)
        if task is None:
            task = asyncio.create_task(self._build(key, token))
            self._builds[key] = task
            task.add_done_callback(lambda _: self._builds.pop(key, None))
        return await asyncio.shield(task)

    async def _build(self, key: str, token: str) -> CatalogEngine:
        if self._settings.environment == "development":
            logger.info("Building addon for token %s", mask_token(token))
        config = await self.decode_token(token)
        client = self._loader.client_for(config)
        snapshot = await self._loader.load(config, client)
        engine = CatalogEngine(
            snapshot, client, page_size=self._settings.catalog_page_size
        )
        if self._settings.cache_enabled and not snapshot.degraded:
            self._cache.set(key, engine)
        return engine

    async def provider_health(self) -> list[dict[str, Any]]:
        """Report reachability of the providers behind cached engines.

        Providers that have not been contacted within the check interval are
        contacted again before reporting.
        """

        reports: list[dict[str, Any]] = []
        seen: set[str] = set()
        for key in self._cache.keys():
            engine = self._cache.peek(key)
            client = engine.client if engine is not None else None
            if client is None or client.fingerprint in seen:
                continue
            seen.add(client.fingerprint)
            if client.health.due():
                await client.check_health()
            reports.append({"provider": client.fingerprint[:12], **client.health.status()})
        return reports

    def stats(self) -> dict[str, Any]:
        return {
            **self._monitor.stats(),
            "interfaceCache": self._cache.stats(),
            "inflightBuilds": len(self._builds),
        }
