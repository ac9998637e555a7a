"""Entry point for the FastAPI-powered Stremio addon."""

from __future__ import annotations
import json
import logging
import time
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Mapping
from urllib.parse import parse_qsl, urlparse

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import ValidationError

from . import __version__
from .cache import LRUCache
from .config import settings
from .crypto import ConfigCodec
from .models import CONTENT_KINDS, AddonConfig
from .services.addon import AddonService, InvalidConfigError
from .services.catalog import CatalogEngine, ManifestTooLargeError
from .services.ingest import CatalogLoader
from .services.metrics import PerformanceMonitor
from .utils import mask_token
from .web import render_config_page

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            timeout=httpx.Timeout(20.0, connect=10.0),
            follow_redirects=True,
            headers={"User-Agent": f"xtremio/{__version__}"},
        )
    )
    provider_cache: LRUCache[Any] = LRUCache(
        settings.provider_cache_max_entries, settings.provider_cache_ttl_seconds
    )
    interface_cache: LRUCache[CatalogEngine] = LRUCache(
        settings.max_cache_entries, settings.interface_cache_ttl_seconds
    )
    codec = ConfigCodec(settings.config_secret)
    loader = CatalogLoader(http_client, settings, provider_cache)
    addon_service = AddonService(
        settings,
        codec,
        loader,
        interface_cache,
        monitor=PerformanceMonitor(),
    )

    fastapi_app.state.addon_service = addon_service
    fastapi_app.state.provider_cache = provider_cache
    logger.info(
        "Addon ready (encryption %s, cache %s)",
        "enabled" if codec.encrypting else "disabled",
        "enabled" if settings.cache_enabled else "disabled",
    )

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        provider_cache.clear()
        interface_cache.clear()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Self-hosted IPTV catalogs for Stremio backed by Xtream or M3U sources",
        version=__version__,
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @fastapi_app.middleware("http")
    async def record_request_metrics(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        service = getattr(request.app.state, "addon_service", None)
        monitor = getattr(service, "monitor", None)
        if isinstance(monitor, PerformanceMonitor):
            monitor.record_request(started)
            if response.status_code >= 500:
                monitor.record_error()
        return response

    register_routes(fastapi_app)
    return fastapi_app


def get_addon_service(app: FastAPI) -> AddonService:
    service = getattr(app.state, "addon_service", None)
    if not isinstance(service, AddonService):
        raise RuntimeError("Addon service not initialised")
    return service


def register_routes(fastapi_app: FastAPI) -> None:
    async def _engine_for(token: str) -> CatalogEngine:
        service = get_addon_service(fastapi_app)
        try:
            return await service.get_engine(token)
        except InvalidConfigError as exc:
            raise HTTPException(status_code=400, detail="Invalid configuration") from exc
        except Exception as exc:
            logger.exception("Failed to build addon for token %s", _log_token(token))
            raise HTTPException(status_code=500, detail="Addon build error") from exc

    async def _read_config(request: Request) -> AddonConfig:
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")
        try:
            return AddonConfig.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.errors()) from exc

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok", "timestamp": _timestamp()}

    @fastapi_app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "timestamp": _timestamp()}

    @fastapi_app.get("/stats")
    async def stats() -> dict[str, Any]:
        service = get_addon_service(fastapi_app)
        payload = service.stats()
        provider_cache = getattr(fastapi_app.state, "provider_cache", None)
        if isinstance(provider_cache, LRUCache):
            payload["providerCache"] = provider_cache.stats()
        payload["providers"] = await service.provider_health()
        return payload

    @fastapi_app.get("/", response_class=HTMLResponse)
    async def config_page() -> HTMLResponse:
        return HTMLResponse(render_config_page(settings))

    @fastapi_app.get("/{token}/configure", response_class=HTMLResponse)
    async def reconfigure_page(token: str) -> HTMLResponse:
        service = get_addon_service(fastapi_app)
        try:
            await service.decode_token(token)
        except InvalidConfigError as exc:
            raise HTTPException(status_code=400, detail="Invalid configuration") from exc
        return HTMLResponse(render_config_page(settings))

    @fastapi_app.post("/configure")
    async def configure(request: Request) -> JSONResponse:
        config = await _read_config(request)
        if not config.is_usable:
            raise HTTPException(
                status_code=400,
                detail="Either an M3U URL or complete Xtream credentials are required",
            )
        service = get_addon_service(fastapi_app)
        token = await service.encode_config(config)
        manifest_url = f"{_public_base(request)}/{token}/manifest.json"
        parsed = urlparse(manifest_url)
        install_url = f"stremio://{parsed.netloc}{parsed.path}"
        logger.info("Generated addon token %s", _log_token(token))
        return JSONResponse(
            {
                "success": True,
                "token": token,
                "manifestUrl": manifest_url,
                "installUrl": install_url,
            }
        )

    @fastapi_app.post("/encrypt")
    async def encrypt(request: Request) -> dict[str, str]:
        if not settings.encryption_enabled:
            raise HTTPException(status_code=400, detail="Encryption is not configured")
        config = await _read_config(request)
        service = get_addon_service(fastapi_app)
        return {"token": await service.encode_config(config)}

    @fastapi_app.get("/{token}/manifest.json")
    async def manifest(token: str) -> dict[str, Any]:
        engine = await _engine_for(token)
        try:
            return engine.build_manifest(name=settings.app_name)
        except ManifestTooLargeError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    async def _catalog_endpoint(
        request: Request,
        token: str,
        content_type: str,
        extra: Mapping[str, str] | None = None,
    ) -> JSONResponse:
        if content_type not in CONTENT_KINDS:
            raise HTTPException(status_code=400, detail="Unsupported content type")
        engine = await _engine_for(token)
        options: dict[str, str] = dict(request.query_params)
        if extra:
            options.update(extra)
        return JSONResponse(engine.catalog_payload(content_type, options))

    @fastapi_app.get("/{token}/catalog/{content_type}/{catalog_id}.json")
    async def catalog(
        request: Request, token: str, content_type: str, catalog_id: str
    ) -> JSONResponse:
        return await _catalog_endpoint(request, token, content_type)

    @fastapi_app.get("/{token}/catalog/{content_type}/{catalog_id}/{extra}.json")
    async def catalog_with_extra(
        request: Request, token: str, content_type: str, catalog_id: str, extra: str
    ) -> JSONResponse:
        return await _catalog_endpoint(
            request, token, content_type, _parse_extra(extra)
        )

    @fastapi_app.get("/{token}/meta/{content_type}/{item_id}.json")
    async def meta(token: str, content_type: str, item_id: str) -> JSONResponse:
        engine = await _engine_for(token)
        return JSONResponse(await engine.meta_payload(item_id))

    @fastapi_app.get("/{token}/stream/{content_type}/{item_id}.json")
    async def stream(token: str, content_type: str, item_id: str) -> JSONResponse:
        engine = await _engine_for(token)
        try:
            resolved = await engine.resolve_stream(item_id)
        except Exception:
            logger.exception("Stream lookup failed for %s", item_id)
            return JSONResponse({"streams": []})
        return JSONResponse({"streams": [resolved] if resolved else []})


def _parse_extra(raw: str) -> dict[str, str]:
    """Decode a Stremio ``extra`` path segment such as ``genre=News&skip=100``."""

    return {key: value for key, value in parse_qsl(raw) if key}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _log_token(token: str) -> str:
    if settings.environment == "production":
        return "<redacted>"
    return mask_token(token)


def _public_base(request: Request) -> str:
    """Origin and path prefix clients should use to reach this addon."""

    if settings.public_url:
        return str(settings.public_url).rstrip("/")

    def forwarded(name: str) -> str:
        return request.headers.get(f"x-forwarded-{name}", "").split(",")[0].strip()

    scheme = forwarded("proto") or request.url.scheme
    host = forwarded("host") or request.headers.get("host", "").strip() or request.url.netloc
    port = forwarded("port")
    if port and ":" not in host and port != {"https": "443", "http": "80"}.get(scheme):
        host = f"{host}:{port}"

    prefix = (forwarded("prefix") or request.scope.get("root_path") or "").strip("/")
    return f"{scheme}://{host}/{prefix}" if prefix else f"{scheme}://{host}"


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
