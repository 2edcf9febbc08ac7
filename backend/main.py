"""
GDrive Stremio Addon Backend - Main Application

This is the entry point for the FastAPI application.
Most logic lives in:
- core/: Configuration and error types
- services/: Credentials, Drive client, listing, series building, caching
- api/routes/: Stremio addon and playback endpoints
"""
import os
import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import ADDON_NAME, ADDON_VERSION, BASE_URL, ROOT_FOLDERS
from core.errors import DriveError, NotFound
from services.addon import AddonService
from services.cache import Cache, MemoryBackend, build_cache
from services.catalog import SeriesBuilder
from services.credentials import CredentialPool, load_identities
from services.http_client import ResilientClient
from services.lister import PaginationLister
from api.routes.addon import router as addon_router
from api.routes.playback import router as playback_router

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Allowed origins for CORS (set via environment variable, comma-separated)
ALLOWED_ORIGINS = os.environ.get("ALLOWED_ORIGINS", "").split(",") if os.environ.get("ALLOWED_ORIGINS") else ["*"]


def build_addon(http_client: httpx.AsyncClient, pool: CredentialPool, cache: Cache) -> AddonService:
    """Wire the service stack: pool -> client -> lister -> builder -> addon."""
    client = ResilientClient(http_client, pool)
    lister = PaginationLister(client, cache)
    builder = SeriesBuilder(lister)
    return AddonService(lister, builder, cache, root_folders=ROOT_FOLDERS, base_url=BASE_URL)


# ============================================================================
# Background Tasks
# ============================================================================

async def cache_cleanup_task(cache: Cache):
    """Periodically sweep expired entries out of the in-memory cache."""
    while True:
        await asyncio.sleep(120)
        if isinstance(cache.backend, MemoryBackend):
            removed = cache.backend.purge_expired()
            if removed:
                logger.info(f"Purged {removed} expired cache entries")


# ============================================================================
# Application Lifecycle
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - load credentials, open clients, start cleanup."""
    identities = await load_identities()

    http_client = httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(connect=10.0, read=300.0, write=10.0, pool=None),
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
    )
    cache = build_cache()
    pool = CredentialPool(identities, http_client)
    app.state.addon = build_addon(http_client, pool, cache)

    cleanup = asyncio.create_task(cache_cleanup_task(cache))
    logger.info(f"{ADDON_NAME} v{ADDON_VERSION} ready with {len(pool)} identities, {len(ROOT_FOLDERS)} root folders")
    yield

    cleanup.cancel()
    try:
        await cleanup
    except asyncio.CancelledError:
        pass  # Expected when task is cancelled

    await cache.close()
    await http_client.aclose()
    logger.info("Closed Drive HTTP client")


# ============================================================================
# App Initialization
# ============================================================================

app = FastAPI(title="GDrive Stremio Addon", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True if ALLOWED_ORIGINS != ["*"] else False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"err": "Not Found"})


@app.exception_handler(DriveError)
async def drive_error_handler(request: Request, exc: DriveError):
    logger.error(f"Upstream failure for {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"err": "Upstream failure", "detail": type(exc).__name__})


@app.get("/health")
async def health(request: Request):
    """Health check endpoint."""
    addon = getattr(request.app.state, "addon", None)
    stats = addon.cache.get_stats() if addon else None
    return {"status": "ok", "service": ADDON_NAME, "version": ADDON_VERSION, "cache": stats}


# Include API routers
app.include_router(addon_router)
app.include_router(playback_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "3000")))
