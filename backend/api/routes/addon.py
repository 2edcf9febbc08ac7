"""
Stremio addon protocol routes: manifest, catalog, meta and stream.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from services.addon import AddonService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["addon"])


def parse_extra(extra: str) -> dict:
    """
    Split a Stremio extra segment ("search=foo&skip=100") into a dict.

    The path parameter is already percent-decoded, so values are taken as-is.
    """
    params = {}
    for part in extra.split("&"):
        key, sep, value = part.partition("=")
        if sep and key and key not in params:
            params[key] = value
    return params


def get_addon(request: Request) -> AddonService:
    """The AddonService built during application startup."""
    return request.app.state.addon


@router.get("/")
async def index():
    return RedirectResponse(url="/manifest.json")


@router.get("/manifest.json")
async def manifest(addon: AddonService = Depends(get_addon)):
    return addon.manifest()


@router.get("/catalog/{media_type}/{catalog_id}.json")
async def catalog(media_type: str, catalog_id: str, addon: AddonService = Depends(get_addon)):
    metas = await addon.catalog(catalog_id)
    return {"metas": metas}


@router.get("/catalog/{media_type}/{catalog_id}/{extra}.json")
async def catalog_with_extra(
    media_type: str,
    catalog_id: str,
    extra: str,
    addon: AddonService = Depends(get_addon),
):
    """Catalog with Stremio extras, e.g. /catalog/movie/gdrive_search/search=foo.json"""
    search = parse_extra(extra).get("search", "")
    metas = await addon.catalog(catalog_id, search=search or None)
    return {"metas": metas}


@router.get("/meta/{media_type}/{item_id}.json")
async def meta(media_type: str, item_id: str, addon: AddonService = Depends(get_addon)):
    return {"meta": await addon.meta(item_id)}


@router.get("/stream/{media_type}/{item_id}.json")
async def stream(media_type: str, item_id: str, addon: AddonService = Depends(get_addon)):
    return {"streams": await addon.streams(item_id)}
