"""
Stremio addon documents: manifest, catalogs, metas and streams.

Ids exposed to Stremio:
- gdrive:<file id>           a playable file (movie)
- gdrive-folder:<folder id>  a folder shown as a series
- gdrive-root:<folder id>    a configured root folder catalog
"""
import logging
from typing import List, Optional

from core.config import (
    ADDON_ID,
    ADDON_NAME,
    ADDON_VERSION,
    ADDON_LOGO_URL,
    BASE_URL,
    FOLDER_MIME,
    FOLDER_POSTER_URL,
    LIST_CACHE_TTL,
    META_CACHE_TTL,
    RECENTS_LIMIT,
    ROOT_FOLDERS,
)
from core.errors import NotFound
from services.cache import Cache
from services.catalog import CatalogEntry, SeriesBuilder
from services.drive import extract_id, fmt_size, get_file
from services.lister import PaginationLister, children_query, recents_query, search_query

logger = logging.getLogger(__name__)

RECENTS_CATALOG = "gdrive_recents"
SEARCH_CATALOG = "gdrive_search"


def file_to_meta(file: dict) -> dict:
    """Lightweight catalog entry for one Drive file or folder."""
    is_folder = file.get("mimeType") == FOLDER_MIME
    size = file.get("size")
    return {
        "id": f"gdrive-folder:{file['id']}" if is_folder else f"gdrive:{file['id']}",
        "type": "series" if is_folder else "movie",
        "name": file.get("name", ""),
        "poster": FOLDER_POSTER_URL if is_folder else file.get("thumbnailLink"),
        "description": "Folder" if is_folder else f"Size: {fmt_size(int(size) if size else None)}",
    }


def playback_url(file_id: str, base_url: str = BASE_URL) -> str:
    return f"{base_url}/playback/{file_id}"


def entry_to_video(entry: CatalogEntry, base_url: str = BASE_URL) -> dict:
    return {
        "id": f"gdrive:{entry.id}",
        "title": entry.title,
        "season": entry.season,
        "episode": entry.episode,
        "released": entry.released_at,
        "thumbnail": entry.thumbnail_url,
        "streams": [{"url": playback_url(entry.id, base_url), "title": "GDrive Stream"}],
    }


class AddonService:
    """Builds the JSON documents served by the addon routes."""

    def __init__(
        self,
        lister: PaginationLister,
        builder: SeriesBuilder,
        cache: Cache,
        root_folders: Optional[List[dict]] = None,
        base_url: str = BASE_URL,
    ):
        self.lister = lister
        self.client = lister.client
        self.builder = builder
        self.cache = cache
        self.root_folders = ROOT_FOLDERS if root_folders is None else root_folders
        self.base_url = base_url.rstrip("/")

    def manifest(self) -> dict:
        return {
            "id": ADDON_ID,
            "version": ADDON_VERSION,
            "name": ADDON_NAME,
            "description": "Streams movies and series directly from Google Drive.",
            "logo": ADDON_LOGO_URL,
            "types": ["movie", "series"],
            "catalogs": [
                {"type": "movie", "id": RECENTS_CATALOG, "name": "Recent Videos"},
                *[
                    {"type": "movie", "id": f"gdrive-root:{folder['id']}", "name": folder["name"]}
                    for folder in self.root_folders
                ],
                {
                    "type": "movie",
                    "id": SEARCH_CATALOG,
                    "name": "Search",
                    "extra": [{"name": "search", "isRequired": True}],
                },
            ],
            "resources": ["catalog", "meta", "stream"],
            "idPrefixes": ["gdrive"],
        }

    async def catalog(self, catalog_id: str, search: Optional[str] = None) -> List[dict]:
        """Metas for one catalog page. Unknown catalog ids give an empty list."""
        search = (search or "").strip()
        cache_key = f"catalog:search:{search}" if search else f"catalog:{catalog_id}"
        cached = await self.cache.get(cache_key)
        if isinstance(cached, list):
            return cached

        if search:
            files = await self.lister.list_all(search_query(search))
        elif catalog_id == RECENTS_CATALOG:
            files = await self.lister.list_all(recents_query(), max_items=RECENTS_LIMIT)
        elif catalog_id.startswith("gdrive-root:") or catalog_id.startswith("gdrive-folder:"):
            prefix = catalog_id.split(":", 1)[0]
            folder_id = extract_id(catalog_id, prefix)
            files = await self.lister.list_all(children_query(folder_id)) if folder_id else []
        else:
            logger.info(f"Unknown catalog requested: {catalog_id}")
            files = []

        metas = [file_to_meta(f) for f in files if f.get("id")]
        if metas:
            await self.cache.put(cache_key, metas, LIST_CACHE_TTL)
        return metas

    async def meta(self, addon_id: str) -> dict:
        """Series meta for a folder id, movie meta for a file id. Raises NotFound."""
        is_folder = addon_id.startswith("gdrive-folder:") or addon_id.startswith("gdrive-root:")
        prefix = addon_id.split(":", 1)[0] if is_folder else "gdrive"
        item_id = extract_id(addon_id, prefix)
        if not item_id:
            raise NotFound(addon_id)

        cache_key = f"meta:{addon_id}"
        cached = await self.cache.get(cache_key)
        if isinstance(cached, dict):
            return cached

        if is_folder:
            folder = await get_file(self.client, item_id, "id,name,mimeType")
            if not folder or folder.get("mimeType") != FOLDER_MIME:
                raise NotFound(addon_id)
            entries = await self.builder.build_series(item_id, root=folder)
            meta = {
                "id": addon_id,
                "type": "series",
                "name": folder.get("name", ""),
                "poster": FOLDER_POSTER_URL,
                "videos": [entry_to_video(e, self.base_url) for e in entries],
            }
        else:
            file = await get_file(self.client, item_id, "id,name,size,thumbnailLink,createdTime")
            if not file:
                raise NotFound(addon_id)
            size = file.get("size")
            meta = {
                "id": f"gdrive:{file['id']}",
                "type": "movie",
                "name": file.get("name", ""),
                "poster": file.get("thumbnailLink"),
                "background": file.get("thumbnailLink"),
                "description": f"Size: {fmt_size(int(size) if size else None)}",
                "released": file.get("createdTime"),
            }

        await self.cache.put(cache_key, meta, META_CACHE_TTL)
        return meta

    async def streams(self, addon_id: str) -> List[dict]:
        file_id = extract_id(addon_id, "gdrive")
        if not file_id:
            raise NotFound(addon_id)
        file = await get_file(self.client, file_id, "id,name,size")
        if not file:
            raise NotFound(addon_id)
        size = file.get("size")
        return [{
            "url": playback_url(file["id"], self.base_url),
            "title": "GDrive",
            "behaviorHints": {
                "proxied": True,
                "videoSize": int(size) if size else None,
                "filename": file.get("name"),
            },
        }]
