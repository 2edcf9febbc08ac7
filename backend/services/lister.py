"""
Complete pagination over the Drive files.list endpoint.

Pages are drained until Drive stops returning a nextPageToken or the
item ceiling is reached. A bad page ends the loop with whatever has been
collected so far. Non-empty results are cached for a short TTL.
"""
import json
import hashlib
import logging
from typing import Any, Dict, List, Optional

from core.config import DRIVE_FILES_URL, LIST_CACHE_TTL, LIST_MAX_ITEMS, LIST_PAGE_SIZE
from core.errors import RetryBudgetExhausted
from services.cache import Cache
from services.drive import FILE_FIELDS
from services.http_client import ResilientClient

logger = logging.getLogger(__name__)


def _escape(value: str) -> str:
    """Escape a literal for a Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def children_query(folder_id: str, videos_only: bool = False) -> Dict[str, Any]:
    q = f"'{_escape(folder_id)}' in parents and trashed=false"
    if videos_only:
        q += " and mimeType contains 'video/'"
    return {"q": q, "fields": f"files({FILE_FIELDS})"}


def search_query(term: str) -> Dict[str, Any]:
    return {
        "q": f"name contains '{_escape(term)}' and trashed=false",
        "fields": f"files({FILE_FIELDS})",
    }


def recents_query() -> Dict[str, Any]:
    return {
        "q": "mimeType contains 'video/' and trashed=false",
        "orderBy": "createdTime desc",
        "fields": f"files({FILE_FIELDS})",
    }


def list_cache_key(query: Dict[str, Any], max_items: Optional[int] = None) -> str:
    canonical = json.dumps({"query": query, "max": max_items}, sort_keys=True, separators=(",", ":"))
    return "list:" + hashlib.sha256(canonical.encode()).hexdigest()[:32]


class PaginationLister:
    """Drains cursor-paginated listings through the resilient client."""

    def __init__(
        self,
        client: ResilientClient,
        cache: Cache,
        max_items: int = LIST_MAX_ITEMS,
        ttl_seconds: int = LIST_CACHE_TTL,
        page_size: int = LIST_PAGE_SIZE,
    ):
        self.client = client
        self.cache = cache
        self.max_items = max_items
        self.ttl_seconds = ttl_seconds
        self.page_size = page_size

    async def list_all(self, query: Dict[str, Any], max_items: Optional[int] = None) -> List[dict]:
        """
        Return every entity matching `query` (a files.list parameter dict).

        RetryBudgetExhausted is raised only when the very first page fails;
        later failures return the partial result.
        """
        ceiling = min(max_items or self.max_items, self.max_items)
        cache_key = list_cache_key(query, max_items)

        cached = await self.cache.get(cache_key)
        if isinstance(cached, list):
            return cached

        files: List[dict] = []
        page_token = None
        pages = 0
        complete = False

        while True:
            params = dict(query)
            params["fields"] = self._with_next_page_token(query.get("fields"))
            params["pageSize"] = min(self.page_size, ceiling)
            params["supportsAllDrives"] = "true"
            params["includeItemsFromAllDrives"] = "true"
            if page_token:
                params["pageToken"] = page_token

            try:
                response = await self.client.call(DRIVE_FILES_URL, params=params)
            except RetryBudgetExhausted:
                if not files:
                    raise
                logger.warning(f"Listing gave up after {pages} pages; returning {len(files)} partial results")
                break

            pages += 1
            page = self._parse_page(response)
            if page is None:
                logger.warning(f"Bad listing page {pages} (HTTP {response.status_code}); returning {len(files)} partial results")
                break

            files.extend(page["files"])
            page_token = page.get("nextPageToken")
            if len(files) >= ceiling:
                if page_token:
                    logger.info(f"Listing hit the {ceiling} item ceiling after {pages} pages")
                files = files[:ceiling]
                complete = True
                break
            if not page_token:
                complete = True
                break

        if not complete:
            logger.info(f"Partial listing not cached: {len(files)} items")
        elif files:
            await self.cache.put(cache_key, files, self.ttl_seconds)
        return files

    @staticmethod
    def _with_next_page_token(fields: Optional[str]) -> str:
        fields = fields or f"files({FILE_FIELDS})"
        if "nextPageToken" in fields:
            return fields
        return f"nextPageToken,{fields}"

    @staticmethod
    def _parse_page(response) -> Optional[dict]:
        if not response.is_success:
            return None
        try:
            body = response.json()
        except ValueError:
            return None
        if not isinstance(body, dict) or not isinstance(body.get("files"), list):
            return None
        return body
