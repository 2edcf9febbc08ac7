"""
Series builder: flattens a Drive folder tree into season/episode entries.

Walk order is depth-first: a folder's own videos first (natural name
order), then each subfolder in natural name order. Season and episode come
from the file name when it carries them, otherwise from the enclosing
"Season N" folder and the file's position. The result is stably sorted by
(season, episode), so ties keep discovery order.
"""
import re
import logging
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from core.config import FOLDER_MIME, MAX_FOLDER_DEPTH
from core.errors import NotFound, RetryBudgetExhausted
from services.drive import FileNode, get_file
from services.lister import PaginationLister, children_query

logger = logging.getLogger(__name__)

# First match wins.
EPISODE_PATTERNS = [
    re.compile(r"(?<![a-z0-9])s(\d{1,2})[\s._-]*e(\d{1,3})(?!\d)", re.IGNORECASE),
    re.compile(r"season[\s._-]*(\d{1,3})[\s._-]*(?:episode|ep)[\s._-]*(\d{1,4})(?!\d)", re.IGNORECASE),
    re.compile(r"(?<!\d)(\d{1,2})x(\d{1,3})(?!\d)", re.IGNORECASE),
    re.compile(r"\[(\d{1,2})\.(\d{1,3})\]"),
]
LEADING_NUMBER = re.compile(r"^\s*(\d{1,3})(?=$|[\s._)\]-])")
SEASON_FOLDER = re.compile(r"season[\s._-]*(\d{1,3})(?!\d)", re.IGNORECASE)


@dataclass(frozen=True)
class CatalogEntry:
    id: str
    title: str
    season: int
    episode: int
    released_at: Optional[str] = None
    thumbnail_url: Optional[str] = None


def parse_episode(name: str) -> Optional[Tuple[int, int]]:
    """
    Season/episode from a file name, or None.

    >>> parse_episode("Show.S02E05.1080p.mkv")
    (2, 5)
    >>> parse_episode("07 - Intro.mkv")
    (1, 7)
    """
    for pattern in EPISODE_PATTERNS:
        m = pattern.search(name)
        if m:
            return int(m.group(1)), int(m.group(2))
    m = LEADING_NUMBER.match(name)
    if m:
        return 1, int(m.group(1))
    return None


def infer_season(folder_name: str) -> Optional[int]:
    m = SEASON_FOLDER.search(folder_name)
    return int(m.group(1)) if m else None


def natural_key(name: str) -> list:
    """Sort key that orders "Episode 2" before "Episode 10"."""
    return [int(part) if part.isdigit() else part.casefold() for part in re.split(r"(\d+)", name)]


class SeriesBuilder:
    """Recursive folder walker on top of the pagination lister."""

    def __init__(self, lister: PaginationLister, max_depth: int = MAX_FOLDER_DEPTH):
        self.lister = lister
        self.max_depth = max_depth

    async def build_series(self, root_folder_id: str, root: Optional[dict] = None) -> List[CatalogEntry]:
        """
        Every playable file beneath root_folder_id as ordered entries.

        Raises NotFound when the root is missing or is not a folder. A
        failing subfolder contributes nothing and is logged.
        """
        if root is None:
            root = await get_file(self.lister.client, root_folder_id, "id,name,mimeType")
        if not root or root.get("mimeType") != FOLDER_MIME:
            raise NotFound(root_folder_id)

        entries: List[CatalogEntry] = []
        await self._walk(root_folder_id, 1, 0, set(), entries)
        entries.sort(key=lambda e: (e.season, e.episode))
        logger.info(f"Built series {root_folder_id}: {len(entries)} episodes")
        return entries

    async def _walk(self, folder_id: str, season: int, depth: int, visited: Set[str], out: List[CatalogEntry]):
        if folder_id in visited:
            logger.warning(f"Folder {folder_id} already visited; skipping cycle")
            return
        if depth > self.max_depth:
            logger.warning(f"Folder {folder_id} is deeper than {self.max_depth} levels; truncating")
            return
        visited.add(folder_id)

        try:
            children = await self.lister.list_all(children_query(folder_id))
        except RetryBudgetExhausted as e:
            if depth == 0:
                raise
            logger.warning(f"Skipping subfolder {folder_id}: {e}")
            return

        nodes = [FileNode.from_api(c) for c in children if isinstance(c, dict) and c.get("id")]
        videos = sorted((n for n in nodes if n.is_video), key=lambda n: natural_key(n.name))
        folders = sorted((n for n in nodes if n.is_container), key=lambda n: natural_key(n.name))

        for position, node in enumerate(videos, start=1):
            parsed = parse_episode(node.name)
            entry_season, episode = parsed if parsed else (season, position)
            out.append(CatalogEntry(
                id=node.id,
                title=node.name,
                season=entry_season,
                episode=episode,
                released_at=node.created_at,
                thumbnail_url=node.thumbnail_url,
            ))

        for folder in folders:
            folder_season = infer_season(folder.name)
            await self._walk(
                folder.id,
                season if folder_season is None else folder_season,
                depth + 1,
                visited,
                out,
            )
