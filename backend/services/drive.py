"""
Google Drive resource helpers: file descriptors, id parsing, entity fetch
and media retrieval.
"""
import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from core.config import DRIVE_FILES_URL, FOLDER_MIME
from services.http_client import ResilientClient

logger = logging.getLogger(__name__)

FILE_FIELDS = "id,name,mimeType,createdTime,size,thumbnailLink,parents"
_BARE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{25,}$")


@dataclass(frozen=True)
class FileNode:
    id: str
    name: str
    mime_type: str = ""
    created_at: Optional[str] = None
    size_bytes: Optional[int] = None
    thumbnail_url: Optional[str] = None
    parent_ids: List[str] = field(default_factory=list)

    @property
    def is_container(self) -> bool:
        return self.mime_type == FOLDER_MIME

    @property
    def is_video(self) -> bool:
        return self.mime_type.startswith("video/")

    @classmethod
    def from_api(cls, data: dict) -> "FileNode":
        size = data.get("size")
        try:
            size_bytes = int(size) if size is not None else None
        except (TypeError, ValueError):
            size_bytes = None
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            mime_type=data.get("mimeType") or "",
            created_at=data.get("createdTime"),
            size_bytes=size_bytes,
            thumbnail_url=data.get("thumbnailLink"),
            parent_ids=list(data.get("parents") or []),
        )


def file_url(file_id: str) -> str:
    return f"{DRIVE_FILES_URL}/{file_id}"


def extract_id(id_param: Optional[str], prefix: str) -> Optional[str]:
    """
    Pull the Drive id out of an addon id like "gdrive:<id>".

    Bare Drive ids (25+ url-safe characters) are accepted as-is.
    """
    if not id_param or not isinstance(id_param, str):
        return None
    if id_param.startswith(prefix + ":"):
        item_id = id_param[len(prefix) + 1:]
        return item_id or None
    if _BARE_ID_RE.match(id_param):
        return id_param
    return None


def fmt_size(size_bytes: Optional[int]) -> str:
    """Human readable size in SI units, e.g. 1.50 GB."""
    if not size_bytes or size_bytes <= 0:
        return "Unknown"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size_bytes)
    i = 0
    while value >= 1000 and i < len(units) - 1:
        value /= 1000
        i += 1
    return f"{value:.2f} {units[i]}"


async def get_file(client: ResilientClient, file_id: str, fields: str = FILE_FIELDS) -> Optional[dict]:
    """Fetch one entity's attributes. None if missing or inaccessible."""
    return await client.get_json(
        file_url(file_id),
        params={"fields": fields, "supportsAllDrives": "true"},
    )


async def open_media(client: ResilientClient, file_id: str, range_header: Optional[str] = None) -> httpx.Response:
    """
    Open a streamed alt=media download. The caller owns the response and
    must aclose() it.
    """
    headers = {"Range": range_header} if range_header else None
    return await client.call(
        file_url(file_id),
        params={"alt": "media", "supportsAllDrives": "true"},
        headers=headers,
        stream=True,
    )
